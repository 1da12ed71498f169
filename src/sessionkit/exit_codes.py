"""Numeric process exit codes used by the ``sessionkit`` command line.

Each constant maps to an error category and is referenced by the matching
:class:`~sessionkit.exceptions.SessionKitError` subclass, so shell scripts
can tell an expired session apart from an unreachable server without
parsing stderr.

Example::

    $ sessionkit request GET /profile
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the session has expired, log in again
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""Credentials were rejected, could not be refreshed, or are missing."""

EXIT_HTTP_ERROR = 5
"""The API answered with a non-2xx status other than 401."""

EXIT_CONNECTION_ERROR = 6
"""No response was received (timeout, DNS failure, connection refused)."""
