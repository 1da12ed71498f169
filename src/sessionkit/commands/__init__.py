"""Built-in CLI commands for sessionkit.

Modules:
    session: ``register``, ``login``, ``logout``, ``status``, ``whoami`` and
        ``request``.
    config: ``config show|set|reset`` for the stored client configuration.
"""
