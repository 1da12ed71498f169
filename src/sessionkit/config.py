"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for sessionkit:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.sessionkit/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Client config** -- a single :class:`~sessionkit.models.ClientConfig`
  JSON file holding the base URL, endpoint paths and storage settings.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  ``SESSIONKIT_*`` environment variables, the config file and defaults.

All file writes go through :func:`atomic_write` (temp file, fsync, rename),
which the file-backed credential store reuses for the session file.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from sessionkit.exceptions import ConfigError
from sessionkit.models import ClientConfig

_APP_NAME = "sessionkit"
_CONFIG_FILENAME = "config.json"

ENV_BASE_URL = "SESSIONKIT_BASE_URL"
ENV_TIMEOUT = "SESSIONKIT_TIMEOUT"
ENV_STORAGE = "SESSIONKIT_STORAGE"
ENV_NAMESPACE = "SESSIONKIT_NAMESPACE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform uses the XDG Base Directory layout (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/sessionkit/`` (default ``~/.config/sessionkit/``).
    On macOS/Windows: ``~/.sessionkit/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (session files, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/sessionkit/`` (default ``~/.local/share/sessionkit/``).
    On macOS/Windows: ``~/.sessionkit/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX.  When *mode* is given the
    permissions are applied before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Client config ---


def config_path() -> Path:
    """Path to the client config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> ClientConfig:
    """Load the client configuration from the config directory.

    Returns:
        The stored :class:`~sessionkit.models.ClientConfig`, or a default
        instance when no file exists.

    Raises:
        ConfigError: If the file exists but holds invalid JSON or values.
    """
    path = config_path()
    if not path.is_file():
        return ClientConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ClientConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ClientConfig) -> None:
    """Persist the client configuration atomically."""
    data = config.model_dump(mode="json")
    atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    base_url = os.environ.get(ENV_BASE_URL)
    if base_url:
        overrides["base_url"] = base_url
    timeout = os.environ.get(ENV_TIMEOUT)
    if timeout:
        overrides["timeout"] = timeout
    storage = os.environ.get(ENV_STORAGE)
    if storage:
        overrides["storage"] = storage
    namespace = os.environ.get(ENV_NAMESPACE)
    if namespace:
        overrides["storage_namespace"] = namespace
    return overrides


def resolve_config(
    cli_base_url: Optional[str] = None,
    **cli_overrides: Any,
) -> ClientConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_base_url`` and any non-``None`` keyword override)
        2. Environment variables (``SESSIONKIT_BASE_URL``, ``SESSIONKIT_TIMEOUT``,
           ``SESSIONKIT_STORAGE``, ``SESSIONKIT_NAMESPACE``)
        3. User config (``~/.config/sessionkit/config.json``)
        4. Defaults

    Raises:
        ConfigError: If the merged values fail validation.
    """
    data = load_config().model_dump(mode="json")
    data.update(_env_overrides())
    if cli_base_url is not None:
        data["base_url"] = cli_base_url
    data.update({k: v for k, v in cli_overrides.items() if v is not None})
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def require_base_url(config: ClientConfig) -> str:
    """Return ``config.base_url`` or raise if none was configured.

    Raises:
        ConfigError: If no base URL is set anywhere in the precedence chain.
    """
    if not config.base_url:
        raise ConfigError(
            f"No base URL configured. Set {ENV_BASE_URL}, pass --base-url, "
            "or run: sessionkit config set base_url <url>"
        )
    return config.base_url.rstrip("/")
