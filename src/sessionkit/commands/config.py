"""Config commands -- view and modify the stored client configuration.

Provides the ``sessionkit config`` sub-command group for the
:class:`~sessionkit.models.ClientConfig` file in the config directory.
Environment variables and CLI flags still take precedence over what is
stored here; ``config show`` prints the effective, resolved values.
"""

from __future__ import annotations

import typer

from sessionkit.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Example::

        sessionkit config show --json
    """
    from sessionkit.config import config_path, resolve_config
    from sessionkit.exceptions import ConfigError

    obj = ctx.obj or {}
    try:
        config = resolve_config(cli_base_url=obj.get("base_url"))
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config file: {config_path()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key, e.g. 'base_url' or 'timeout'."),
    value: str = typer.Argument(help="Value to set; 'none' clears optional keys."),
) -> None:
    """Set a configuration value in the config file.

    The value is coerced to the existing field's type and the result is
    validated against :class:`~sessionkit.models.ClientConfig` before saving.

    Example::

        sessionkit config set base_url https://api.example.com
        sessionkit config set timeout 10
        sessionkit config set auth_check_path /personal-finance/categories
    """
    from sessionkit.config import load_config, save_config
    from sessionkit.exceptions import ConfigError
    from sessionkit.models import ClientConfig

    try:
        config = load_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None

    data = config.model_dump(mode="json")
    if key not in ClientConfig.model_fields:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = data.get(key)
    coerced: object
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, (int, float)):
        try:
            coerced = float(value)
        except ValueError:
            error(f"Expected a number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif value.lower() == "none":
        coerced = None
    else:
        coerced = value

    data[key] = coerced
    try:
        new_config = ClientConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the config file to defaults."""
    from sessionkit.config import save_config
    from sessionkit.models import ClientConfig

    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_config(ClientConfig())
    success("Configuration reset to defaults.")
