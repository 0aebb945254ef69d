"""Config command for viewing and managing marquee configuration."""

import typer

from ..app import app, console
from ...config import CONFIG_FILE, get_config, reset_config


@app.command("config")
def config_command(
    action: str = typer.Argument(
        ...,
        help="Action: show, set, reset",
    ),
    key: str | None = typer.Argument(
        None,
        help="Config key (e.g. api.max_concurrency, execution.min_results)",
    ),
    value: str | None = typer.Argument(
        None,
        help="Value to set",
    ),
):
    """View or modify marquee configuration.

    Examples:
        marquee config show
        marquee config set api.max_concurrency 4
        marquee config set execution.min_results 5
        marquee config reset
    """
    if action == "show":
        _show_config()
    elif action == "set":
        if not key or value is None:
            console.print("[red]Usage:[/red] marquee config set <key> <value>")
            _print_valid_keys()
            raise typer.Exit(1)
        _set_config(key, value)
    elif action == "reset":
        _reset_config()
    else:
        console.print(f"[red]Unknown action:[/red] {action}")
        console.print("Valid actions: show, set, reset")
        raise typer.Exit(1)


def _print_valid_keys() -> None:
    console.print()
    console.print("Available keys:")
    for section, values in get_config().to_dict().items():
        for name in values:
            console.print(f"  {section}.{name}")


def _show_config():
    """Display current resolved configuration."""
    config = get_config()

    console.print()
    console.print("[bold]Marquee Configuration[/bold]")
    console.print("─" * 40)

    for section, values in config.to_dict().items():
        console.print()
        console.print(f"[bold cyan]{section.capitalize()}[/bold cyan]")
        width = max(len(name) for name in values)
        for name, val in values.items():
            console.print(f"  {name.ljust(width)} = {val}")

    console.print()
    console.print("[bold cyan]API Key[/bold cyan] (from env vars)")
    api_key = config.api_key
    if api_key:
        masked = api_key[:4] + "..." + api_key[-4:] if len(api_key) > 12 else "***"
        console.print(f"  {config.api.api_key_env}: [green]{masked}[/green]")
    else:
        console.print(f"  {config.api.api_key_env}: [dim]not set[/dim]")

    console.print()
    if CONFIG_FILE.exists():
        console.print(f"Config file: {CONFIG_FILE}")
    else:
        console.print(f"Config file: [dim]not created yet[/dim] ({CONFIG_FILE})")
    console.print()


def _set_config(key: str, value: str):
    """Set a config value and save."""
    config = get_config()
    try:
        config.set_value(key, value)
    except KeyError:
        console.print(f"[red]Unknown key:[/red] {key}")
        _print_valid_keys()
        raise typer.Exit(1)
    except ValueError:
        console.print(f"[red]Invalid value for {key}:[/red] {value}")
        raise typer.Exit(1)

    config.save()
    reset_config()  # Clear cached singleton so next get_config() reloads

    console.print(f"[green]✓[/green] Set {key} = {value}")
    console.print(f"  Saved to {CONFIG_FILE}")


def _reset_config():
    """Reset config to defaults."""
    if CONFIG_FILE.exists():
        CONFIG_FILE.unlink()
        reset_config()
        console.print("[green]✓[/green] Config reset to defaults")
        console.print(f"  Removed {CONFIG_FILE}")
    else:
        console.print("Config already at defaults (no config file exists)")
