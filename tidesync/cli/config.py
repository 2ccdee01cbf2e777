"""tidesync config command - Daemon configuration management."""

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from tidesync.cli.error_handler import ConfigurationError, ValidationError, handle_errors
from tidesync.cli.run import CONFIG_OPTION

app = typer.Typer(help="Manage tidesync configuration.")
console = Console()


def _config_path() -> Path:
    from tidesync.config import DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILE

    config_dir = Path(os.environ.get("TIDESYNC_CONFIG_DIR", DEFAULT_CONFIG_DIR))
    return config_dir / DEFAULT_CONFIG_FILE


@app.command("show")
@handle_errors
def show_config(
    section: Optional[str] = typer.Argument(
        None,
        help="Section to show (scheduler, network, power, logging, paths).",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, yaml, json).",
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Show the effective configuration.

    Example:
        tidesync config show
        tidesync config show scheduler
        tidesync config show --format yaml
    """
    from tidesync.config import config_to_dict, export_config_json, export_config_yaml, load_config

    config = load_config(config_file)

    if format == "yaml":
        console.print(Syntax(export_config_yaml(config), "yaml", theme="monokai"))
        return
    if format == "json":
        console.print(Syntax(export_config_json(config), "json", theme="monokai"))
        return
    if format != "table":
        raise ValidationError(f"Unknown format: {format}", details={"choices": "table, yaml, json"})

    data = config_to_dict(config)
    sections = {
        name: values for name, values in data.items() if isinstance(values, dict)
    }
    sections["paths"] = {key: value for key, value in data.items() if not isinstance(value, dict)}

    if section and section not in sections:
        raise ValidationError(f"Unknown section: {section}", details={"choices": ", ".join(sections)})

    for name in [section] if section else sections:
        table = Table(title=name.capitalize())
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key, value in sections[name].items():
            if isinstance(value, list):
                value = ", ".join(value) or "None"
            table.add_row(key, "" if value is None else str(value))
        console.print(table)
        console.print()


@app.command("init")
@handle_errors
def init_config(
    app_target: Optional[str] = typer.Option(
        None,
        "--app",
        "-a",
        help="Job registry as module:attribute.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
) -> None:
    """Write a default configuration file.

    Example:
        tidesync config init --app myapp.jobs:registry
        tidesync config init --force
    """
    from tidesync.config import DEFAULT_DATA_DIR, TidesyncConfig, ensure_directories, save_config

    config_path = _config_path()
    if config_path.exists() and not force:
        raise ConfigurationError(
            f"Configuration already exists at {config_path}",
            details={"hint": "use --force to overwrite"},
        )

    data_dir = os.environ.get("TIDESYNC_DATA_DIR")
    config = TidesyncConfig(
        config_dir=config_path.parent,
        data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
    )
    if app_target:
        config.scheduler.app = app_target

    ensure_directories(config)
    save_config(config, config_path)
    config_path.chmod(0o600)

    console.print(f"[green]✓[/green] Configuration initialized at {config_path}")


@app.command("path")
def config_path() -> None:
    """Show the configuration file path.

    Example:
        tidesync config path
    """
    path = _config_path()
    console.print(f"[bold]Config directory:[/bold] {path.parent}")
    console.print(f"[bold]Config file:[/bold] {path}")
    console.print(f"[bold]Exists:[/bold] {path.exists()}")


@app.command("validate")
@handle_errors
def validate_config(config_file: Optional[Path] = CONFIG_OPTION) -> None:
    """Validate the configuration.

    Exits with a configuration error if any check fails.

    Example:
        tidesync config validate
    """
    from tidesync.config import load_config, validate_config as do_validate

    config = load_config(config_file)
    path = config_file or _config_path()

    console.print("[bold]Validating configuration...[/bold]")
    console.print()
    mark = "[green]✓[/green]" if path.exists() else "[yellow]![/yellow]"
    console.print(f"  {mark} Config file: {path}")

    errors = do_validate(config)
    failed = False
    for error in errors:
        if error.severity == "error":
            status = "[red]✗[/red]"
            failed = True
        else:
            status = "[yellow]![/yellow]"
        console.print(f"  {status} {error}")

    console.print()
    if failed:
        raise ConfigurationError("Configuration has errors")
    console.print("[green]Configuration is valid[/green]")
