import json

import click

from ..config import get_config_path, get_default_config, load_config
from ..infra.file_store import write_json_atomic


@click.group("config")
def config_cmd():
    """Configuration management commands."""
    pass


@config_cmd.command("show")
@click.option("--pretty", is_flag=True, help="Display as formatted JSON instead of single-line JSON")
@click.option("--path", is_flag=True, help="Show the config file path being used")
def show_config(pretty, path):
    """Show the current configuration with all merges applied.

    By default, outputs single-line JSON.
    Use --pretty for human-readable formatted output.
    Use --path to see which config file is being used.
    """
    if path:
        print(json.dumps({"config_path": str(get_config_path())}))
        return

    config = load_config()

    if pretty:
        print(json.dumps(config, indent=2, ensure_ascii=False))
    else:
        print(json.dumps(config, ensure_ascii=False))


@config_cmd.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def init_config(force):
    """Write the default configuration to ~/.vendorlock/config.json."""
    config_path = get_config_path()
    if config_path.exists() and not force:
        click.echo(f"Configuration already exists at {config_path} (use --force to overwrite)", err=True)
        return
    write_json_atomic(config_path, get_default_config())
    click.echo(f"Default configuration written to {config_path}", err=True)
