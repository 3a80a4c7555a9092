"""Configuration management commands."""

from __future__ import annotations

from pathlib import Path

import rich_click as click
import yaml

from quotas import console as con
from quotas.config import (
    CONFIG_FILE_NAME,
    QuotasConfig,
    find_config_file,
    generate_default_config,
    load_config,
    save_config,
)
from quotas.repository import get_repo_root


@click.group()
def config() -> None:
    """Manage quotas configuration."""
    pass


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing config file.")
def config_init(force: bool) -> None:
    """Initialize a new .quotas.yaml configuration file."""
    config_path: Path = get_repo_root() / CONFIG_FILE_NAME

    if config_path.exists() and not force:
        con.print_error(f"Config file already exists: {config_path}")
        con.print_hint("Use --force to overwrite.")
        raise SystemExit(1)

    save_config(QuotasConfig.get_default(), config_path)

    con.print_success(f"Created {con.format_path(str(config_path))}")
    con.print_yaml(generate_default_config(), title="Default configuration")


@config.command("show")
def config_show() -> None:
    """Show the current configuration and its environments."""
    config_path: Path | None = find_config_file()
    cfg: QuotasConfig = load_config(config_path)

    if config_path:
        con.print_key_value("Config file", con.format_path(str(config_path)))
    else:
        con.print_key_value("Config file", "(using defaults)")

    repo_root: Path = get_repo_root()
    con.print_header("Environments")
    con.print_env_list(
        [
            (env.name, env.values_file, (repo_root / env.values_file).exists())
            for env in cfg.environments
        ]
    )

    con.console.print()
    con.print_yaml(
        yaml.safe_dump(cfg.to_dict(), default_flow_style=False, sort_keys=False)
    )
