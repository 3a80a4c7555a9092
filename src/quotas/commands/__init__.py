"""CLI command groups for quotas."""

from quotas.commands.config_cmd import config
from quotas.commands.render import render
from quotas.commands.schema import schema
from quotas.commands.validate_cmd import validate

__all__ = [
    "config",
    "render",
    "schema",
    "validate",
]
