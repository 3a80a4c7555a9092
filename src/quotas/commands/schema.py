"""Schema commands: generate values.schema.json from the pydantic model."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import rich_click as click

from quotas import console as con
from quotas.models import QuotaSet
from quotas.repository import get_chart_path

SCHEMA_FILE_NAME = "values.schema.json"


def _get_type_label(prop: dict[str, Any]) -> str:
    """Generate a human-readable type label from a JSON schema property.

    Uses square brackets for clear visibility in VSCode hover tooltips:
    [string] - clearly indicates the expected type.
    """
    if "$ref" in prop:
        ref = prop["$ref"]
        if ref.startswith("#/$defs/"):
            return f"[{ref.split('/')[-1]}]"
        return "[object]"

    prop_type = prop.get("type")

    if prop_type == "array":
        items = prop.get("items", {})
        if "$ref" in items:
            return f"[array<{items['$ref'].split('/')[-1]}>]"
        return f"[array<{items.get('type', 'any')}>]"

    if prop_type == "object":
        values = prop.get("additionalProperties")
        if not isinstance(values, dict) and prop.get("patternProperties"):
            values = next(iter(prop["patternProperties"].values()))
        if isinstance(values, dict) and values.get("type"):
            return f"[object<{values['type']}>]"
        return "[object]"

    if prop_type in ("string", "integer", "number", "boolean"):
        return f"[{prop_type}]"

    return ""


def build_values_schema(with_types: bool = True) -> dict[str, Any]:
    """JSON schema for quota values files.

    When ``with_types`` is set, each property description is prefixed with
    its type label, e.g. ``[string] Namespace the ResourceQuota ...``.
    """
    schema = QuotaSet.model_json_schema()
    if not with_types:
        return schema

    def enhance_properties(properties: dict[str, Any]) -> None:
        for prop in properties.values():
            if not isinstance(prop, dict):
                continue
            type_label = _get_type_label(prop)
            desc = prop.get("description")
            if type_label and desc and not desc.startswith(("(", "[")):
                prop["description"] = f"{type_label} {desc}"

    enhance_properties(schema.get("properties", {}))
    for definition in schema.get("$defs", {}).values():
        if isinstance(definition, dict):
            enhance_properties(definition.get("properties", {}))

    return schema


@click.group()
def schema() -> None:
    """Generate the values.schema.json for the quota chart."""
    pass


@schema.command("show")
@click.option(
    "--no-types", is_flag=True, help="Skip adding type prefixes to descriptions."
)
def show_schema(no_types: bool) -> None:
    """Display the JSON schema on the console."""
    schema_json: str = json.dumps(build_values_schema(not no_types), indent=2)
    con.print_json(schema_json, title="Quota Values Schema")


@schema.command("apply")
@click.option(
    "--output",
    "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    help=f"Where to write the schema (default: <chart path>/{SCHEMA_FILE_NAME}).",
)
@click.option(
    "--dry-run", is_flag=True, help="Print what would be done without writing files."
)
@click.option(
    "--no-types", is_flag=True, help="Skip adding type prefixes to descriptions."
)
def apply_schema(output_path: str | None, dry_run: bool, no_types: bool) -> None:
    """Write values.schema.json so Helm rejects invalid values at install time."""
    if output_path:
        schema_path = Path(output_path)
    else:
        chart_path: Path = get_chart_path()
        if not chart_path.exists():
            con.print_error(f"Chart directory not found: {chart_path}")
            con.print_hint("Set chart.path in .quotas.yaml or pass --output.")
            raise SystemExit(1)
        schema_path = chart_path / SCHEMA_FILE_NAME

    schema_content: str = json.dumps(build_values_schema(not no_types), indent=2)

    if dry_run:
        con.print_info(f"Would write schema to: {con.format_path(str(schema_path))}")
        con.print_key_value("Schema size", f"{len(schema_content)} bytes", indent=1)
        return

    with schema_path.open("w", encoding="utf-8") as f:
        f.write(schema_content)
        f.write("\n")
    con.print_success(f"Generated: {con.format_path(str(schema_path))}")
