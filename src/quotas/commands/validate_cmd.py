"""Validate command for checking values files against the quota contract."""

from __future__ import annotations

from typing import TYPE_CHECKING

import rich_click as click

from quotas import console as con
from quotas.repository import resolve_values_targets
from quotas.validation import (
    ValuesFileError,
    collect_violations,
    load_values_file,
)

if TYPE_CHECKING:
    from pathlib import Path

    from quotas.validation import Violation


def resolve_targets_or_exit(
    env: str, all_envs: bool, values_file: str | None
) -> list[tuple[str, Path]]:
    """Resolve command targets, exiting with status 1 on an unknown environment."""
    try:
        targets = resolve_values_targets(env, all_envs, values_file)
    except ValueError as e:
        con.print_error(str(e))
        raise SystemExit(1) from None

    if not targets:
        con.print_error("No environments configured.")
        con.print_hint(f"Run: {con.format_command('quotas config init')}")
        raise SystemExit(1)
    return targets


def check_values_file(label: str, path: Path) -> bool:
    """Validate one values file and report the outcome. Returns True if valid."""
    try:
        payload = load_values_file(path)
    except ValuesFileError as e:
        con.print_error(f"{con.format_env(label)}: {e}")
        return False

    violations: list[Violation] = collect_violations(payload)
    if violations:
        noun = "violation" if len(violations) == 1 else "violations"
        con.print_error(
            f"{con.format_env(label)}: {len(violations)} {noun} in "
            f"{con.format_path(str(path))}"
        )
        con.print_violations(violations)
        return False

    count = len(payload["quotas"])
    con.print_success(f"{con.format_env(label)}: {count} quota declaration(s) valid")
    return True


@click.command("validate")
@click.option("--env", "-e", default="dev", help="Environment to validate.")
@click.option("--all-envs", is_flag=True, help="Validate all environments.")
@click.option(
    "--values",
    "-f",
    "values_file",
    type=click.Path(dir_okay=False),
    help="Validate this values file instead of an environment.",
)
def validate(env: str, all_envs: bool, values_file: str | None) -> None:
    """Validate quota values files.

    Every violation is reported with the index and field of the offending
    declaration. Exits with status 1 if any file is invalid.

    Examples:
        quotas validate --env prod
        quotas validate --all-envs
        quotas validate -f environments/dev/values.yaml
    """
    targets = resolve_targets_or_exit(env, all_envs, values_file)

    failures = 0
    for label, path in targets:
        if not check_values_file(label, path):
            failures += 1

    if failures:
        raise SystemExit(1)
