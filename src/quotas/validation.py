"""Validation of values documents against the quota contract.

Validation either returns a fully typed ``QuotaSet`` or raises
``QuotaValidationError`` with every violation found. Nothing is partially
accepted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError

from quotas.models import DUPLICATE_NAMESPACE_ERROR, QuotaSet, find_duplicates

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True)
class Violation:
    """One way in which a values document breaks the contract."""

    field: str
    """Dotted path of the offending field, e.g. ``quotas[1].limits``."""

    message: str

    index: int | None = None
    """Index of the offending declaration, if the violation is element-scoped."""

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class QuotaValidationError(Exception):
    """Raised when a values document does not satisfy the quota contract."""

    def __init__(self, violations: list[Violation]):
        self.violations: list[Violation] = violations
        count = len(violations)
        noun = "violation" if count == 1 else "violations"
        details = "; ".join(str(v) for v in violations)
        super().__init__(f"{count} {noun}: {details}")


class ValuesFileError(Exception):
    """Raised when a values file cannot be read or parsed."""


def _limits_spelling(declarations: list[Any], index: int | None) -> str:
    """The key a declaration actually used for its limits."""
    if index is not None and index < len(declarations):
        decl = declarations[index]
        if isinstance(decl, dict) and "hard" in decl and "limits" not in decl:
            return "hard"
    return "limits"


def _format_loc(
    loc: tuple[int | str, ...], declarations: list[Any]
) -> tuple[str, int | None]:
    index: int | None = None
    if len(loc) > 1 and loc[0] == "quotas" and isinstance(loc[1], int):
        index = loc[1]

    path = ""
    for i, part in enumerate(loc):
        if part == "[key]":
            path += " (key)"
        elif isinstance(part, int):
            path += f"[{part}]"
        elif path:
            if i == 2 and part == "limits" and index is not None:
                part = _limits_spelling(declarations, index)
            path += f".{part}"
        else:
            path = str(part)
    return path or "(root)", index


def _violation_from_error(error: dict[str, Any], declarations: list[Any]) -> Violation:
    field, index = _format_loc(tuple(error["loc"]), declarations)
    message: str = error["msg"]
    if error["type"] == "extra_forbidden":
        message = "unrecognized field"
    elif error["type"] == "missing":
        message = "required field is missing"
    return Violation(field=field, message=message, index=index)


def _raw_declarations(payload: dict[str, Any]) -> list[Any]:
    quotas = payload.get("quotas")
    return quotas if isinstance(quotas, list) else []


def find_duplicate_namespaces(declarations: list[Any]) -> list[Violation]:
    """Report every declaration whose namespace was already declared earlier.

    Works on the raw ``quotas`` list, so duplicates are reported alongside
    any other violation in the document. Two declarations for one namespace
    would render two manifests with the same derived name.
    """
    namespaces = [d.get("namespace") if isinstance(d, dict) else None for d in declarations]
    return [
        Violation(
            field=f"quotas[{index}].namespace",
            message=f"duplicate namespace '{namespace}' (already declared at quotas[{first}])",
            index=index,
        )
        for index, first, namespace in find_duplicates(namespaces)
    ]


def _by_index(violation: Violation) -> int:
    return -1 if violation.index is None else violation.index


def _validate(payload: Any) -> tuple[QuotaSet | None, list[Violation]]:
    if not isinstance(payload, dict):
        kind = "empty" if payload is None else type(payload).__name__
        return None, [
            Violation(
                field="(root)",
                message=f"values document must be a mapping, got {kind}",
            )
        ]

    declarations = _raw_declarations(payload)
    try:
        quota_set = QuotaSet.model_validate(payload)
    except ValidationError as e:
        # the raw scan reports duplicates per declaration, with or without other errors
        violations = [
            _violation_from_error(err, declarations)
            for err in e.errors()
            if err["type"] != DUPLICATE_NAMESPACE_ERROR
        ]
        violations.extend(find_duplicate_namespaces(declarations))
        return None, sorted(violations, key=_by_index)
    return quota_set, []


def collect_violations(payload: Any) -> list[Violation]:
    """Return all violations in a payload; an empty list means it is valid."""
    _, violations = _validate(payload)
    return violations


def validate_payload(payload: Any) -> QuotaSet:
    """Validate a parsed values document and return the typed quota set.

    Raises:
        QuotaValidationError: If the payload violates the contract.
    """
    quota_set, violations = _validate(payload)
    if quota_set is None:
        raise QuotaValidationError(violations)
    return quota_set


def load_values_file(path: Path) -> Any:
    """Parse a YAML values file.

    Raises:
        ValuesFileError: If the file is missing or is not valid YAML.
    """
    if not path.exists():
        raise ValuesFileError(f"Values file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValuesFileError(f"Invalid YAML in {path}: {e}") from e


def load_quota_set(path: Path) -> QuotaSet:
    """Load and validate a values file."""
    return validate_payload(load_values_file(path))
