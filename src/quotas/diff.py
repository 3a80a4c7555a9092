"""Manifest-level diffing of rendered quota streams."""

from __future__ import annotations

import difflib
import re

import yaml

from quotas.renderer import manifest_identity

_SEPARATOR_RE = re.compile(r"^---[ \t]*$", re.MULTILINE)


def _parse_docs(content: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for raw in _SEPARATOR_RE.split(content):
        raw = raw.strip()
        if not raw:
            continue
        try:
            doc = yaml.safe_load(raw)
        except yaml.YAMLError:
            result[f"unparseable-{hash(raw)}"] = raw
            continue
        if doc and isinstance(doc, dict):
            result[manifest_identity(doc)] = raw
    return result


def diff_manifests(
    baseline_content: str,
    new_content: str,
    max_lines_per_manifest: int = 250,
) -> tuple[bool, str]:
    """Diff two rendered streams manifest by manifest.

    Manifests are matched by kind/namespace/name; only manifests that were
    added, removed or changed appear in the output.

    Returns:
        Tuple of (has_diff, diff_text)
    """
    baseline_docs = _parse_docs(baseline_content)
    new_docs = _parse_docs(new_content)

    diffs: list[str] = []
    for identity in sorted(baseline_docs.keys() | new_docs.keys()):
        baseline_raw = baseline_docs.get(identity, "")
        new_raw = new_docs.get(identity, "")

        if baseline_raw == new_raw:
            continue

        baseline_lines = baseline_raw.splitlines(keepends=True) if baseline_raw else []
        new_lines = new_raw.splitlines(keepends=True) if new_raw else []

        if not baseline_raw:
            diff_lines = [f"+++ NEW: {identity}\n"]
            diff_lines.extend(f"+{line.rstrip()}\n" for line in new_lines[:max_lines_per_manifest])
            if len(new_lines) > max_lines_per_manifest:
                diff_lines.append(
                    f"... ({len(new_lines) - max_lines_per_manifest} more lines)\n"
                )
        elif not new_raw:
            diff_lines = [f"--- REMOVED: {identity}\n"]
            diff_lines.extend(
                f"-{line.rstrip()}\n" for line in baseline_lines[:max_lines_per_manifest]
            )
            if len(baseline_lines) > max_lines_per_manifest:
                diff_lines.append(
                    f"... ({len(baseline_lines) - max_lines_per_manifest} more lines)\n"
                )
        else:
            # a trailing newline keeps the last hunk line from running into the next
            if not baseline_lines[-1].endswith("\n"):
                baseline_lines[-1] += "\n"
            if not new_lines[-1].endswith("\n"):
                new_lines[-1] += "\n"
            diff_lines = list(
                difflib.unified_diff(
                    baseline_lines,
                    new_lines,
                    fromfile=f"baseline/{identity}",
                    tofile=f"current/{identity}",
                    n=150,
                )
            )
            if len(diff_lines) > max_lines_per_manifest:
                diff_lines = diff_lines[:max_lines_per_manifest]
                diff_lines.append(
                    f"... (truncated, showing first {max_lines_per_manifest} lines)\n"
                )

        diffs.append("".join(diff_lines))

    if not diffs:
        return False, ""

    return True, "\n".join(diffs)
