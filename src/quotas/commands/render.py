"""Render commands for ResourceQuota manifest generation and diffing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import rich_click as click

from quotas import console as con
from quotas.commands.validate_cmd import resolve_targets_or_exit
from quotas.diff import diff_manifests
from quotas.models import DiffResult, RenderResult
from quotas.renderer import DOCUMENT_SEPARATOR, render_quotas, render_stream
from quotas.repository import get_config
from quotas.storage import (
    AWSTokenExpiredError,
    ManifestRef,
    StorageBackend,
    create_storage_backend,
    get_current_git_ref,
)
from quotas.validation import QuotaValidationError, ValuesFileError, load_quota_set

if TYPE_CHECKING:
    from pathlib import Path

    from quotas.models import QuotaSet


@click.group()
def render() -> None:
    """Render ResourceQuota manifests from values files."""
    pass


def _load_or_report(label: str, path: Path) -> QuotaSet | None:
    try:
        return load_quota_set(path)
    except ValuesFileError as e:
        con.print_error(f"{con.format_env(label)}: {e}")
    except QuotaValidationError as e:
        con.print_error(
            f"{con.format_env(label)}: {con.format_path(str(path))} is invalid"
        )
        con.print_violations(e.violations)
    return None


def _get_backend() -> StorageBackend:
    try:
        return create_storage_backend(get_config())
    except ValueError as e:
        con.print_error(str(e))
        raise SystemExit(1) from None


def _render_env(
    env: str,
    path: Path,
    backend: StorageBackend,
    git_ref: str | None,
    dry_run: bool,
) -> RenderResult:
    quota_set = _load_or_report(env, path)
    if quota_set is None:
        return RenderResult(env=env, success=False, message="validation failed")

    content: str = render_stream(quota_set)
    ref = ManifestRef(env=env, git_ref=git_ref)
    location: str = backend.describe(ref)

    if dry_run:
        return RenderResult(
            env=env,
            success=True,
            message="dry run",
            manifest_count=len(quota_set),
            location=location,
        )

    backend.write(ref, content)
    return RenderResult(
        env=env,
        success=True,
        message="rendered",
        manifest_count=len(quota_set),
        location=location,
    )


@render.command("list")
@click.option("--env", "-e", default="dev", help="Environment to list quotas for.")
@click.option("--all-envs", is_flag=True, help="List quotas for all environments.")
@click.option(
    "--values",
    "-f",
    "values_file",
    type=click.Path(dir_okay=False),
    help="List quotas from this values file instead of an environment.",
)
def render_list(env: str, all_envs: bool, values_file: str | None) -> None:
    """List the ResourceQuotas an environment would render."""
    targets = resolve_targets_or_exit(env, all_envs, values_file)

    failures = 0
    for label, path in targets:
        quota_set = _load_or_report(label, path)
        if quota_set is None:
            failures += 1
            continue

        con.print_header(f"ResourceQuotas in {label}")
        rendered = list(render_quotas(quota_set))
        if not rendered:
            con.print_warning(f"No quotas declared in {con.format_env(label)}")
            continue
        con.print_quota_table(rendered)

    if failures:
        raise SystemExit(1)


@render.command("apply")
@click.option("--env", "-e", default="dev", help="Environment to render.")
@click.option("--all-envs", is_flag=True, help="Render all environments.")
@click.option(
    "--values",
    "-f",
    "values_file",
    type=click.Path(dir_okay=False),
    help="Render this values file to stdout instead of an environment.",
)
@click.option(
    "--stdout", "to_stdout", is_flag=True, help="Print manifests instead of storing them."
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be stored (not with --stdout)."
)
@click.option("--git-ref", help="Store the manifests under this git reference.")
def render_apply(
    env: str,
    all_envs: bool,
    values_file: str | None,
    to_stdout: bool,
    dry_run: bool,
    git_ref: str | None,
) -> None:
    """Validate values files and render ResourceQuota manifests.

    Manifests are written to the configured storage backend as
    <env>/resource-quotas/_all.yaml. With --stdout (implied by --values)
    the raw YAML stream is printed instead, ready to pipe to kubectl.

    Examples:
        quotas render apply --env prod
        quotas render apply --all-envs --git-ref main
        quotas render apply -f environments/dev/values.yaml | kubectl apply -f -
    """
    if dry_run and (values_file or to_stdout):
        con.print_error("--dry-run cannot be combined with --stdout or --values.")
        con.print_hint("Printing the stream already writes nothing.")
        raise SystemExit(1)

    targets = resolve_targets_or_exit(env, all_envs, values_file)

    if values_file or to_stdout:
        streams: list[str] = []
        for label, path in targets:
            quota_set = _load_or_report(label, path)
            if quota_set is None:
                raise SystemExit(1)
            streams.append(render_stream(quota_set))
        click.echo(DOCUMENT_SEPARATOR.join(s for s in streams if s), nl=False)
        return

    backend: StorageBackend = _get_backend()
    results: list[RenderResult] = []

    try:
        with con.status("Rendering...") as status:
            for label, path in targets:
                status.update(f"Rendering {label}...")
                results.append(_render_env(label, path, backend, git_ref, dry_run))
    except AWSTokenExpiredError as e:
        con.print_error(str(e))
        con.print_hint("After logging in, run the command again.")
        raise SystemExit(1) from None

    for result in results:
        if not result.success:
            continue
        target = con.format_env(result.env)
        location = con.format_path(result.location or "")
        if dry_run:
            con.print_info(
                f"Would write {result.manifest_count} manifest(s) for {target} → {location}"
            )
        else:
            con.print_success(f"{target}: {result.manifest_count} manifest(s) → {location}")

    failure_count = sum(1 for r in results if not r.success)
    con.print_summary(len(results) - failure_count, failure_count)
    if failure_count:
        raise SystemExit(1)


def _diff_env(
    env: str, path: Path, backend: StorageBackend, git_ref: str | None
) -> DiffResult:
    quota_set = _load_or_report(env, path)
    if quota_set is None:
        return DiffResult(env=env, has_diff=False, diff_content="", error="validation failed")

    ref = ManifestRef(env=env, git_ref=git_ref)
    baseline: str | None = backend.read(ref)
    if baseline is None:
        con.print_warning(
            f"No baseline at {con.format_path(backend.describe(ref))}, "
            "every manifest is new"
        )
        baseline = ""

    has_diff, diff_content = diff_manifests(baseline, render_stream(quota_set))
    return DiffResult(env=env, has_diff=has_diff, diff_content=diff_content)


@render.command("diff")
@click.option("--env", "-e", default="dev", help="Environment to diff.")
@click.option("--all-envs", is_flag=True, help="Diff all environments.")
@click.option(
    "--git-ref",
    help="Baseline git reference (default: the baseline stored without a ref).",
)
@click.option(
    "--current-branch",
    is_flag=True,
    help="Use the current git branch as the baseline reference.",
)
@click.option(
    "--exit-code", is_flag=True, help="Exit with status 1 when differences are found."
)
def render_diff(
    env: str,
    all_envs: bool,
    git_ref: str | None,
    current_branch: bool,
    exit_code: bool,
) -> None:
    """Diff freshly rendered quotas against the stored baseline."""
    targets = resolve_targets_or_exit(env, all_envs, None)
    backend: StorageBackend = _get_backend()

    if current_branch and not git_ref:
        git_ref = get_current_git_ref()
        if git_ref is None:
            con.print_error("Could not determine the current branch. Use --git-ref.")
            raise SystemExit(1)

    changed = 0
    errors = 0
    try:
        for label, path in targets:
            con.print_header(f"Diff {label}")
            result = _diff_env(label, path, backend, git_ref)

            if result.error:
                con.print_warning(result.error)
                errors += 1
            elif result.has_diff:
                con.print_diff(result.diff_content.splitlines(keepends=True))
                changed += 1
            else:
                con.print_success("No changes")
    except AWSTokenExpiredError as e:
        con.print_error(str(e))
        con.print_hint("After logging in, run the command again.")
        raise SystemExit(1) from None

    if errors or (exit_code and changed):
        raise SystemExit(1)


@render.command("stored")
@click.option("--env", "-e", default=None, help="Only show baselines of this environment.")
def render_stored(env: str | None) -> None:
    """List the rendered baselines held by the storage backend."""
    if env is not None:
        env = resolve_targets_or_exit(env, False, None)[0][0]
    backend: StorageBackend = _get_backend()

    try:
        refs: list[ManifestRef] = backend.list_manifests(env)
    except AWSTokenExpiredError as e:
        con.print_error(str(e))
        raise SystemExit(1) from None

    if not refs:
        con.print_warning("No stored baselines found.")
        con.print_hint(f"Run: {con.format_command('quotas render apply')}")
        return

    con.print_stored_list([(ref.env, ref.git_ref, backend.describe(ref)) for ref in refs])


@render.command("prune")
@click.option("--env", "-e", default="dev", help="Environment whose baselines to delete.")
@click.option("--all-envs", is_flag=True, help="Prune every environment.")
@click.option(
    "--git-ref",
    help="Delete the baseline stored under this git reference (default: the unversioned one).",
)
@click.option("--all-refs", is_flag=True, help="Delete every stored baseline of the environment.")
@click.option("--dry-run", is_flag=True, help="Show what would be deleted.")
def render_prune(
    env: str, all_envs: bool, git_ref: str | None, all_refs: bool, dry_run: bool
) -> None:
    """Delete stored baselines, e.g. those of merged branches.

    Examples:
        quotas render prune --env prod --git-ref feature/more-gpus
        quotas render prune --all-envs --all-refs --dry-run
    """
    targets = resolve_targets_or_exit(env, all_envs, None)
    backend: StorageBackend = _get_backend()

    try:
        refs: list[ManifestRef] = []
        for label, _ in targets:
            if all_refs:
                refs.extend(backend.list_manifests(label))
                continue
            ref = ManifestRef(env=label, git_ref=git_ref)
            if backend.exists(ref):
                refs.append(ref)
            else:
                con.print_warning(f"Nothing stored at {con.format_path(backend.describe(ref))}")

        for ref in refs:
            location = con.format_path(backend.describe(ref))
            if dry_run:
                con.console.print(f"Would delete: {location}")
            else:
                backend.delete(ref)
                con.console.print(f"Deleted: {location}")
    except AWSTokenExpiredError as e:
        con.print_error(str(e))
        con.print_hint("After logging in, run the command again.")
        raise SystemExit(1) from None

    if not refs:
        return
    if dry_run:
        con.console.print(f"\n{len(refs)} baseline(s) would be deleted.")
    else:
        con.print_success(f"Deleted {len(refs)} baseline(s).")
