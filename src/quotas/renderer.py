"""Rendering of validated quota sets into ResourceQuota manifests."""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from quotas.models import NAME_SUFFIX, RenderedQuota

if TYPE_CHECKING:
    from collections.abc import Iterator

    from quotas.models import QuotaSet

DOCUMENT_SEPARATOR = "---\n"


def derive_name(namespace: str) -> str:
    """Name of the ResourceQuota created in ``namespace``."""
    return f"{namespace}{NAME_SUFFIX}"


def render_quotas(quota_set: QuotaSet) -> Iterator[RenderedQuota]:
    """Yield one rendered quota per declaration, in declaration order."""
    for decl in quota_set.quotas:
        yield RenderedQuota(
            derived_name=derive_name(decl.namespace),
            target_namespace=decl.namespace,
            limits=MappingProxyType(dict(decl.limits)),
        )


def render_manifests(quota_set: QuotaSet) -> Iterator[dict[str, Any]]:
    for rendered in render_quotas(quota_set):
        yield rendered.to_manifest()


def dump_manifest(manifest: dict[str, Any]) -> str:
    return yaml.safe_dump(manifest, default_flow_style=False, sort_keys=False)


def render_stream(quota_set: QuotaSet) -> str:
    """Render a quota set into a single multi-document YAML stream.

    Successive documents are separated by a ``---`` line. A set with no
    declarations renders to an empty string.
    """
    return DOCUMENT_SEPARATOR.join(
        dump_manifest(manifest) for manifest in render_manifests(quota_set)
    )


def split_stream(content: str) -> list[dict[str, Any]]:
    """Parse a rendered stream back into its manifest documents."""
    return [doc for doc in yaml.safe_load_all(content) if doc]


def manifest_identity(doc: dict[str, Any]) -> str:
    """Human-readable identity of a Kubernetes manifest."""
    kind = doc.get("kind", "Unknown")
    metadata = doc.get("metadata") or {}
    name = metadata.get("name", "unnamed")
    namespace = metadata.get("namespace", "")
    if namespace:
        return f"{kind}/{namespace}/{name}"
    return f"{kind}/{name}"
