"""Validate quota values files and render Kubernetes ResourceQuota manifests."""

from quotas.models import QuotaDeclaration, QuotaSet, RenderedQuota
from quotas.renderer import derive_name, render_quotas, render_stream
from quotas.validation import (
    QuotaValidationError,
    Violation,
    collect_violations,
    load_quota_set,
    validate_payload,
)

__version__ = "0.1.0"

__all__ = [
    "QuotaDeclaration",
    "QuotaSet",
    "QuotaValidationError",
    "RenderedQuota",
    "Violation",
    "collect_violations",
    "derive_name",
    "load_quota_set",
    "render_quotas",
    "render_stream",
    "validate_payload",
]
