"""Domain models for quotas.

The pydantic models describe the closed values contract a values file must
satisfy. ``RenderedQuota`` is the output side: one ResourceQuota manifest per
declaration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator
from pydantic_core import PydanticCustomError

if TYPE_CHECKING:
    from collections.abc import Iterable

RESOURCE_NAME_PATTERN = r"^[A-Za-z0-9._/-]+$"
NAME_SUFFIX = "-quota"

Namespace = Annotated[str, StringConstraints(min_length=1, strict=True)]
ResourceName = Annotated[str, StringConstraints(pattern=RESOURCE_NAME_PATTERN, strict=True)]
Quantity = Annotated[str, StringConstraints(min_length=1, strict=True)]


def _closed_limits_schema(schema: dict[str, Any]) -> None:
    # keys outside the pattern must be rejected by Helm as well
    schema.pop("propertyNames", None)
    schema["patternProperties"] = {
        RESOURCE_NAME_PATTERN: {"type": "string", "minLength": 1},
    }
    schema["additionalProperties"] = False


HARD_DESCRIPTION = "Same as 'limits', using the ResourceQuota spelling. Set only one of the two."
DUPLICATE_NAMESPACE_ERROR = "duplicate_namespace"


def _either_limits_spelling(schema: dict[str, Any]) -> None:
    properties = schema["properties"]
    properties["hard"] = {**properties["limits"], "title": "Hard", "description": HARD_DESCRIPTION}
    schema.pop("required", None)
    schema["oneOf"] = [
        {"required": ["namespace", "limits"]},
        {"required": ["namespace", "hard"]},
    ]


def find_duplicates(namespaces: Iterable[Any]) -> list[tuple[int, int, str]]:
    """(index, first index, namespace) for every repeat of an earlier namespace.

    Entries that are not non-empty strings are skipped, so raw payloads can
    be scanned before they are known to be well formed.
    """
    first_seen: dict[str, int] = {}
    duplicates: list[tuple[int, int, str]] = []
    for index, namespace in enumerate(namespaces):
        if not isinstance(namespace, str) or not namespace:
            continue
        if namespace in first_seen:
            duplicates.append((index, first_seen[namespace], namespace))
        else:
            first_seen[namespace] = index
    return duplicates


class QuotaDeclaration(BaseModel):
    """A single namespace and the hard limits to enforce in it."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        json_schema_extra=_either_limits_spelling,
    )

    namespace: Namespace = Field(
        description=(
            "Namespace the ResourceQuota is created in. The quota is named "
            "'<namespace>-quota'. Must be unique within the values file."
        ),
    )
    limits: dict[ResourceName, Quantity] = Field(
        min_length=1,
        description=(
            "Hard limits keyed by resource name, e.g. {'pods': '30', "
            "'requests.cpu': '4', 'requests.nvidia.com/gpu': '2'}. "
            "Values are Kubernetes quantities written as strings. "
            "May also be spelled 'hard'."
        ),
        json_schema_extra=_closed_limits_schema,
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_hard_spelling(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "hard" not in data:
            return data
        if "limits" in data:
            raise ValueError("'limits' and 'hard' are the same field; set only one")
        data = dict(data)
        data["limits"] = data.pop("hard")
        return data


class QuotaSet(BaseModel):
    """Top-level values document: an ordered list of quota declarations."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        title="ResourceQuotaValues",
    )

    quotas: list[QuotaDeclaration] = Field(
        description=(
            "ResourceQuotas to render, one per namespace, in output order. "
            "An empty list renders nothing."
        ),
    )

    @model_validator(mode="after")
    def _unique_namespaces(self) -> QuotaSet:
        duplicates = find_duplicates(self.namespaces)
        if duplicates:
            index, first, namespace = duplicates[0]
            raise PydanticCustomError(
                DUPLICATE_NAMESPACE_ERROR,
                "duplicate namespace '{namespace}' at quotas[{index}] "
                "(already declared at quotas[{first}])",
                {"namespace": namespace, "index": index, "first": first},
            )
        return self

    def __len__(self) -> int:
        return len(self.quotas)

    @property
    def namespaces(self) -> list[str]:
        return [q.namespace for q in self.quotas]


@dataclass(frozen=True)
class RenderedQuota:
    """A rendered ResourceQuota manifest."""

    derived_name: str
    target_namespace: str
    limits: MappingProxyType[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "ResourceQuota",
            "metadata": {
                "name": self.derived_name,
                "namespace": self.target_namespace,
            },
            "spec": {"hard": dict(self.limits)},
        }

    def __repr__(self) -> str:
        return f"RenderedQuota(name={self.derived_name}, namespace={self.target_namespace})"


@dataclass
class RenderResult:
    """Result of rendering one environment."""

    env: str
    success: bool
    message: str
    manifest_count: int = 0
    location: str | None = None


@dataclass
class DiffResult:
    """Result of diffing one environment against its stored baseline."""

    env: str
    has_diff: bool
    diff_content: str
    error: str | None = None
