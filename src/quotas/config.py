"""The ``.quotas.yaml`` project file.

It lists the environments a repository renders quotas for (each with its
values file and optional aliases), the chart the values belong to, and where
rendered streams are stored. Every section is optional; missing keys fall
back to the dataclass defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILE_NAME = ".quotas.yaml"


def _default_values_file(env_name: str) -> str:
    return f"environments/{env_name}/values.yaml"


@dataclass
class EnvironmentConfig:
    """One deployment environment and the values file declaring its quotas."""

    name: str
    values_file: str
    """Relative to the repository root."""

    aliases: list[str] = field(default_factory=list)
    """Other names accepted by ``--env``, e.g. ``production`` for ``prod``."""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnvironmentConfig:
        name = data.get("name", "default")
        return cls(
            name=name,
            values_file=data.get("values_file", _default_values_file(name)),
            aliases=list(data.get("aliases", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "values_file": self.values_file, "aliases": self.aliases}

    def matches(self, env_name: str) -> bool:
        wanted = env_name.lower()
        return wanted == self.name.lower() or any(a.lower() == wanted for a in self.aliases)


@dataclass
class ChartConfig:
    path: str = "chart"
    """Chart directory; ``quotas schema apply`` writes values.schema.json here."""


@dataclass
class StorageConfig:
    """Where rendered streams go when not kept under ``render.output_path``."""

    type: str = "local"
    """'local' or 's3'."""

    s3_bucket: str | None = None
    s3_prefix: str = "rendered-manifests"
    aws_profile: str | None = None
    """SSO profile for workstations. Ignored in CI."""

    aws_region: str | None = None
    s3_endpoint: str | None = None
    """For S3-compatible stores such as MinIO or Garage."""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageConfig:
        return cls(
            type=data.get("type", "local"),
            s3_bucket=data.get("s3_bucket"),
            s3_prefix=data.get("s3_prefix", "rendered-manifests"),
            aws_profile=data.get("aws_profile"),
            aws_region=data.get("aws_region"),
            s3_endpoint=data.get("s3_endpoint"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.type == "s3":
            data["s3_prefix"] = self.s3_prefix
        optional = {
            "s3_bucket": self.s3_bucket,
            "aws_profile": self.aws_profile,
            "aws_region": self.aws_region,
            "s3_endpoint": self.s3_endpoint,
        }
        data.update({key: value for key, value in optional.items() if value})
        return data


@dataclass
class RenderConfig:
    output_path: str = "rendered"
    """Local storage root, relative to the repository root."""

    storage: StorageConfig | None = None


@dataclass
class QuotasConfig:
    """Parsed ``.quotas.yaml``."""

    environments: list[EnvironmentConfig] = field(default_factory=list)
    chart: ChartConfig = field(default_factory=ChartConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    @classmethod
    def get_default(cls) -> QuotasConfig:
        """Configuration used when the repository has no ``.quotas.yaml``."""
        return cls(
            environments=[
                EnvironmentConfig(name=name, values_file=_default_values_file(name))
                for name in ("dev", "prod")
            ],
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuotasConfig:
        render_data: dict[str, Any] = data.get("render") or {}
        storage_data: dict[str, Any] = render_data.get("storage") or {}

        return cls(
            environments=[
                EnvironmentConfig.from_dict(env) for env in data.get("environments") or []
            ],
            chart=ChartConfig(path=(data.get("chart") or {}).get("path", "chart")),
            render=RenderConfig(
                output_path=render_data.get("output_path", "rendered"),
                storage=StorageConfig.from_dict(storage_data) if storage_data else None,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        render: dict[str, Any] = {"output_path": self.render.output_path}
        if self.render.storage is not None:
            render["storage"] = self.render.storage.to_dict()

        return {
            "environments": [env.to_dict() for env in self.environments],
            "chart": {"path": self.chart.path},
            "render": render,
        }


def _dump(config: QuotasConfig, stream: Any = None) -> str | None:
    return yaml.safe_dump(config.to_dict(), stream, default_flow_style=False, sort_keys=False)


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Nearest ``.quotas.yaml`` in ``start_path`` (default: cwd) or its parents."""
    current: Path = start_path or Path.cwd()
    while current != current.parent:
        candidate = current / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate
        current = current.parent
    return None


def load_config(config_path: Path | None = None) -> QuotasConfig:
    """Load ``config_path``, or the nearest ``.quotas.yaml`` when not given.

    Falls back to ``QuotasConfig.get_default()`` when there is no file.
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        return QuotasConfig.get_default()

    with config_path.open(encoding="utf-8") as f:
        return QuotasConfig.from_dict(yaml.safe_load(f) or {})


def save_config(config: QuotasConfig, config_path: Path) -> None:
    with config_path.open("w", encoding="utf-8") as f:
        _dump(config, f)


def generate_default_config() -> str:
    return _dump(QuotasConfig.get_default()) or ""


def resolve_environment(config: QuotasConfig, env_name: str) -> EnvironmentConfig | None:
    """Environment whose name or alias matches ``env_name``, ignoring case."""
    return next((env for env in config.environments if env.matches(env_name)), None)


def is_ci() -> bool:
    """Whether we are running inside a CI pipeline."""
    return bool(os.environ.get("CI") or os.environ.get("GITHUB_ACTIONS"))
