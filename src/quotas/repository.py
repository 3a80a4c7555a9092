"""Repository layout helpers: repo root, configuration and environment paths."""

from __future__ import annotations

import subprocess
from functools import lru_cache
from pathlib import Path
from subprocess import CompletedProcess

from quotas.config import (
    EnvironmentConfig,
    QuotasConfig,
    find_config_file,
    load_config,
    resolve_environment,
)


@lru_cache(maxsize=1)
def get_repo_root() -> Path:
    """Root of the git checkout, or the directory holding .quotas.yaml."""
    try:
        result: CompletedProcess[str] = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        config_path: Path | None = find_config_file()
        if config_path is not None:
            return config_path.parent
        return Path.cwd()


class ConfigProvider:
    """Provides access to configuration with caching."""

    _instance: ConfigProvider | None = None
    _config: QuotasConfig | None = None

    @classmethod
    def get_instance(cls) -> ConfigProvider:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None
        cls._config = None

    def get_config(self) -> QuotasConfig:
        if self._config is None:
            self._config = load_config()
        return self._config


def get_config() -> QuotasConfig:
    return ConfigProvider.get_instance().get_config()


def list_available_envs() -> list[str]:
    return [env.name for env in get_config().environments]


def get_environment(env: str) -> EnvironmentConfig | None:
    return resolve_environment(get_config(), env)


def get_chart_path() -> Path:
    return get_repo_root() / get_config().chart.path


def resolve_values_targets(
    env: str, all_envs: bool = False, values_file: str | None = None
) -> list[tuple[str, Path]]:
    """Work out which values files a command operates on.

    Returns (label, path) pairs: the environment name for configured
    environments, or the file path itself when ``values_file`` is given.

    Raises:
        ValueError: If ``env`` is neither a configured environment nor an alias.
    """
    if values_file:
        return [(values_file, Path(values_file))]

    if all_envs or env == "all":
        config: QuotasConfig = get_config()
        return [
            (env_config.name, get_repo_root() / env_config.values_file)
            for env_config in config.environments
        ]

    env_config: EnvironmentConfig | None = get_environment(env)
    if env_config is None:
        available = ", ".join(list_available_envs()) or "(none configured)"
        raise ValueError(f"Unknown environment '{env}'. Available: {available}")
    return [(env_config.name, get_repo_root() / env_config.values_file)]
