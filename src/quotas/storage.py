"""Where rendered quota streams are kept between runs.

A stored stream is the baseline ``quotas render diff`` compares against. It
lives either on disk under ``render.output_path`` or in an S3 bucket, so CI
and every developer can diff against the same baseline without committing
rendered YAML.
"""

from __future__ import annotations

import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from quotas.config import is_ci

if TYPE_CHECKING:
    from collections.abc import Callable

    from quotas.config import QuotasConfig, StorageConfig

MANIFEST_SET_NAME = "resource-quotas"
STREAM_FILE_NAME = "_all.yaml"
DEFAULT_S3_PREFIX = "rendered-manifests"


@dataclass(frozen=True)
class ManifestRef:
    """Address of one stored stream: ``<env>/<name>[/<git_ref>]/_all.yaml``."""

    env: str
    name: str = MANIFEST_SET_NAME
    git_ref: str | None = None
    """Branch, tag or commit the stream was rendered from, if versioned."""

    @property
    def key(self) -> str:
        parts = [self.env, self.name]
        if self.git_ref:
            parts.append(self.git_ref)
        parts.append(STREAM_FILE_NAME)
        return "/".join(parts)

    @classmethod
    def from_key(cls, key: str) -> ManifestRef | None:
        """Parse a relative key back into a reference, None if it isn't one."""
        parts = key.split("/")
        if len(parts) < 3 or parts[-1] != STREAM_FILE_NAME:
            return None
        return cls(env=parts[0], name=parts[1], git_ref="/".join(parts[2:-1]) or None)


class AWSTokenExpiredError(Exception):
    """The AWS SSO session behind the S3 backend needs a fresh login."""

    def __init__(self, profile: str | None = None):
        self.profile: str | None = profile
        login = "aws sso login"
        if profile:
            login += f" --profile {profile}"
        super().__init__(f"AWS SSO token has expired. Run: {login}")


def _is_token_expired_error(error: Exception) -> bool:
    if type(error).__name__ == "TokenRetrievalError":
        return True
    text = str(error).lower()
    return "token" in text and ("expired" in text or "refresh failed" in text)


def _is_missing_object(error: Any) -> bool:
    return error.response["Error"]["Code"] in ("404", "NoSuchKey")


class StorageBackend(ABC):
    """Read and write rendered streams by ``ManifestRef``."""

    @abstractmethod
    def exists(self, ref: ManifestRef) -> bool: ...

    @abstractmethod
    def read(self, ref: ManifestRef) -> str | None:
        """Stored stream, or None when nothing is stored under ``ref``."""

    @abstractmethod
    def write(self, ref: ManifestRef, content: str) -> None: ...

    @abstractmethod
    def delete(self, ref: ManifestRef) -> None: ...

    @abstractmethod
    def list_manifests(self, env: str | None = None) -> list[ManifestRef]:
        """Every stored stream, or only those of ``env``."""

    @abstractmethod
    def describe(self, ref: ManifestRef) -> str:
        """Location of ``ref`` as shown to the user."""


class LocalStorageBackend(StorageBackend):
    """Streams stored as files below ``base_path``."""

    def __init__(self, base_path: Path):
        self.base_path: Path = base_path

    def _path_for(self, ref: ManifestRef) -> Path:
        return self.base_path / ref.key

    def exists(self, ref: ManifestRef) -> bool:
        return self._path_for(ref).is_file()

    def read(self, ref: ManifestRef) -> str | None:
        target = self._path_for(ref)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write(self, ref: ManifestRef, content: str) -> None:
        target = self._path_for(ref)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def delete(self, ref: ManifestRef) -> None:
        self._path_for(ref).unlink(missing_ok=True)

    def list_manifests(self, env: str | None = None) -> list[ManifestRef]:
        root = self.base_path / env if env else self.base_path
        if not root.is_dir():
            return []

        refs: list[ManifestRef] = []
        for stream in sorted(root.rglob(STREAM_FILE_NAME)):
            ref = ManifestRef.from_key(stream.relative_to(self.base_path).as_posix())
            if ref is not None:
                refs.append(ref)
        return refs

    def describe(self, ref: ManifestRef) -> str:
        return str(self._path_for(ref))


class S3StorageBackend(StorageBackend):
    """Streams stored as objects under ``s3://<bucket>/<prefix>/``.

    Credentials come from ``profile`` when one is given (SSO logins on a
    workstation), otherwise from the environment (OIDC in CI). Set
    ``endpoint_url`` for S3-compatible stores such as MinIO or Garage.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = DEFAULT_S3_PREFIX,
        profile: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
    ):
        self.bucket: str = bucket
        self.prefix: str = prefix.rstrip("/")
        self.profile: str | None = profile
        self.region: str | None = region
        self.endpoint_url: str | None = endpoint_url
        self._client = None

    @property
    def client(self):
        if self._client is None:
            import boto3

            session_kwargs: dict[str, str] = {}
            if self.profile:
                session_kwargs["profile_name"] = self.profile
            if self.region:
                session_kwargs["region_name"] = self.region

            client_kwargs: dict[str, str] = {}
            endpoint = self.endpoint_url or os.environ.get("AWS_ENDPOINT_URL")
            if endpoint:
                client_kwargs["endpoint_url"] = endpoint

            self._client = boto3.Session(**session_kwargs).client("s3", **client_kwargs)
        return self._client

    def _get_key(self, ref: ManifestRef) -> str:
        return f"{self.prefix}/{ref.key}"

    def _call(self, fn: Callable[..., Any], ref: ManifestRef, **kwargs: Any) -> Any:
        try:
            return fn(Bucket=self.bucket, Key=self._get_key(ref), **kwargs)
        except Exception as e:
            if _is_token_expired_error(e):
                raise AWSTokenExpiredError(self.profile) from e
            raise

    def exists(self, ref: ManifestRef) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._call(self.client.head_object, ref)
        except ClientError as e:
            if _is_missing_object(e):
                return False
            raise
        return True

    def read(self, ref: ManifestRef) -> str | None:
        from botocore.exceptions import ClientError

        try:
            response = self._call(self.client.get_object, ref)
        except ClientError as e:
            if _is_missing_object(e):
                return None
            raise
        return response["Body"].read().decode("utf-8")

    def write(self, ref: ManifestRef, content: str) -> None:
        self._call(
            self.client.put_object,
            ref,
            Body=content.encode("utf-8"),
            ContentType="text/yaml",
        )

    def delete(self, ref: ManifestRef) -> None:
        self._call(self.client.delete_object, ref)

    def list_manifests(self, env: str | None = None) -> list[ManifestRef]:
        search = f"{self.prefix}/{env}/" if env else f"{self.prefix}/"
        pages = self.client.get_paginator("list_objects_v2").paginate(
            Bucket=self.bucket, Prefix=search
        )

        refs: list[ManifestRef] = []
        for page in pages:
            for obj in page.get("Contents", []):
                ref = ManifestRef.from_key(obj["Key"][len(self.prefix) + 1 :])
                if ref is not None:
                    refs.append(ref)
        return refs

    def describe(self, ref: ManifestRef) -> str:
        return f"s3://{self.bucket}/{self._get_key(ref)}"


def _git(*args: str) -> str:
    result = subprocess.run(["git", *args], capture_output=True, text=True, check=True)
    return result.stdout.strip()


def get_current_git_ref() -> str | None:
    """Checked-out branch, or the short commit SHA on a detached HEAD."""
    try:
        branch = _git("rev-parse", "--abbrev-ref", "HEAD")
        if branch != "HEAD":
            return branch
        return _git("rev-parse", "--short", "HEAD")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def _s3_backend(storage: StorageConfig) -> S3StorageBackend:
    bucket = os.environ.get("QUOTAS_S3_BUCKET", storage.s3_bucket)
    if not bucket:
        raise ValueError(
            "S3 bucket not configured. Set render.storage.s3_bucket in "
            ".quotas.yaml or the QUOTAS_S3_BUCKET environment variable."
        )

    return S3StorageBackend(
        bucket=bucket,
        prefix=os.environ.get("QUOTAS_S3_PREFIX", storage.s3_prefix or DEFAULT_S3_PREFIX),
        # CI authenticates through the environment, never through a named profile
        profile=None if is_ci() else storage.aws_profile,
        region=os.environ.get("AWS_REGION", storage.aws_region),
        endpoint_url=os.environ.get("AWS_ENDPOINT_URL", storage.s3_endpoint),
    )


def create_storage_backend(config: QuotasConfig, base_path: Path | None = None) -> StorageBackend:
    """Backend for ``config.render``: S3 when configured, else local files.

    Local streams live under ``<base_path>/<render.output_path>``, with
    ``base_path`` defaulting to the repository root.

    Raises:
        ValueError: If S3 storage is selected but no bucket is known.
    """
    storage = config.render.storage
    if storage is not None and storage.type == "s3":
        return _s3_backend(storage)

    if base_path is None:
        from quotas.repository import get_repo_root

        base_path = get_repo_root()
    return LocalStorageBackend(base_path / config.render.output_path)
