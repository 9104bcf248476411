"""
Blob storage for generated exports (decision reports): a local directory in development,
an S3-compatible bucket (via boto3) in production.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from werkzeug.utils import secure_filename

EXPORTS_PREFIX = "reports"


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    size: int
    modified_at: datetime | None

    @property
    def filename(self) -> str:
        return PurePosixPath(self.key).name


def normalize_key(key: str) -> str:
    key = (key or "").replace("\\", "/").lstrip("/")
    if not key or ".." in PurePosixPath(key).parts:
        raise StorageError(f"Invalid storage key: {key!r}")
    return key


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def list_objects(self, prefix: str) -> list[StoredObject]:
        """Objects under prefix, newest first."""
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _path(self, key: str) -> Path:
        return self.root / normalize_key(key)

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        if not p.is_file():
            raise StorageError(f"No such object: {key}")
        return p.open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def list_objects(self, prefix: str) -> list[StoredObject]:
        base = self._path(prefix)
        if not base.is_dir():
            return []
        out = []
        for p in base.rglob("*"):
            if p.is_file():
                stat = p.stat()
                out.append(
                    StoredObject(
                        key=p.relative_to(self.root).as_posix(),
                        size=stat.st_size,
                        modified_at=datetime.utcfromtimestamp(stat.st_mtime),
                    )
                )
        return sorted(out, key=lambda o: o.key, reverse=True)


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def _client(self):
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {"ContentType": content_type} if content_type else {}
        self._client().put_object(Bucket=self.bucket, Key=normalize_key(key), Body=data, **extra)

    def open(self, key: str) -> BinaryIO:
        from botocore.exceptions import ClientError

        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=normalize_key(key))
        except ClientError as e:
            raise StorageError(f"No such object: {key}") from e
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._client().head_object(Bucket=self.bucket, Key=normalize_key(key))
        except ClientError:
            return False
        return True

    def list_objects(self, prefix: str) -> list[StoredObject]:
        paginator = self._client().get_paginator("list_objects_v2")
        out = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=normalize_key(prefix).rstrip("/") + "/"):
            for item in page.get("Contents", []):
                out.append(StoredObject(key=item["Key"], size=int(item.get("Size") or 0), modified_at=item.get("LastModified")))
        return sorted(out, key=lambda o: o.key, reverse=True)


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    return LocalStorage(root=Path(config.get("STORAGE_ROOT") or (Path(os.getcwd()) / "storage")))


def export_prefix(kind: str) -> str:
    return f"{EXPORTS_PREFIX}/{kind}"


def build_export_key(kind: str, filename: str, when: datetime | None = None) -> str:
    """Deterministic key for generated exports, e.g. reports/decision/2026-10-17/093000_report.csv."""
    when = when or datetime.utcnow()
    safe = secure_filename(filename) or "export.bin"
    return f"{export_prefix(kind)}/{when.date().isoformat()}/{when.strftime('%H%M%S')}_{safe}"
