from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, Protocol

import boto3
from botocore.exceptions import ClientError

from inkseal_api.settings import Settings, get_settings


logger = logging.getLogger("inkseal_api.storage")


class StorageDriver(Protocol):
    """Flat key -> blob store used for annotation and signature JSON."""

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        ...

    def get_bytes(self, key: str) -> bytes:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


def atomic_write(path: Path, data: bytes | bytearray | memoryview) -> None:
    """Write through a sibling temp file and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(memoryview(data))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


@dataclass
class LocalStorageDriver:
    root: Path

    @classmethod
    def under(cls, directory: str | Path) -> "LocalStorageDriver":
        driver = cls(Path(directory))
        driver.ensure_root()
        return driver

    def ensure_root(self) -> None:
        self.root = self.root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise ValueError(f"Storage key escapes root: {key!r}")
        return path

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        atomic_write(self._path_for(key), data)
        return key

    def get_bytes(self, key: str) -> bytes:
        return self._path_for(key).read_bytes()

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


@dataclass
class S3StorageDriver:
    bucket: str
    client: Any
    prefix: str = ""
    default_content_type: str = "application/json"
    _missing_codes: frozenset[str] = field(default=frozenset({"NoSuchKey", "NotFound", "404"}), repr=False)

    def _object_key(self, key: str) -> str:
        prefix = self.prefix.strip("/")
        return f"{prefix}/{key}" if prefix else key

    def _is_missing(self, exc: ClientError) -> bool:
        code = exc.response.get("Error", {}).get("Code")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return code in self._missing_codes or status == 404

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        self.client.put_object(
            Bucket=self.bucket,
            Key=self._object_key(key),
            Body=bytes(data),
            ContentType=content_type or self.default_content_type,
        )
        return key

    def get_bytes(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._object_key(key))
        except ClientError as exc:
            if self._is_missing(exc):
                raise FileNotFoundError(f"No stored object for key {key!r}") from exc
            raise
        return response["Body"].read()

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._object_key(key))
        except ClientError as exc:
            if self._is_missing(exc):
                return False
            raise
        return True

    def delete(self, key: str) -> None:
        # S3 treats deleting an absent key as success
        self.client.delete_object(Bucket=self.bucket, Key=self._object_key(key))


def _s3_driver(settings: Settings) -> S3StorageDriver:
    client = boto3.client(
        "s3",
        region_name=settings.INKSEAL_S3_REGION,
        endpoint_url=settings.INKSEAL_S3_ENDPOINT,
        aws_access_key_id=settings.INKSEAL_S3_ACCESS_KEY,
        aws_secret_access_key=settings.INKSEAL_S3_SECRET_KEY,
    )
    return S3StorageDriver(bucket=settings.INKSEAL_S3_BUCKET, client=client, prefix=settings.INKSEAL_S3_PREFIX or "")


def get_storage() -> StorageDriver:
    settings = get_settings()
    driver = settings.INKSEAL_STORAGE_DRIVER.lower()
    if driver == "s3":
        return _s3_driver(settings)
    if driver != "local":
        logger.warning("Unknown storage driver=%s; using local", driver)
    return LocalStorageDriver.under(settings.INKSEAL_STORAGE_LOCAL_DIR)
