"""Content-addressed object storage backends for release artifacts."""

from __future__ import annotations

import hashlib
import io
import logging
import os
from functools import lru_cache
from typing import Protocol

import urllib3
from minio import Minio
from minio.error import S3Error

from .errors import IngestError, Unavailable

# purpose: centralize object storage reads and writes for artifact payloads
# status: active

logger = logging.getLogger(__name__)


def content_key(sha256: str) -> str:
    """Return the storage key for a payload with the given SHA-256 hex digest."""

    return f"artifacts/{sha256[:2]}/{sha256}"


class ObjectStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str: ...

    def get(self, key: str) -> bytes: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def url_for(self, key: str) -> str: ...


class LocalObjectStore:
    """Store payloads below a local directory, one file per key."""

    def __init__(self, root: str, base_url: str | None = None) -> None:
        self.root = root
        self.base_url = base_url.rstrip("/") if base_url else None
        os.makedirs(root, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.root, *key.split("/"))

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            tmp_path = f"{path}.partial"
            with open(tmp_path, "wb") as handle:
                handle.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            logger.exception("Writing %s to %s failed", key, self.root)
            raise IngestError("storage", f"Could not store artifact: {exc.strerror or exc}") from exc
        return self.url_for(key)

    def get(self, key: str) -> bytes:
        with open(self._path(key), "rb") as handle:
            return handle.read()

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def exists(self, key: str) -> bool:
        return os.path.exists(self._path(key))

    def url_for(self, key: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{key}"
        return self._path(key)


class MinioObjectStore:
    """Store payloads in an S3 compatible bucket."""

    def __init__(self, client: Minio, bucket: str, base_url: str | None = None) -> None:
        self.client = client
        self.bucket = bucket
        self.base_url = base_url.rstrip("/") if base_url else None

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        try:
            self.client.put_object(
                self.bucket,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as exc:
            logger.exception("Uploading %s to bucket %s failed", key, self.bucket)
            raise IngestError("storage", f"Object store refused artifact: {exc.code}") from exc
        except urllib3.exceptions.HTTPError as exc:
            raise Unavailable("Object store unreachable") from exc
        return self.url_for(key)

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(self.bucket, key)
        except S3Error as exc:
            if exc.code == "NoSuchKey":
                raise FileNotFoundError(key) from exc
            raise
        except urllib3.exceptions.HTTPError as exc:
            raise Unavailable("Object store unreachable") from exc
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def delete(self, key: str) -> None:
        try:
            self.client.remove_object(self.bucket, key)
        except S3Error as exc:
            raise IngestError("storage", f"Object store refused delete: {exc.code}") from exc
        except urllib3.exceptions.HTTPError as exc:
            raise Unavailable("Object store unreachable") from exc

    def exists(self, key: str) -> bool:
        try:
            self.client.stat_object(self.bucket, key)
        except S3Error as exc:
            if exc.code in {"NoSuchKey", "NoSuchObject", "NotFound"}:
                return False
            raise
        except urllib3.exceptions.HTTPError as exc:
            raise Unavailable("Object store unreachable") from exc
        return True

    def url_for(self, key: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{key}"
        return f"s3://{self.bucket}/{key}"


def _build_minio_store() -> MinioObjectStore | None:
    endpoint = os.getenv("MINIO_ENDPOINT", "").strip()
    access_key = os.getenv("MINIO_ACCESS_KEY")
    secret_key = os.getenv("MINIO_SECRET_KEY")
    bucket = os.getenv("MINIO_BUCKET", "artifacts")
    if not endpoint or not access_key or not secret_key:
        return None
    client = Minio(
        endpoint.removeprefix("https://").removeprefix("http://"),
        access_key=access_key,
        secret_key=secret_key,
        secure=endpoint.startswith("https"),
    )
    if not client.bucket_exists(bucket):
        client.make_bucket(bucket)
    return MinioObjectStore(client, bucket, os.getenv("ARTIFACT_BASE_URL") or None)


@lru_cache(maxsize=1)
def _configured_store() -> ObjectStore:
    store = _build_minio_store()
    if store is not None:
        return store
    return LocalObjectStore(os.getenv("UPLOAD_DIR", "uploaded_files"), os.getenv("ARTIFACT_BASE_URL") or None)


def get_object_store() -> ObjectStore:
    """FastAPI dependency returning the configured object store."""

    return _configured_store()


def validate_checksum(store: ObjectStore, key: str, expected_checksum: str, algorithm: str = "sha256") -> bool:
    """Verify a stored payload by recomputing its checksum."""

    hasher = hashlib.new(algorithm)
    hasher.update(store.get(key))
    return hasher.hexdigest() == expected_checksum
