"""
Blob storage backends for uploaded media.

Two implementations share one interface: a local filesystem store used in
development and tests, and an S3 store (boto3) used in production. Only the
S3 backend supports multipart uploads.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, BinaryIO, Optional

from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)

# Key prefixes per content kind
POSTS_FOLDER = "posts"
GALLERY_FOLDER = "gallery"
GALLERY_COVER_FOLDER = "gallery/cover"
PROFILE_FOLDER = "profile"
FAMILY_FOLDER = "family"
PRODUCTS_FOLDER = "products"
EVENTS_FOLDER = "events"

UPLOAD_FOLDERS = frozenset({
    POSTS_FOLDER,
    GALLERY_FOLDER,
    GALLERY_COVER_FOLDER,
    PROFILE_FOLDER,
    FAMILY_FOLDER,
    PRODUCTS_FOLDER,
    EVENTS_FOLDER,
})


class StorageError(RuntimeError):
    pass


class MultipartNotSupported(StorageError):
    pass


def build_key(folder: str, filename: Optional[str]) -> str:
    """
    Build an object key ``{folder}/{uuid}{ext}``.

    The original filename only contributes its lower-cased extension.
    """
    suffix = PurePosixPath(filename or "").suffix.lower()
    return f"{folder.strip('/')}/{uuid.uuid4()}{suffix}"


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError

    def copy(self, source_key: str, dest_key: str) -> None:
        with self.open(source_key) as fh:
            self.put_bytes(dest_key, fh.read())

    def ping(self) -> bool:
        raise NotImplementedError

    # Multipart upload proxy
    def create_multipart_upload(self, key: str, content_type: str | None = None) -> str:
        raise MultipartNotSupported("Multipart uploads require the S3 storage backend")

    def presign_upload_part(self, key: str, upload_id: str, part_number: int, expires_in: int) -> str:
        raise MultipartNotSupported("Multipart uploads require the S3 storage backend")

    def list_parts(self, key: str, upload_id: str) -> list[dict[str, Any]]:
        raise MultipartNotSupported("Multipart uploads require the S3 storage backend")

    def complete_multipart_upload(self, key: str, upload_id: str, parts: list[dict[str, Any]]) -> dict[str, Any]:
        raise MultipartNotSupported("Multipart uploads require the S3 storage backend")

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        raise MultipartNotSupported("Multipart uploads require the S3 storage backend")


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path
    base_url: str = "/media"

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        if ".." in PurePosixPath(safe_key).parts:
            raise StorageError(f"Invalid storage key: {key}")
        return self.root / safe_key

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        return self._path(key).open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink(missing_ok=True)
            return True
        except OSError as exc:
            logger.warning("Local delete failed", extra={"key": key, "error": str(exc)})
            return False

    def url_for(self, key: str) -> str:
        return f"{self.base_url.rstrip('/')}/{key.lstrip('/')}"

    def ping(self) -> bool:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root.is_dir()


@dataclass(frozen=True)
class S3Storage(Storage):
    bucket: str
    region: str
    access_key_id: str
    secret_access_key: str
    endpoint_url: Optional[str] = None

    def _client(self):
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=self.endpoint_url or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        self._client().put_object(Bucket=self.bucket, Key=key, Body=data, **extra)

    def open(self, key: str) -> BinaryIO:
        obj = self._client().get_object(Bucket=self.bucket, Key=key)
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def delete(self, key: str) -> bool:
        """
        Delete an object.

        A missing key counts as deleted. Any other failure is logged and
        reported as False so callers can continue their cleanup.
        """
        try:
            self._client().delete_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"NoSuchKey", "404"}:
                return True
            logger.warning("S3 delete failed", extra={"key": key, "error": str(exc)})
            return False
        except BotoCoreError as exc:
            logger.warning("S3 delete failed", extra={"key": key, "error": str(exc)})
            return False

    def copy(self, source_key: str, dest_key: str) -> None:
        self._client().copy_object(
            Bucket=self.bucket,
            Key=dest_key,
            CopySource={"Bucket": self.bucket, "Key": source_key},
        )

    def url_for(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def ping(self) -> bool:
        try:
            self._client().head_bucket(Bucket=self.bucket)
            return True
        except (ClientError, BotoCoreError):
            return False

    def create_multipart_upload(self, key: str, content_type: str | None = None) -> str:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        response = self._client().create_multipart_upload(Bucket=self.bucket, Key=key, **extra)
        return response["UploadId"]

    def presign_upload_part(self, key: str, upload_id: str, part_number: int, expires_in: int) -> str:
        return self._client().generate_presigned_url(
            "upload_part",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "UploadId": upload_id,
                "PartNumber": part_number,
            },
            ExpiresIn=expires_in,
        )

    def list_parts(self, key: str, upload_id: str) -> list[dict[str, Any]]:
        response = self._client().list_parts(Bucket=self.bucket, Key=key, UploadId=upload_id)
        return [
            {"part_number": p["PartNumber"], "etag": p["ETag"], "size": p.get("Size")}
            for p in response.get("Parts", [])
        ]

    def complete_multipart_upload(self, key: str, upload_id: str, parts: list[dict[str, Any]]) -> dict[str, Any]:
        ordered = sorted(parts, key=lambda p: int(p["part_number"]))
        response = self._client().complete_multipart_upload(
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [{"PartNumber": int(p["part_number"]), "ETag": p["etag"]} for p in ordered]
            },
        )
        return {"key": key, "location": response.get("Location") or self.url_for(key)}

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        self._client().abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)


def storage_from_settings() -> Storage:
    if settings.storage_backend == "s3":
        return S3Storage(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            endpoint_url=settings.s3_endpoint_url,
        )
    return LocalStorage(root=Path(settings.storage_local_root))


_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """Process-wide storage backend (FastAPI dependency)."""
    global _storage
    if _storage is None:
        _storage = storage_from_settings()
    return _storage


def set_storage(storage: Optional[Storage]) -> None:
    """Swap the process-wide backend; ``None`` resets to settings."""
    global _storage
    _storage = storage
