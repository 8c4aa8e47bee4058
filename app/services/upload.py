"""
Upload service.

Validates incoming images, writes them to the storage backend under the
folder of their content kind and deletes replaced files on a best effort
basis. Also proxies S3 multipart uploads for large files.
"""

import asyncio
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from app.core.config import settings
from app.core.errors import BadRequestError
from app.core.retry import is_transient_s3_error, retry_with_backoff
from app.core.storage import (
    MultipartNotSupported,
    Storage,
    UPLOAD_FOLDERS,
    build_key,
    get_storage,
)

logger = logging.getLogger(__name__)


class UploadService:
    """
    Store and remove media files.

    Example:
        uploads = UploadService()
        key = await uploads.save_image(file, "posts")
        url = uploads.url_for(key)
    """

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage or get_storage()

    def url_for(self, key: Optional[str]) -> Optional[str]:
        if not key:
            return None
        return self.storage.url_for(key)

    async def read_image(self, file: UploadFile) -> bytes:
        """
        Read an uploaded image after validating its type and size.

        Raises:
            BadRequestError: Not an image, empty, or above the size limit
        """
        content_type = (file.content_type or "").lower()
        if not content_type.startswith("image/"):
            raise BadRequestError("Only image uploads are allowed")
        data = await file.read()
        if not data:
            raise BadRequestError("Uploaded file is empty")
        if len(data) > settings.max_image_upload_bytes:
            limit_mb = settings.max_image_upload_bytes // (1024 * 1024)
            raise BadRequestError(f"Image exceeds the {limit_mb} MB limit")
        return data

    async def save_bytes(
        self,
        data: bytes,
        folder: str,
        filename: Optional[str],
        content_type: Optional[str] = None,
    ) -> str:
        if folder not in UPLOAD_FOLDERS:
            raise BadRequestError(f"Unknown upload folder: {folder}")
        key = build_key(folder, filename)
        await self._put(key, data, content_type)
        logger.info("File stored", extra={"key": key, "size": len(data)})
        return key

    @retry_with_backoff(exceptions=(ClientError, BotoCoreError), should_retry=is_transient_s3_error)
    async def _put(self, key: str, data: bytes, content_type: Optional[str]) -> None:
        await asyncio.to_thread(self.storage.put_bytes, key, data, content_type=content_type)

    async def save_image(self, file: UploadFile, folder: str) -> str:
        data = await self.read_image(file)
        return await self.save_bytes(data, folder, file.filename, file.content_type)

    async def copy(self, source_key: str, folder: str) -> str:
        """Copy an existing object into another folder (e.g. a gallery cover)."""
        key = build_key(folder, source_key)
        await asyncio.to_thread(self.storage.copy, source_key, key)
        return key

    async def delete_quietly(self, key: Optional[str]) -> bool:
        """
        Best effort delete: failures are logged and never raised.
        """
        if not key:
            return True
        try:
            deleted = await asyncio.to_thread(self.storage.delete, key)
        except (ClientError, BotoCoreError, OSError) as exc:
            logger.warning("File cleanup failed", extra={"key": key, "error": str(exc)})
            return False
        if not deleted:
            logger.warning("File cleanup failed", extra={"key": key})
        return deleted

    async def delete_many_quietly(self, keys: list[Optional[str]]) -> None:
        for key in keys:
            await self.delete_quietly(key)

    # Multipart proxy
    async def _multipart(self, func, *args) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except MultipartNotSupported as exc:
            raise BadRequestError(str(exc))
        except ClientError as exc:
            raise BadRequestError(f"Multipart upload failed: {exc.response.get('Error', {}).get('Message', str(exc))}")

    async def initiate_multipart(self, folder: str, filename: str, content_type: Optional[str]) -> dict:
        if folder not in UPLOAD_FOLDERS:
            raise BadRequestError(f"Unknown upload folder: {folder}")
        key = build_key(folder, filename)
        upload_id = await self._multipart(self.storage.create_multipart_upload, key, content_type)
        return {"key": key, "upload_id": upload_id}

    async def presign_part(self, key: str, upload_id: str, part_number: int, expires_in: Optional[int] = None) -> dict:
        if part_number < 1 or part_number > 10000:
            raise BadRequestError("part_number must be between 1 and 10000")
        expires = expires_in or settings.s3_presign_expires_seconds
        url = await self._multipart(self.storage.presign_upload_part, key, upload_id, part_number, expires)
        return {"url": url, "part_number": part_number, "expires_in": expires}

    async def list_parts(self, key: str, upload_id: str) -> list[dict]:
        return await self._multipart(self.storage.list_parts, key, upload_id)

    async def complete_multipart(self, key: str, upload_id: str, parts: list[dict]) -> dict:
        if not parts:
            raise BadRequestError("At least one part is required")
        return await self._multipart(self.storage.complete_multipart_upload, key, upload_id, parts)

    async def abort_multipart(self, key: str, upload_id: str) -> None:
        await self._multipart(self.storage.abort_multipart_upload, key, upload_id)
