"""
Upload endpoints.

Direct single-file image upload plus an S3 multipart proxy for large
files: the client uploads parts straight to presigned URLs and then asks
the server to complete the upload.
"""

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from app.api.dependencies import CurrentUser, StorageBackend
from app.schemas.upload import (
    AbortMultipartRequest,
    CompleteMultipartRequest,
    MultipartInitiate,
    PresignPartRequest,
    UploadResponse,
)
from app.services.upload import UploadService

router = APIRouter()


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    current_user: CurrentUser,
    storage: StorageBackend,
    folder: str = Form(...),
    file: UploadFile = File(...),
) -> UploadResponse:
    uploads = UploadService(storage)
    key = await uploads.save_image(file, folder)
    return UploadResponse(key=key, url=uploads.url_for(key))


@router.post("/multipart/initiate", status_code=status.HTTP_201_CREATED)
async def initiate_multipart(payload: MultipartInitiate, current_user: CurrentUser, storage: StorageBackend) -> dict:
    return await UploadService(storage).initiate_multipart(payload.folder, payload.filename, payload.content_type)


@router.post("/multipart/presign")
async def presign_part(payload: PresignPartRequest, current_user: CurrentUser, storage: StorageBackend) -> dict:
    return await UploadService(storage).presign_part(
        payload.key, payload.upload_id, payload.part_number, payload.expires_in
    )


@router.get("/multipart/parts")
async def list_parts(
    current_user: CurrentUser,
    storage: StorageBackend,
    key: str = Query(...),
    upload_id: str = Query(...),
) -> dict:
    return {"parts": await UploadService(storage).list_parts(key, upload_id)}


@router.post("/multipart/complete")
async def complete_multipart(payload: CompleteMultipartRequest, current_user: CurrentUser, storage: StorageBackend) -> dict:
    uploads = UploadService(storage)
    parts = [part.model_dump() for part in payload.parts]
    result = await uploads.complete_multipart(payload.key, payload.upload_id, parts)
    return {**result, "key": payload.key, "url": uploads.url_for(payload.key)}


@router.post("/multipart/abort")
async def abort_multipart(payload: AbortMultipartRequest, current_user: CurrentUser, storage: StorageBackend) -> dict:
    await UploadService(storage).abort_multipart(payload.key, payload.upload_id)
    return {"message": "Multipart upload aborted"}
