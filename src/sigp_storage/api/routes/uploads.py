"""Upload endpoints: request a presigned URL, confirm, inspect, download."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from sigp_storage.api.deps import Principal, get_coordinator, require_user
from sigp_storage.api.schemas.uploads import (
    ConfirmUploadRequest,
    DownloadUrlResponse,
    FileRecordResponse,
    IntentStatusResponse,
    RequestUploadRequest,
    RequestUploadResponse,
)
from sigp_storage.errors import UploadError
from sigp_storage.models import FileRecord
from sigp_storage.storage.coordinator import UploadCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(tags=["uploads"])


def _http_error(e: UploadError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def _record_response(record: FileRecord) -> FileRecordResponse:
    return FileRecordResponse(
        file_id=str(record.id),
        intent_id=record.intent_id,
        owner_id=str(record.owner_id),
        path=record.path,
        bucket=record.bucket,
        object_key=record.object_key,
        version=record.version,
        checksum=record.checksum,
        size_bytes=record.size_bytes,
        content_type=record.content_type,
        confirmed_at=record.confirmed_at,
    )


@router.post("/upload/request-url", response_model=RequestUploadResponse)
async def request_upload_url(
    body: RequestUploadRequest,
    principal: Principal = Depends(require_user),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    try:
        ticket = await coordinator.request_upload(
            owner_id=principal.id,
            target_path=body.target_path,
            declared_size=body.size,
            content_type=body.content_type,
            content_hash=body.content_hash,
        )
    except UploadError as e:
        raise _http_error(e)

    return RequestUploadResponse(
        intent_id=ticket.intent_id,
        write_url=ticket.write_url,
        expires_at=ticket.expires_at,
    )


@router.post("/upload/confirm", response_model=FileRecordResponse)
async def confirm_upload(
    body: ConfirmUploadRequest,
    principal: Principal = Depends(require_user),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    try:
        record = await coordinator.confirm_upload(
            body.intent_id,
            actual_checksum=body.checksum,
            actual_size=body.size,
            owner_id=principal.id,
        )
    except UploadError as e:
        logger.info("Confirm of %s rejected: %s", body.intent_id, e.message)
        raise _http_error(e)
    return _record_response(record)


@router.get("/upload/intents/{intent_id}", response_model=IntentStatusResponse)
async def get_intent_status(
    intent_id: str,
    principal: Principal = Depends(require_user),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    try:
        intent = await coordinator.get_intent(intent_id, owner_id=principal.id)
    except UploadError as e:
        raise _http_error(e)
    return IntentStatusResponse(
        intent_id=intent.intent_id,
        target_path=intent.target_path,
        status=intent.status.value,
        byte_size_limit=intent.byte_size_limit,
        created_at=intent.created_at,
        expires_at=intent.expires_at,
    )


@router.get("/upload/files/{file_id}/download-url", response_model=DownloadUrlResponse)
async def get_download_url(
    file_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    try:
        record, url, expires_at = await coordinator.get_download_url(file_id, principal.id)
    except UploadError as e:
        raise _http_error(e)
    return DownloadUrlResponse(file_id=str(record.id), read_url=url, expires_at=expires_at)
