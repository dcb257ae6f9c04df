"""
Uploaded file routes.
/api/v1/files
Upload runs in three steps: create the TEMPORARY record and commit it,
write the bytes, then record the path/url. A failure after the first step
leaves an orphan for the cleanup sweep rather than bytes without a record.
"""
import logging
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Form, Request, Response, UploadFile, status
from pydantic import ValidationError

from blogfiles.core.config import settings
from blogfiles.core.dependencies import AdminUser, CurrentUser, DBSession, OwnerScope, Storage
from blogfiles.core.exceptions import (
    BadRequestException,
    FileTooLargeException,
    NotFoundException,
    UnsupportedMediaTypeException,
    UploadFailedException,
)
from blogfiles.core.rate_limit import limiter
from blogfiles.models.uploaded_file import AttachableType
from blogfiles.schemas.uploaded_file import (
    AttachAllResult,
    AttachRequest,
    BatchAttachRequest,
    BatchDeleteRequest,
    CleanupResult,
    DeleteFilesResult,
    UploadedFileCreate,
    UploadedFileRead,
    UploadedFileUpdate,
)
from blogfiles.services.cleanup_service import orphan_cleanup_service, retention_cutoff
from blogfiles.services.file_utils import (
    build_file_url,
    compute_checksum,
    file_type_from_mime,
    generate_storage_filename,
    storage_location,
)
from blogfiles.services.uploaded_file_service import uploaded_file_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["Files"])


@router.post(
    "/upload",
    response_model=UploadedFileRead,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a file",
)
@limiter.limit(settings.RATE_LIMIT_UPLOAD)
async def upload_file(
    request: Request,
    file: UploadFile,
    current_user: CurrentUser,
    db: DBSession,
    byte_store: Storage,
    alt_text: Annotated[str | None, Form(max_length=500)] = None,
    attachable_type: Annotated[AttachableType | None, Form()] = None,
    attachable_id: Annotated[str | None, Form(max_length=100)] = None,
) -> UploadedFileRead:
    content = await file.read()
    if not content:
        raise BadRequestException("File cannot be empty")
    if len(content) > settings.max_file_size_bytes:
        raise FileTooLargeException(settings.MAX_FILE_SIZE_MB)

    mime_type = file.content_type or "application/octet-stream"
    if mime_type not in settings.ALLOWED_UPLOAD_MIME_TYPES:
        raise UnsupportedMediaTypeException(mime_type)

    original_name = file.filename or "unknown"
    filename = generate_storage_filename(original_name)
    try:
        file_in = UploadedFileCreate(
            filename=filename,
            original_name=original_name,
            alt_text=alt_text or None,
            file_type=file_type_from_mime(mime_type),
            mime_type=mime_type,
            size=len(content),
            checksum=compute_checksum(content),
            uploaded_by=current_user.id,
            attachable_type=attachable_type,
            attachable_id=attachable_id,
        )
    except ValidationError as exc:
        raise BadRequestException(f"Invalid upload: {exc.errors()[0]['msg']}") from exc

    # Step 1: the record becomes durable before any bytes exist
    record = await uploaded_file_service.upload_file(db, file_in=file_in)
    await db.commit()

    # Step 2: bytes
    try:
        path = await byte_store.write(content, storage_location(record.id, filename))
    except OSError as exc:
        logger.error("Failed to store bytes for file %s: %s", record.id, exc)
        raise UploadFailedException("Failed to store file content") from exc

    # Step 3: location
    updated = await uploaded_file_service.update_file_path_and_url(
        db, record.id, path=path, url=build_file_url(record.id)
    )
    if updated is None:
        raise UploadFailedException("Failed to update file record")

    return UploadedFileRead.model_validate(updated)


@router.get(
    "/orphaned",
    response_model=list[UploadedFileRead],
    summary="List the current user's unattached temporary uploads",
)
async def list_orphaned_files(
    current_user: CurrentUser,
    db: DBSession,
) -> list[UploadedFileRead]:
    files = await uploaded_file_service.find_orphaned_files(db, owner_id=current_user.id)
    return [UploadedFileRead.model_validate(f) for f in files]


@router.delete(
    "/orphaned",
    response_model=CleanupResult,
    summary="Archive orphaned uploads older than the retention window (admin)",
)
async def cleanup_orphaned_files(
    admin: AdminUser,
    db: DBSession,
    byte_store: Storage,
) -> CleanupResult:
    return await orphan_cleanup_service.sweep(
        db, byte_store=byte_store, older_than=retention_cutoff()
    )


@router.get(
    "/entities/{attachable_type}/{attachable_id}",
    response_model=list[UploadedFileRead],
    summary="List live files attached to an entity",
)
async def list_entity_files(
    attachable_type: AttachableType,
    attachable_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> list[UploadedFileRead]:
    files = await uploaded_file_service.get_files_by_entity(
        db, attachable_type=attachable_type, attachable_id=attachable_id
    )
    return [UploadedFileRead.model_validate(f) for f in files]


@router.post(
    "/attach",
    response_model=AttachAllResult,
    summary="Attach several of the current user's files to one entity",
)
async def attach_files(
    payload: BatchAttachRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> AttachAllResult:
    return await uploaded_file_service.attach_all_to_entity(
        db,
        payload.file_ids,
        attachable_type=payload.attachable_type,
        attachable_id=payload.attachable_id,
        owner_id=current_user.id,
    )


@router.post(
    "/batch-delete",
    response_model=DeleteFilesResult,
    summary="Archive several files",
)
async def delete_files(
    payload: BatchDeleteRequest,
    owner_scope: OwnerScope,
    db: DBSession,
) -> DeleteFilesResult:
    return await uploaded_file_service.delete_files(
        db, payload.file_ids, owner_id=owner_scope
    )


@router.get(
    "/{file_id}",
    response_model=UploadedFileRead,
    summary="Get file metadata",
)
async def get_file(
    file_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> UploadedFileRead:
    record = await uploaded_file_service.find_file(db, file_id)
    if record is None:
        raise NotFoundException("File", file_id)
    return UploadedFileRead.model_validate(record)


@router.get(
    "/{file_id}/content",
    response_class=Response,
    summary="Serve file content",
)
async def get_file_content(
    file_id: str,
    request: Request,
    db: DBSession,
    byte_store: Storage,
) -> Response:
    record = await uploaded_file_service.find_file(db, file_id)
    if record is None or record.is_archived:
        raise NotFoundException("File", file_id)

    headers = {
        "Cache-Control": "public, max-age=31536000",
        "ETag": f'"{record.checksum}"',
        "Content-Disposition": f"inline; filename*=UTF-8''{quote(record.original_name)}",
        "X-Frame-Options": "SAMEORIGIN",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "X-Content-Type-Options": "nosniff",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET",
        "Cross-Origin-Resource-Policy": "cross-origin",
    }

    if_none_match = request.headers.get("if-none-match")
    if if_none_match and record.checksum in if_none_match:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    try:
        content = await byte_store.read(storage_location(record.id, record.filename))
    except FileNotFoundError:
        logger.warning("Content missing for file %s", record.id)
        raise NotFoundException("File content", file_id)

    return Response(content=content, media_type=record.mime_type, headers=headers)


@router.patch(
    "/{file_id}",
    response_model=UploadedFileRead,
    summary="Update a file's alt text",
)
async def update_file(
    file_id: str,
    payload: UploadedFileUpdate,
    owner_scope: OwnerScope,
    db: DBSession,
) -> UploadedFileRead:
    record = await uploaded_file_service.update_alt_text(
        db, file_id, alt_text=payload.alt_text, owner_id=owner_scope
    )
    if record is None:
        raise NotFoundException("File", file_id)
    return UploadedFileRead.model_validate(record)


@router.post(
    "/{file_id}/attach",
    response_model=UploadedFileRead,
    summary="Attach one of the current user's files to an entity",
)
async def attach_file(
    file_id: str,
    payload: AttachRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> UploadedFileRead:
    record = await uploaded_file_service.attach_to_entity(
        db,
        file_id,
        attachable_type=payload.attachable_type,
        attachable_id=payload.attachable_id,
        owner_id=current_user.id,
    )
    if record is None:
        raise NotFoundException("File", file_id)
    return UploadedFileRead.model_validate(record)


@router.post(
    "/{file_id}/detach",
    response_model=UploadedFileRead,
    summary="Detach a file from its entity",
)
async def detach_file(
    file_id: str,
    owner_scope: OwnerScope,
    db: DBSession,
) -> UploadedFileRead:
    record = await uploaded_file_service.detach_file(
        db, file_id, owner_id=owner_scope
    )
    if record is None:
        raise NotFoundException("File", file_id)
    return UploadedFileRead.model_validate(record)
