"""Document state transition and download endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import FileResponse

from portal.core.deps import Caps, Context, DbSession, VerifiedUser
from portal.core.errors import ValidationError
from portal.models import DocumentRead, DocumentStateChange
from portal.schemas.auth import MessageResponse
from portal.services.audit import AuditService
from portal.services.documents import CONTENT_TYPES, DocumentService

router = APIRouter(prefix="/documents")


@router.patch("/{document_id}", response_model=DocumentRead)
async def change_state(
    document_id: int,
    change: DocumentStateChange,
    caps: Caps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> DocumentRead:
    """Publish or archive a document."""
    service = DocumentService(session)
    if change.action == "publish":
        document = await service.publish(document_id, current_user, caps, context)
    elif change.action == "archive":
        document = await service.archive(document_id, current_user, caps, context)
    else:
        raise ValidationError('Invalid action. Use "publish" or "archive"')
    return DocumentRead.from_document(document)


@router.delete("/{document_id}", response_model=DocumentRead)
async def soft_delete(
    document_id: int,
    caps: Caps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> DocumentRead:
    """Move a document to its committee's trash."""
    document = await DocumentService(session).soft_delete(document_id, current_user, caps, context)
    return DocumentRead.from_document(document)


@router.post("/{document_id}/restore", response_model=DocumentRead)
async def restore(
    document_id: int,
    caps: Caps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> DocumentRead:
    """Restore a trashed document as archived."""
    document = await DocumentService(session).restore(document_id, current_user, caps, context)
    return DocumentRead.from_document(document)


@router.delete(
    "/{document_id}/permanent",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
)
async def permanently_delete(
    document_id: int,
    caps: Caps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> MessageResponse:
    await DocumentService(session).permanently_delete(document_id, current_user, caps, context)
    return MessageResponse(message="Document permanently deleted")


@router.get("/{document_id}/download")
async def download(
    document_id: int,
    caps: Caps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> FileResponse:
    """Stream a document. Drafts are served to committee managers only."""
    document, path = await DocumentService(session).open_for_download(document_id, caps)
    await AuditService(session).log(
        "document_downloaded",
        user=current_user,
        entity_type="Document",
        entity_id=document.id,
        details={"committeeId": document.committee_id, "title": document.title},
        context=context,
    )
    return FileResponse(
        path,
        media_type=CONTENT_TYPES.get(path.suffix.lower(), document.mime_type),
        filename=path.name,
    )
