"""Committee listing and document upload endpoints."""

from fastapi import APIRouter, File, Form, UploadFile, status

from portal.core.deps import Caps, Context, DbSession, VerifiedUser
from portal.models import CommitteeRead, DocumentRead
from portal.services.documents import DocumentService, UploadedFile

router = APIRouter(prefix="/committees")


@router.get("", response_model=list[CommitteeRead])
async def list_committees(caps: Caps, session: DbSession) -> list[CommitteeRead]:
    """Committees the caller belongs to, manages, or that have published documents."""
    committees = await DocumentService(session).visible_committees(caps)
    return [CommitteeRead.model_validate(committee) for committee in committees]


@router.get("/{committee_id}/documents", response_model=list[DocumentRead])
async def list_documents(committee_id: int, caps: Caps, session: DbSession) -> list[DocumentRead]:
    documents = await DocumentService(session).list_for_committee(committee_id, caps)
    return [DocumentRead.from_document(document) for document in documents]


@router.post(
    "/{committee_id}/documents",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    committee_id: int,
    caps: Caps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
    title: str | None = Form(None),
    file: UploadFile | None = File(None),
) -> DocumentRead:
    """Upload a PDF, JPG or PNG as a draft."""
    uploaded = None
    if file is not None:
        uploaded = UploadedFile(
            filename=file.filename or "",
            content_type=file.content_type or "",
            content=await file.read(),
        )
    document = await DocumentService(session).upload(
        committee_id, title, uploaded, current_user, caps, context
    )
    return DocumentRead.from_document(document)
