"""Committee document lifecycle.

State is a single enum column. Transitions::

    draft ──publish──> published ──archive──> archived
      │                   │  ^                  │
      │                   │  └────publish───────┘
      └──────delete───────┴──────delete─────────┴──> deleted
    deleted ──restore──> archived
    deleted ──permanently_delete──> (row and file removed)

Every successful transition records exactly one audit event.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.config import get_settings
from portal.core.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from portal.models import Committee, Document, DocumentState, User
from portal.models.types import utcnow
from portal.services.audit import AuditService, RequestContext
from portal.services.filesystem import DocumentStorage, PathValidationError, build_stored_filename
from portal.services.permissions import Capabilities
from portal.services.system_config import ConfigService

logger = logging.getLogger(__name__)

MIME_EXTENSIONS: dict[str, set[str]] = {
    "application/pdf": {".pdf"},
    "image/jpeg": {".jpg", ".jpeg"},
    "image/png": {".png"},
}

CONTENT_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

DEFAULT_MAX_SIZE_MB = 25


class DocumentAction(str, Enum):
    """State-changing document operations."""

    PUBLISH = "publish"
    ARCHIVE = "archive"
    DELETE = "delete"
    RESTORE = "restore"


# action -> (allowed source states, target state, audit action)
TRANSITIONS: dict[DocumentAction, tuple[frozenset[DocumentState], DocumentState, str]] = {
    DocumentAction.PUBLISH: (
        frozenset({DocumentState.DRAFT, DocumentState.ARCHIVED}),
        DocumentState.PUBLISHED,
        "document_published",
    ),
    DocumentAction.ARCHIVE: (
        frozenset({DocumentState.PUBLISHED}),
        DocumentState.ARCHIVED,
        "document_archived",
    ),
    DocumentAction.DELETE: (
        frozenset({DocumentState.DRAFT, DocumentState.PUBLISHED, DocumentState.ARCHIVED}),
        DocumentState.DELETED,
        "document_deleted",
    ),
    DocumentAction.RESTORE: (
        frozenset({DocumentState.DELETED}),
        DocumentState.ARCHIVED,
        "document_restored",
    ),
}


def next_state(current: DocumentState, action: DocumentAction) -> DocumentState:
    """Target state for ``action`` applied to ``current``.

    Raises:
        InvalidStateError: If the action is not legal from ``current``
    """
    allowed, target, _ = TRANSITIONS[action]
    if current not in allowed:
        raise InvalidStateError(f"Cannot {action.value} a document that is {current.value}")
    return target


@dataclass
class UploadedFile:
    """Incoming file bytes with client-declared metadata."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class DocumentService:
    """Service for committee document management."""

    def __init__(
        self,
        session: AsyncSession,
        storage: DocumentStorage | None = None,
        audit: AuditService | None = None,
    ):
        self.session = session
        self.storage = storage or DocumentStorage(get_settings().documents_dir)
        self.audit = audit or AuditService(session)

    async def get_committee(self, committee_id: int) -> Committee:
        committee = await self.session.get(Committee, committee_id)
        if committee is None:
            raise NotFoundError("Committee not found")
        return committee

    async def get_document(self, document_id: int) -> Document:
        document = await self.session.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return document

    def _require_manager(self, caps: Capabilities, committee_id: int) -> None:
        if not caps.can_manage_committee(committee_id):
            raise AuthorizationError("Publisher role and committee membership required")

    async def upload(
        self,
        committee_id: int,
        title: str | None,
        file: UploadedFile | None,
        actor: User,
        caps: Capabilities,
        context: RequestContext | None = None,
    ) -> Document:
        """Validate and store a new document in draft state.

        Raises:
            ValidationError: Missing file or title, disallowed type or
                extension, or file larger than the configured maximum
        """
        self._require_manager(caps, committee_id)
        await self.get_committee(committee_id)

        if file is None or not file.filename:
            raise ValidationError("No file provided")
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        allowed_extensions = MIME_EXTENSIONS.get(file.content_type)
        if allowed_extensions is None:
            raise ValidationError("Invalid file type. Allowed types: PDF, JPG, PNG")
        extension = Path(file.filename).suffix.lower()
        if extension not in allowed_extensions:
            raise ValidationError(
                f"Invalid file extension '{extension}' for {file.content_type}. "
                f"Allowed: {', '.join(sorted(allowed_extensions))}"
            )

        max_size_mb = await ConfigService(self.session).get_int(
            "max_upload_size_mb", DEFAULT_MAX_SIZE_MB
        )
        if file.size > max_size_mb * 1024 * 1024:
            raise ValidationError(f"File too large. Maximum size is {max_size_mb} MB")

        stored_name = build_stored_filename(file.filename, extension)
        relative_path = self.storage.write(committee_id, stored_name, file.content)

        document = Document(
            committee_id=committee_id,
            title=title,
            filename=relative_path,
            mime_type=file.content_type,
            file_size=file.size,
            state=DocumentState.DRAFT,
            uploaded_by=actor.id,
        )
        self.session.add(document)
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            self.storage.remove(relative_path)
            raise
        await self.session.refresh(document)

        await self.audit.log(
            "document_uploaded",
            user=actor,
            entity_type="Document",
            entity_id=document.id,
            details={
                "committeeId": committee_id,
                "title": title,
                "filename": relative_path,
                "fileSize": file.size,
                "mimeType": file.content_type,
            },
            context=context,
        )
        return document

    async def _transition(
        self,
        document_id: int,
        action: DocumentAction,
        actor: User,
        caps: Capabilities,
        context: RequestContext | None,
    ) -> Document:
        document = await self.get_document(document_id)
        self._require_manager(caps, document.committee_id)
        previous = document.state
        target = next_state(previous, action)
        _, _, audit_action = TRANSITIONS[action]
        details = {
            "committeeId": document.committee_id,
            "title": document.title,
            "fromState": previous.value,
            "toState": target.value,
        }

        if action == DocumentAction.DELETE:
            details["fileMoved"] = self.storage.move_to_trash(
                document.committee_id, document.filename
            )
            document.deleted_at = utcnow()
            document.deleted_by = actor.id
        elif action == DocumentAction.RESTORE:
            details["fileMoved"] = self.storage.restore_from_trash(
                document.committee_id, document.filename
            )
            document.deleted_at = None
            document.deleted_by = None

        document.state = target
        self.session.add(document)
        await self.session.commit()
        await self.session.refresh(document)

        await self.audit.log(
            audit_action,
            user=actor,
            entity_type="Document",
            entity_id=document.id,
            details=details,
            context=context,
        )
        return document

    async def publish(self, document_id: int, actor: User, caps: Capabilities,
                      context: RequestContext | None = None) -> Document:
        return await self._transition(document_id, DocumentAction.PUBLISH, actor, caps, context)

    async def archive(self, document_id: int, actor: User, caps: Capabilities,
                      context: RequestContext | None = None) -> Document:
        return await self._transition(document_id, DocumentAction.ARCHIVE, actor, caps, context)

    async def soft_delete(self, document_id: int, actor: User, caps: Capabilities,
                          context: RequestContext | None = None) -> Document:
        """Move the file to the committee trash and mark the document deleted."""
        return await self._transition(document_id, DocumentAction.DELETE, actor, caps, context)

    async def restore(self, document_id: int, actor: User, caps: Capabilities,
                      context: RequestContext | None = None) -> Document:
        """Bring a deleted document back as archived, never published."""
        return await self._transition(document_id, DocumentAction.RESTORE, actor, caps, context)

    async def permanently_delete(
        self,
        document_id: int,
        actor: User,
        caps: Capabilities,
        context: RequestContext | None = None,
    ) -> None:
        """Remove a trashed document's file and row.

        Raises:
            InvalidStateError: If the document is not in the trash
        """
        document = await self.get_document(document_id)
        self._require_manager(caps, document.committee_id)
        if document.state != DocumentState.DELETED:
            raise InvalidStateError("Document must be in trash before permanently deleting")

        file_removed = self.storage.unlink_trashed(document.committee_id, document.filename)
        details = {
            "committeeId": document.committee_id,
            "title": document.title,
            "filename": document.filename,
            "fileRemoved": file_removed,
        }
        await self.session.delete(document)
        await self.session.commit()

        await self.audit.log(
            "document_permanently_deleted",
            user=actor,
            entity_type="Document",
            entity_id=document_id,
            details=details,
            context=context,
        )

    async def list_for_committee(self, committee_id: int, caps: Capabilities) -> list[Document]:
        """Managers see every state; everyone else sees published documents only."""
        await self.get_committee(committee_id)
        query = select(Document).where(Document.committee_id == committee_id)
        if not caps.can_manage_committee(committee_id):
            query = query.where(Document.state == DocumentState.PUBLISHED)
        query = query.order_by(Document.uploaded_at.desc(), Document.id.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def visible_committees(self, caps: Capabilities) -> list[Committee]:
        """Committees listed for the caller, ordered by name."""
        published = await self.session.execute(
            select(Document.committee_id)
            .where(Document.state == DocumentState.PUBLISHED)
            .distinct()
        )
        with_published = set(published.scalars().all())

        result = await self.session.execute(select(Committee).order_by(Committee.name))
        return [
            committee
            for committee in result.scalars().all()
            if caps.can_view_committee(committee.id, committee.id in with_published)
        ]

    async def open_for_download(self, document_id: int, caps: Capabilities) -> tuple[Document, Path]:
        """Resolve a readable file for the caller.

        Deleted documents are never served. Drafts are served only to
        committee managers.
        """
        document = await self.get_document(document_id)
        if document.state == DocumentState.DELETED:
            raise NotFoundError("Document not found")
        if document.state == DocumentState.DRAFT and not caps.can_manage_committee(
            document.committee_id
        ):
            raise NotFoundError("Document not found")

        try:
            path = self.storage.resolve(document.filename)
        except PathValidationError:
            raise ValidationError("Invalid document path")
        if not path.is_file():
            raise NotFoundError("File not found on disk")
        return document, path
