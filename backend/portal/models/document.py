"""Committee document model."""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from portal.models.types import UTCDateTime, utcnow


class DocumentState(str, Enum):
    """Visibility state of a document."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    DELETED = "deleted"


class Document(SQLModel, table=True):
    """A file in a committee's document library.

    ``filename`` is relative to the documents base directory and is always
    ``{committee_id}/{prefix}_{sanitized}{ext}``. While the document is
    deleted the bytes live under ``{committee_id}/.trash/`` instead.
    """

    __tablename__ = "documents"

    id: int | None = Field(default=None, primary_key=True)
    committee_id: int = Field(foreign_key="committees.id", index=True)
    title: str
    filename: str
    mime_type: str
    file_size: int
    state: DocumentState = Field(default=DocumentState.DRAFT, index=True)
    uploaded_by: int = Field(foreign_key="users.id")
    uploaded_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    deleted_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    deleted_by: int | None = Field(default=None)

    @property
    def published(self) -> bool:
        return self.state == DocumentState.PUBLISHED

    @property
    def archived(self) -> bool:
        return self.state == DocumentState.ARCHIVED

    @property
    def deleted(self) -> bool:
        return self.state == DocumentState.DELETED


class DocumentRead(SQLModel):
    """Schema for reading a document."""

    id: int
    committee_id: int
    title: str
    filename: str
    mime_type: str
    file_size: int
    state: DocumentState
    published: bool
    archived: bool
    deleted: bool
    uploaded_by: int
    uploaded_at: datetime
    deleted_at: datetime | None
    deleted_by: int | None

    @classmethod
    def from_document(cls, document: Document) -> "DocumentRead":
        return cls(
            id=document.id,
            committee_id=document.committee_id,
            title=document.title,
            filename=document.filename,
            mime_type=document.mime_type,
            file_size=document.file_size,
            state=document.state,
            published=document.published,
            archived=document.archived,
            deleted=document.deleted,
            uploaded_by=document.uploaded_by,
            uploaded_at=document.uploaded_at,
            deleted_at=document.deleted_at,
            deleted_by=document.deleted_by,
        )


class DocumentStateChange(SQLModel):
    """Request body for publish/archive."""

    action: str
