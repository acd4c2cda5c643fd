"""Document API models."""

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from gateway.app.models.common import DocumentStatus

if TYPE_CHECKING:
    from gateway.app.db.repositories import DocumentRecord


class Document(BaseModel):
    """Document as returned to clients."""

    id: str
    s3_key: str | None = None
    filename: str
    file_size: int
    status: DocumentStatus
    error_message: str | None = None
    created_at: datetime
    indexed_at: datetime | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: "DocumentRecord") -> "Document":
        return cls(
            id=record.id,
            s3_key=record.s3_key,
            filename=record.filename,
            file_size=record.file_size,
            status=record.status,
            error_message=record.error_message,
            created_at=record.created_at,
            indexed_at=record.indexed_at,
            metadata=record.metadata,
        )


class UploadedDocument(Document):
    """Creation response; the only shape that carries ``upload_url``."""

    upload_url: str
    expires_in: int = Field(..., description="Seconds until upload_url expires")


class DocumentList(BaseModel):
    """Page of documents."""

    documents: list[Document]
    total: int
    limit: int
    offset: int


class DownloadURL(BaseModel):
    """Presigned download link."""

    id: str
    download_url: str
    expires_in: int
