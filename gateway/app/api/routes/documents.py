"""Document endpoints - upload, status, download, cancel and delete."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from gateway.app.api.auth import Principal, get_current_principal
from gateway.app.api.deps import get_documents
from gateway.app.models.common import DocumentStatus
from gateway.app.models.documents import Document, DocumentList, DownloadURL, UploadedDocument
from gateway.app.orchestration.documents import DocumentLifecycleOrchestrator
from gateway.app.orchestration.paging import DEFAULT_LIMIT, MAX_LIMIT

router = APIRouter(prefix="/documents", tags=["documents"])

Documents = Annotated[DocumentLifecycleOrchestrator, Depends(get_documents)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


class CreateDocumentRequest(BaseModel):
    """Request body for POST /documents."""

    filename: str = Field(..., min_length=1, description="Client filename")
    file_size: int = Field(..., gt=0, description="Size in bytes")
    content_type: str = Field("application/octet-stream", min_length=1)
    metadata: dict[str, str] = Field(default_factory=dict)


class IndexingResultRequest(BaseModel):
    """Request body for POST /documents/{id}/indexing-result."""

    status: DocumentStatus
    error_message: str | None = None


@router.post("", response_model=UploadedDocument, status_code=status.HTTP_201_CREATED)
async def create_document(
    request: CreateDocumentRequest,
    documents: Documents,
    _: CurrentPrincipal,
) -> UploadedDocument:
    """Begin an upload; the client PUTs the file to ``upload_url``."""
    ticket = await documents.begin_upload(
        filename=request.filename,
        file_size=request.file_size,
        content_type=request.content_type,
        metadata=request.metadata,
    )
    return UploadedDocument(
        **Document.from_record(ticket.document).model_dump(),
        upload_url=ticket.upload_url,
        expires_in=ticket.expires_in,
    )


@router.get("", response_model=DocumentList)
async def list_documents(
    documents: Documents,
    _: CurrentPrincipal,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIMIT,
    offset: Annotated[int, Query(ge=0)] = 0,
    status_filter: Annotated[DocumentStatus | None, Query(alias="status")] = None,
) -> DocumentList:
    """List documents newest first."""
    records, total = await documents.list_documents(limit, offset, status_filter)
    return DocumentList(
        documents=[Document.from_record(r) for r in records],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{document_id}", response_model=Document)
async def get_document(document_id: str, documents: Documents, _: CurrentPrincipal) -> Document:
    """Get a document and its current status."""
    return Document.from_record(await documents.get_document(document_id))


@router.get("/{document_id}/download", response_model=DownloadURL)
async def get_download_url(
    document_id: str, documents: Documents, _: CurrentPrincipal
) -> DownloadURL:
    """Presigned URL for downloading the stored file."""
    url, expires_in = await documents.get_download_url(document_id)
    return DownloadURL(id=document_id, download_url=url, expires_in=expires_in)


@router.post("/{document_id}/complete", response_model=Document)
async def complete_upload(
    document_id: str, documents: Documents, _: CurrentPrincipal
) -> Document:
    """Signal that the client finished uploading."""
    return Document.from_record(await documents.complete_upload(document_id))


@router.post("/{document_id}/cancel", response_model=Document)
async def cancel_upload(document_id: str, documents: Documents, _: CurrentPrincipal) -> Document:
    """Cancel an in-flight upload."""
    return Document.from_record(await documents.cancel(document_id))


@router.post("/{document_id}/indexing-result", response_model=Document)
async def record_indexing_result(
    document_id: str,
    request: IndexingResultRequest,
    documents: Documents,
    _: CurrentPrincipal,
) -> Document:
    """Record the indexing outcome reported by a worker."""
    record = await documents.record_indexing_result(
        document_id, request.status, request.error_message
    )
    return Document.from_record(record)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(document_id: str, documents: Documents, _: CurrentPrincipal) -> Response:
    """Delete a document, its stored file and its vectors."""
    await documents.delete(document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
