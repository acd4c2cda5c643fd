"""Document lifecycle orchestration.

Coordinates the record store, object store, workflow engine and vector index
for the upload -> index -> delete lifecycle of a document. Status changes
always go through ``DocumentRepository.transition_document`` so two
concurrent callers cannot both win the same transition.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath

from gateway.app.db.repositories import DocumentRecord, DocumentRepository, RecordStoreError
from gateway.app.errors import (
    NotFoundError,
    PartialFailureError,
    PersistenceError,
    StorageUnavailableError,
    UpstreamUnavailableError,
    ValidationError,
)
from gateway.app.models.common import DocumentStatus, WorkflowPurpose, WorkflowState
from gateway.app.orchestration.paging import check_page
from gateway.app.services.object_store import ObjectStore, ObjectStoreError
from gateway.app.services.vector_index import VectorIndex, VectorIndexError
from gateway.app.services.workflows import (
    UPLOAD_COMPLETE_SIGNAL,
    WorkflowEngine,
    WorkflowError,
    WorkflowNotRunningError,
    workflow_id,
)
from gateway.app.utils.logging import DeletionLogger
from gateway.app.utils.metrics import PrometheusGatewayMetrics

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = frozenset({DocumentStatus.pending, DocumentStatus.indexing})
TERMINAL_STATUSES = frozenset({DocumentStatus.complete, DocumentStatus.failed})

MAX_FILENAME_LENGTH = 255
DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024

_WORKFLOW_FAILURE_STATES = frozenset(
    {
        WorkflowState.failed,
        WorkflowState.cancelled,
        WorkflowState.terminated,
        WorkflowState.timed_out,
    }
)


def storage_key(document_id: str, filename: str) -> str:
    """Object store key for a document's file."""
    return f"documents/{document_id}/{filename}"


def clean_filename(filename: str) -> str:
    """Strip any directory part from a client-supplied filename.

    Raises:
        ValidationError: If nothing usable remains
    """
    name = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
    if not name or name in (".", ".."):
        raise ValidationError("filename is required", details={"filename": filename})
    if len(name) > MAX_FILENAME_LENGTH:
        raise ValidationError(
            f"filename must be at most {MAX_FILENAME_LENGTH} characters",
            details={"filename": name[:64]},
        )
    return name


@dataclass
class UploadTicket:
    """Result of beginning an upload."""

    document: DocumentRecord
    upload_url: str
    expires_in: int


class DocumentLifecycleOrchestrator:
    """Drives documents through pending -> indexing -> complete | failed."""

    def __init__(
        self,
        records: DocumentRepository,
        object_store: ObjectStore,
        workflows: WorkflowEngine,
        vector_index: VectorIndex,
        *,
        upload_url_ttl_seconds: int = 900,
        download_url_ttl_seconds: int = 900,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        metrics: PrometheusGatewayMetrics | None = None,
    ) -> None:
        self._records = records
        self._object_store = object_store
        self._workflows = workflows
        self._vector_index = vector_index
        self._upload_url_ttl = upload_url_ttl_seconds
        self._download_url_ttl = download_url_ttl_seconds
        self._max_upload_bytes = max_upload_bytes
        self._metrics = metrics or PrometheusGatewayMetrics()
        self._deletion_log = DeletionLogger(logger)

    async def begin_upload(
        self,
        filename: str,
        file_size: int,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadTicket:
        """Register a new document and hand back a presigned upload URL.

        Steps: validate, presign, persist a pending record, start the upload
        workflow. If the workflow cannot be started the pending record is
        removed again so no record is left without a driving workflow.

        Args:
            filename: Client filename; directory parts are dropped
            file_size: Declared size in bytes
            content_type: MIME type the client will upload with
            metadata: Optional string map stored on the record

        Returns:
            UploadTicket with the pending record and the PUT URL

        Raises:
            ValidationError: On bad input, before any side effect
            StorageUnavailableError: If no upload URL could be issued
            PersistenceError: If the record could not be written
            UpstreamUnavailableError: If the workflow could not be started
            PartialFailureError: If the workflow failed to start and the
                pending record could not be removed
        """
        name = clean_filename(filename)
        if file_size <= 0:
            raise ValidationError("file_size must be positive", details={"file_size": file_size})
        if file_size > self._max_upload_bytes:
            raise ValidationError(
                f"file_size exceeds the {self._max_upload_bytes} byte limit",
                details={"file_size": file_size},
            )
        if not content_type or not content_type.strip():
            raise ValidationError("content_type is required")

        document_id = str(uuid.uuid4())
        key = storage_key(document_id, name)

        try:
            upload_url = await self._object_store.presign_upload(
                key, self._upload_url_ttl, content_type.strip()
            )
        except ObjectStoreError as e:
            raise StorageUnavailableError(
                "Object store could not issue an upload URL", details={"s3_key": key}
            ) from e

        record = DocumentRecord(
            id=document_id,
            filename=name,
            file_size=file_size,
            s3_key=key,
            status=DocumentStatus.pending,
            created_at=datetime.now(timezone.utc),
            metadata=dict(metadata or {}),
        )

        try:
            await self._records.create_document(record)
        except RecordStoreError as e:
            raise PersistenceError(
                "Failed to save document record", details={"document_id": document_id}
            ) from e

        upload_workflow = workflow_id(WorkflowPurpose.upload, document_id)
        try:
            await self._workflows.start(
                upload_workflow,
                WorkflowPurpose.upload,
                {"document_id": document_id, "s3_key": key},
            )
        except WorkflowError as e:
            logger.error(
                f"Upload workflow start failed for {document_id}; removing pending record",
                extra={"structured": {"document_id": document_id, "workflow_id": upload_workflow}},
            )
            await self._rollback_pending(record, upload_workflow, e)
            raise UpstreamUnavailableError(
                "Workflow engine unavailable; upload was not started",
                details={"document_id": document_id},
            ) from e

        logger.info(f"Upload started for document {document_id} ({name}, {file_size} bytes)")
        return UploadTicket(document=record, upload_url=upload_url, expires_in=self._upload_url_ttl)

    async def _rollback_pending(
        self, record: DocumentRecord, upload_workflow: str, cause: Exception
    ) -> None:
        try:
            await self._records.delete_document(record.id)
        except RecordStoreError as rollback_error:
            logger.error(
                f"Could not remove pending record {record.id} after workflow start failure",
                extra={
                    "structured": {
                        "document_id": record.id,
                        "s3_key": record.s3_key,
                        "workflow_id": upload_workflow,
                        "start_error": str(cause),
                        "rollback_error": str(rollback_error),
                    }
                },
            )
            raise PartialFailureError(
                "Upload workflow was not started and the pending record could not be removed",
                details={"document_id": record.id, "workflow_id": upload_workflow},
            ) from rollback_error

    async def complete_upload(self, document_id: str) -> DocumentRecord:
        """Tell the upload workflow that the client finished its PUT.

        Only a pending document is signalled; any later status is returned
        as is, so retries after success are harmless.

        Raises:
            NotFoundError: If the document does not exist
            UpstreamUnavailableError: If the workflow engine cannot be reached
        """
        record = await self._require(document_id)
        if record.status != DocumentStatus.pending:
            logger.info(f"Upload complete for {document_id} ignored; status is {record.status.value}")
            return record

        upload_workflow = workflow_id(WorkflowPurpose.upload, document_id)
        try:
            await self._workflows.signal(upload_workflow, UPLOAD_COMPLETE_SIGNAL)
        except WorkflowNotRunningError:
            logger.info(f"Upload workflow {upload_workflow} already finished; not signalled")
        except WorkflowError as e:
            raise UpstreamUnavailableError(
                "Workflow engine unavailable", details={"document_id": document_id}
            ) from e

        updated = await self._transition(
            document_id, DocumentStatus.indexing, allowed_from=frozenset({DocumentStatus.pending})
        )
        return updated or await self._require(document_id)

    async def get_document(self, document_id: str) -> DocumentRecord:
        """Get a document, settling an indexing record from its workflow.

        If the record is still ``indexing`` but the upload workflow has
        finished, the record is moved to the matching terminal status.

        Raises:
            NotFoundError: If the document does not exist
        """
        record = await self._require(document_id)
        if record.status != DocumentStatus.indexing:
            return record

        upload_workflow = workflow_id(WorkflowPurpose.upload, document_id)
        try:
            state = await self._workflows.status(upload_workflow)
        except WorkflowError as e:
            logger.warning(f"Could not read workflow status for {document_id}: {e}")
            return record

        if state == WorkflowState.completed:
            updated = await self._transition(
                document_id, DocumentStatus.complete, allowed_from=frozenset({DocumentStatus.indexing})
            )
        elif state in _WORKFLOW_FAILURE_STATES:
            updated = await self._transition(
                document_id,
                DocumentStatus.failed,
                allowed_from=frozenset({DocumentStatus.indexing}),
                error_message=f"upload workflow {state.value}",
            )
        elif state == WorkflowState.not_found:
            logger.warning(
                f"Upload workflow {upload_workflow} not found; document {document_id} stays indexing",
                extra={
                    "structured": {
                        "document_id": document_id,
                        "workflow_id": upload_workflow,
                        "s3_key": record.s3_key,
                    }
                },
            )
            return record
        else:
            return record

        return updated or await self._require(document_id)

    async def list_documents(
        self, limit: int, offset: int, status: DocumentStatus | None = None
    ) -> tuple[list[DocumentRecord], int]:
        """List documents newest first, optionally filtered by status."""
        check_page(limit, offset)
        try:
            return await self._records.list_documents(limit, offset, status)
        except RecordStoreError as e:
            raise PersistenceError("Failed to list documents") from e

    async def get_download_url(self, document_id: str) -> tuple[str, int]:
        """Issue a presigned GET URL for a document's file.

        Returns:
            (url, expires_in seconds)

        Raises:
            NotFoundError: If the document or its file is absent
            ValidationError: If the file has not been uploaded yet
            StorageUnavailableError: If the URL cannot be issued
        """
        record = await self._require(document_id)
        if record.status == DocumentStatus.pending:
            raise ValidationError(
                "Document upload has not completed", details={"document_id": document_id}
            )
        if not record.s3_key:
            raise NotFoundError("Document has no stored file", details={"document_id": document_id})

        try:
            url = await self._object_store.presign_download(record.s3_key, self._download_url_ttl)
        except ObjectStoreError as e:
            raise StorageUnavailableError(
                "Object store could not issue a download URL", details={"document_id": document_id}
            ) from e
        return url, self._download_url_ttl

    async def record_indexing_result(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> DocumentRecord:
        """Record the terminal outcome reported by the indexing worker.

        Repeating the same outcome is a no-op. Reporting a different outcome
        for a document that is already terminal is rejected.

        Raises:
            ValidationError: On a non-terminal status or a conflicting outcome
            NotFoundError: If the document does not exist
        """
        status = DocumentStatus(status)
        if status not in TERMINAL_STATUSES:
            raise ValidationError(
                "status must be 'complete' or 'failed'", details={"status": status.value}
            )
        if status == DocumentStatus.complete:
            error_message = None
        elif not error_message:
            error_message = "indexing failed"

        updated = await self._transition(
            document_id, status, allowed_from=ACTIVE_STATUSES, error_message=error_message
        )
        if updated is not None:
            logger.info(f"Document {document_id} marked {status.value}")
            return updated

        current = await self._require(document_id)
        if current.status == status:
            return current
        raise ValidationError(
            f"Document is already {current.status.value}",
            details={"document_id": document_id, "status": current.status.value},
        )

    async def cancel(self, document_id: str) -> DocumentRecord:
        """Cancel an in-flight upload and mark the document failed.

        Raises:
            NotFoundError: If the document does not exist
            UpstreamUnavailableError: If the workflow engine cannot be reached
        """
        record = await self._require(document_id)
        if record.status in TERMINAL_STATUSES:
            return record

        upload_workflow = workflow_id(WorkflowPurpose.upload, document_id)
        try:
            await self._workflows.cancel(upload_workflow)
        except WorkflowNotRunningError:
            logger.info(f"Upload workflow {upload_workflow} already finished; nothing to cancel")
        except WorkflowError as e:
            raise UpstreamUnavailableError(
                "Workflow engine unavailable", details={"document_id": document_id}
            ) from e

        updated = await self._transition(
            document_id, DocumentStatus.failed, allowed_from=ACTIVE_STATUSES, error_message="cancelled"
        )
        return updated or await self._require(document_id)

    async def delete(self, document_id: str) -> None:
        """Delete a document and everything derived from it.

        The workflow cancel, file delete and vector delete legs are best
        effort: each failure is logged with enough context to clean up later
        and counted, and the remaining legs still run. Only the record delete
        decides the outcome.

        Raises:
            NotFoundError: If the document does not exist
            PersistenceError: If the record itself could not be deleted
        """
        record = await self._require(document_id)

        legs: list[tuple[str, Callable[[], Awaitable[None]], str | None]] = []
        if record.status in ACTIVE_STATUSES:
            legs.append(("workflow", lambda: self._cancel_quietly(document_id), None))
        if record.s3_key:
            key = record.s3_key
            legs.append(("object_store", lambda: self._object_store.delete(key), key))
        legs.append(
            ("vector_index", lambda: self._vector_index.delete_document_vectors(document_id), None)
        )

        results = await asyncio.gather(
            *(self._run_leg(document_id, leg, action, s3_key) for leg, action, s3_key in legs)
        )
        failed_legs = [leg for (leg, _, _), ok in zip(legs, results) if not ok]

        try:
            deleted = await self._records.delete_document(document_id)
        except RecordStoreError as e:
            self._deletion_log.log_leg(
                document_id, "record", "error", s3_key=record.s3_key, error_reason=str(e)
            )
            raise PersistenceError(
                "Failed to delete document record",
                details={"document_id": document_id, "failed_legs": failed_legs},
            ) from e

        self._deletion_log.log_leg(
            document_id, "record", "success" if deleted else "skipped", s3_key=record.s3_key
        )
        if failed_legs:
            logger.warning(
                f"Document {document_id} deleted with failed legs: {', '.join(failed_legs)}",
                extra={"structured": {"document_id": document_id, "failed_legs": failed_legs}},
            )

    async def _cancel_quietly(self, document_id: str) -> None:
        try:
            await self._workflows.cancel(workflow_id(WorkflowPurpose.upload, document_id))
        except WorkflowNotRunningError:
            pass

    async def _run_leg(
        self,
        document_id: str,
        leg: str,
        action: Callable[[], Awaitable[None]],
        s3_key: str | None,
    ) -> bool:
        try:
            await action()
        except (ObjectStoreError, VectorIndexError, WorkflowError) as e:
            self._metrics.inc_delete_leg_failure(leg)
            self._deletion_log.log_leg(
                document_id, leg, "error", s3_key=s3_key, error_reason=f"{type(e).__name__}: {e}"
            )
            return False

        self._deletion_log.log_leg(document_id, leg, "success", s3_key=s3_key)
        return True

    async def _require(self, document_id: str) -> DocumentRecord:
        try:
            record = await self._records.get_document(document_id)
        except RecordStoreError as e:
            raise PersistenceError("Failed to read document") from e
        if record is None:
            raise NotFoundError("Document not found", details={"document_id": document_id})
        return record

    async def _transition(
        self,
        document_id: str,
        to_status: DocumentStatus,
        *,
        allowed_from: frozenset[DocumentStatus],
        error_message: str | None = None,
    ) -> DocumentRecord | None:
        try:
            return await self._records.transition_document(
                document_id, to_status, allowed_from=allowed_from, error_message=error_message
            )
        except RecordStoreError as e:
            raise PersistenceError(
                "Failed to update document status",
                details={"document_id": document_id, "status": to_status.value},
            ) from e
