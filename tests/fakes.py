"""Call-counting fakes for the gateway's external collaborators."""

import asyncio
import time
from collections.abc import AsyncIterator
from typing import Any

import jwt

from gateway.app.db.inmemory import InMemoryRecordStore
from gateway.app.db.repositories import MessageRecord, RecordStoreError
from gateway.app.models.common import WorkflowPurpose, WorkflowState
from gateway.app.query.events import StreamEvent
from gateway.app.query.transports import BackendQuery, TransportError
from gateway.app.services.object_store import ObjectStoreError
from gateway.app.services.vector_index import VectorIndexError
from gateway.app.services.workflows import WorkflowError, WorkflowNotRunningError

TEST_JWT_SECRET = "test-secret"


def make_token(subject: str = "tester", secret: str = TEST_JWT_SECRET, expires_in: int = 3600) -> str:
    """Signed HS256 token accepted by the auth dependency."""
    return jwt.encode(
        {"sub": subject, "exp": int(time.time()) + expires_in}, secret, algorithm="HS256"
    )


class FakeObjectStore:
    """Object store that records every call."""

    def __init__(self, fail_presign: bool = False, fail_delete: bool = False) -> None:
        self.fail_presign = fail_presign
        self.fail_delete = fail_delete
        self.presigned_uploads: list[tuple[str, int, str | None]] = []
        self.presigned_downloads: list[tuple[str, int]] = []
        self.deleted: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.presigned_uploads) + len(self.presigned_downloads) + len(self.deleted)

    async def presign_upload(self, key: str, ttl_seconds: int, content_type: str | None = None) -> str:
        self.presigned_uploads.append((key, ttl_seconds, content_type))
        if self.fail_presign:
            raise ObjectStoreError("presign_upload failed: endpoint unreachable")
        return f"https://s3.test/{key}?X-Amz-Expires={ttl_seconds}&op=put"

    async def presign_download(self, key: str, ttl_seconds: int) -> str:
        self.presigned_downloads.append((key, ttl_seconds))
        if self.fail_presign:
            raise ObjectStoreError("presign_download failed: endpoint unreachable")
        return f"https://s3.test/{key}?X-Amz-Expires={ttl_seconds}&op=get"

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        if self.fail_delete:
            raise ObjectStoreError("delete failed: AccessDenied")


class FakeWorkflowEngine:
    """Workflow engine keeping instances in a dict keyed by workflow ID."""

    def __init__(self, fail_start: bool = False, fail_signal: bool = False) -> None:
        self.fail_start = fail_start
        self.fail_signal = fail_signal
        self.fail_cancel = False
        self.fail_status = False
        self.healthy = True
        self.instances: dict[str, tuple[WorkflowPurpose, dict[str, Any]]] = {}
        self.states: dict[str, WorkflowState] = {}
        self.start_calls: list[str] = []
        self.signals: list[tuple[str, str]] = []
        self.cancels: list[str] = []
        self.status_calls: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.start_calls) + len(self.signals) + len(self.cancels) + len(self.status_calls)

    async def start(self, workflow_id: str, purpose: WorkflowPurpose, payload: dict[str, Any]) -> str:
        self.start_calls.append(workflow_id)
        if self.fail_start:
            raise WorkflowError("Failed to connect to Temporal")
        if workflow_id not in self.instances:
            self.instances[workflow_id] = (purpose, payload)
            self.states[workflow_id] = WorkflowState.running
        return workflow_id

    async def signal(self, workflow_id: str, signal_name: str) -> None:
        self.signals.append((workflow_id, signal_name))
        if self.fail_signal:
            raise WorkflowError("Failed to signal workflow")
        if self.states.get(workflow_id) != WorkflowState.running:
            raise WorkflowNotRunningError(f"Workflow {workflow_id} is not running")

    async def status(self, workflow_id: str) -> WorkflowState:
        self.status_calls.append(workflow_id)
        if self.fail_status:
            raise WorkflowError("Failed to describe workflow")
        return self.states.get(workflow_id, WorkflowState.not_found)

    async def cancel(self, workflow_id: str) -> None:
        self.cancels.append(workflow_id)
        if self.fail_cancel:
            raise WorkflowError("Failed to cancel workflow")
        if self.states.get(workflow_id) != WorkflowState.running:
            raise WorkflowNotRunningError(f"Workflow {workflow_id} is not running")
        self.states[workflow_id] = WorkflowState.cancelled

    async def check_health(self) -> None:
        if not self.healthy:
            raise WorkflowError("Temporal reported unhealthy")


class FakeVectorIndex:
    """Vector index that records deleted document IDs."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.deleted: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.deleted)

    async def delete_document_vectors(self, document_id: str) -> None:
        self.deleted.append(document_id)
        if self.fail:
            raise VectorIndexError(f"Failed to delete vectors for document {document_id}: status 500")


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store whose deletes and appends can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_delete = False
        self.fail_append_roles: set[str] = set()

    async def delete_document(self, document_id: str) -> bool:
        if self.fail_delete:
            raise RecordStoreError("OperationalError: connection reset")
        return await super().delete_document(document_id)

    async def append_message(self, record: MessageRecord) -> MessageRecord | None:
        if record.role.value in self.fail_append_roles:
            raise RecordStoreError("OperationalError: connection reset")
        return await super().append_message(record)


class ScriptedTransport:
    """Backend transport replaying a fixed list of events.

    Args:
        name: Transport name
        events: Events yielded in order
        fail_before_first: Raise TransportError before yielding anything
        fail_after: Raise TransportError after yielding this many events
    """

    def __init__(
        self,
        name: str,
        events: list[StreamEvent] | None = None,
        fail_before_first: bool = False,
        fail_after: int | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.events = events or []
        self.fail_before_first = fail_before_first
        self.fail_after = fail_after
        self.delay = delay
        self.queries: list[BackendQuery] = []
        self.yielded = 0
        self.closed = False

    async def stream(self, query: BackendQuery) -> AsyncIterator[StreamEvent]:
        self.queries.append(query)
        try:
            if self.fail_before_first:
                raise TransportError(f"{self.name} connection refused")
            for event in self.events:
                if self.fail_after is not None and self.yielded >= self.fail_after:
                    raise TransportError(f"{self.name} stream reset")
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.yielded += 1
                yield event
        finally:
            self.closed = True


def answer_events(request_id: str = "req-1", chunks: tuple[str, ...] = ("Hello", ", world")) -> list[StreamEvent]:
    """A well-formed start, chunk..., end sequence."""
    return [
        StreamEvent.start(request_id),
        *(StreamEvent.chunk(c) for c in chunks),
        StreamEvent.end(request_id),
    ]
