"""Workflow engine client - durable upload/index workflows on Temporal."""

import asyncio
import logging
from typing import Any, Protocol

from temporalio.client import Client, WorkflowExecutionStatus, WorkflowHandle
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.service import RPCError, RPCStatusCode

from gateway.app.config import Settings
from gateway.app.models.common import WorkflowPurpose, WorkflowState
from gateway.app.utils.metrics import PrometheusGatewayMetrics

logger = logging.getLogger(__name__)

UPLOAD_COMPLETE_SIGNAL = "upload-complete"

WORKFLOW_TYPES: dict[WorkflowPurpose, str] = {
    WorkflowPurpose.upload: "UploadWorkflow",
}

_STATUS_MAP: dict[WorkflowExecutionStatus, WorkflowState] = {
    WorkflowExecutionStatus.RUNNING: WorkflowState.running,
    WorkflowExecutionStatus.CONTINUED_AS_NEW: WorkflowState.running,
    WorkflowExecutionStatus.COMPLETED: WorkflowState.completed,
    WorkflowExecutionStatus.FAILED: WorkflowState.failed,
    WorkflowExecutionStatus.CANCELED: WorkflowState.cancelled,
    WorkflowExecutionStatus.TERMINATED: WorkflowState.terminated,
    WorkflowExecutionStatus.TIMED_OUT: WorkflowState.timed_out,
}


def workflow_id(purpose: WorkflowPurpose, document_id: str) -> str:
    """Deterministic workflow ID for a document and purpose.

    Starting the same (purpose, document) twice always targets the same
    workflow instance.
    """
    if not document_id:
        raise ValueError("document_id must be non-empty")
    return f"{WorkflowPurpose(purpose).value}-{document_id}"


class WorkflowError(Exception):
    """Workflow engine request failed."""


class WorkflowNotRunningError(WorkflowError):
    """Workflow instance has already finished or does not exist."""


class WorkflowEngine(Protocol):
    """Protocol for workflow engine implementations."""

    async def start(self, workflow_id: str, purpose: WorkflowPurpose, payload: dict[str, Any]) -> str:
        """Start a workflow instance, joining an existing one with the same ID.

        Returns:
            Workflow ID of the started or joined instance

        Raises:
            WorkflowError: If the engine cannot be reached
        """
        ...

    async def signal(self, workflow_id: str, signal_name: str) -> None:
        """Send a signal to a running instance.

        Raises:
            WorkflowNotRunningError: If the instance has finished or is unknown
            WorkflowError: If the engine cannot be reached
        """
        ...

    async def status(self, workflow_id: str) -> WorkflowState:
        """Query the execution state of an instance."""
        ...

    async def cancel(self, workflow_id: str) -> None:
        """Request cancellation of an instance."""
        ...

    async def check_health(self) -> None:
        """Raise WorkflowError if the engine is unreachable."""
        ...


class TemporalWorkflowEngine:
    """Temporal-backed workflow engine.

    The client connects on first use and is then shared by all requests; a
    failed connect is retried on the next call.
    """

    def __init__(
        self,
        target_host: str,
        namespace: str,
        task_queues: dict[WorkflowPurpose, str],
        metrics: PrometheusGatewayMetrics | None = None,
    ) -> None:
        self._target_host = target_host
        self._namespace = namespace
        self._task_queues = task_queues
        self._metrics = metrics or PrometheusGatewayMetrics()
        self._client: Client | None = None
        self._connect_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TemporalWorkflowEngine":
        """Build an engine client from settings."""
        return cls(
            target_host=settings.temporal_host,
            namespace=settings.temporal_namespace,
            task_queues={
                WorkflowPurpose.upload: settings.upload_task_queue,
            },
        )

    async def _get_client(self) -> Client:
        async with self._connect_lock:
            if self._client is None:
                try:
                    self._client = await Client.connect(self._target_host, namespace=self._namespace)
                except (RuntimeError, RPCError) as e:
                    raise WorkflowError(f"Failed to connect to Temporal at {self._target_host}: {e}") from e
                logger.info(f"Connected to Temporal at {self._target_host} ({self._namespace})")
            return self._client

    async def _handle(self, workflow_id: str) -> WorkflowHandle[Any, Any]:
        client = await self._get_client()
        return client.get_workflow_handle(workflow_id)

    async def start(self, workflow_id: str, purpose: WorkflowPurpose, payload: dict[str, Any]) -> str:
        """Start a workflow instance, joining an existing one with the same ID."""
        client = await self._get_client()
        try:
            handle = await client.start_workflow(
                WORKFLOW_TYPES[purpose],
                payload,
                id=workflow_id,
                task_queue=self._task_queues[purpose],
            )
        except WorkflowAlreadyStartedError:
            self._metrics.inc_workflow_call("start", "joined")
            logger.info(f"Workflow {workflow_id} already started; joining existing instance")
            return workflow_id
        except RPCError as e:
            self._metrics.inc_workflow_call("start", "error")
            raise WorkflowError(f"Failed to start workflow {workflow_id}: {e}") from e

        self._metrics.inc_workflow_call("start", "success")
        return handle.id

    async def signal(self, workflow_id: str, signal_name: str) -> None:
        """Send a signal to a running instance."""
        handle = await self._handle(workflow_id)
        try:
            await handle.signal(signal_name)
        except RPCError as e:
            if e.status == RPCStatusCode.NOT_FOUND:
                self._metrics.inc_workflow_call("signal", "not_running")
                raise WorkflowNotRunningError(f"Workflow {workflow_id} is not running") from e
            self._metrics.inc_workflow_call("signal", "error")
            raise WorkflowError(f"Failed to signal workflow {workflow_id}: {e}") from e

        self._metrics.inc_workflow_call("signal", "success")

    async def status(self, workflow_id: str) -> WorkflowState:
        """Query the execution state of an instance."""
        handle = await self._handle(workflow_id)
        try:
            description = await handle.describe()
        except RPCError as e:
            if e.status == RPCStatusCode.NOT_FOUND:
                return WorkflowState.not_found
            self._metrics.inc_workflow_call("status", "error")
            raise WorkflowError(f"Failed to describe workflow {workflow_id}: {e}") from e

        self._metrics.inc_workflow_call("status", "success")
        if description.status is None:
            return WorkflowState.unknown
        return _STATUS_MAP.get(description.status, WorkflowState.unknown)

    async def cancel(self, workflow_id: str) -> None:
        """Request cancellation of an instance."""
        handle = await self._handle(workflow_id)
        try:
            await handle.cancel()
        except RPCError as e:
            if e.status == RPCStatusCode.NOT_FOUND:
                self._metrics.inc_workflow_call("cancel", "not_running")
                raise WorkflowNotRunningError(f"Workflow {workflow_id} is not running") from e
            self._metrics.inc_workflow_call("cancel", "error")
            raise WorkflowError(f"Failed to cancel workflow {workflow_id}: {e}") from e

        self._metrics.inc_workflow_call("cancel", "success")

    async def check_health(self) -> None:
        """Raise WorkflowError if the engine is unreachable."""
        client = await self._get_client()
        try:
            healthy = await client.service_client.check_health()
        except RPCError as e:
            raise WorkflowError(f"Temporal health check failed: {e}") from e
        if not healthy:
            raise WorkflowError("Temporal reported unhealthy")
