"""Service wiring - one shared client per external system."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from gateway.app.config import Settings
from gateway.app.db.engine import create_async_engine_from_settings, create_session_factory
from gateway.app.db.repositories import RecordStore
from gateway.app.db.sql_repositories import SqlRecordStore
from gateway.app.orchestration.conversations import ConversationCoordinator
from gateway.app.orchestration.documents import DocumentLifecycleOrchestrator
from gateway.app.query.grpc_transport import GrpcTransport
from gateway.app.query.http_transport import HttpTransport
from gateway.app.query.proxy import QueryProxy
from gateway.app.query.transports import BackendTransport
from gateway.app.services.object_store import S3ObjectStore
from gateway.app.services.vector_index import QdrantVectorIndex
from gateway.app.services.workflows import TemporalWorkflowEngine, WorkflowEngine
from gateway.app.utils.metrics import PrometheusGatewayMetrics

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler needs, built once per process."""

    records: RecordStore
    workflows: WorkflowEngine
    documents: DocumentLifecycleOrchestrator
    conversations: ConversationCoordinator
    query_proxy: QueryProxy
    engine: AsyncEngine | None = None
    backend_client: httpx.AsyncClient | None = None
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def check_database(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""
        if self.engine is None:
            return
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def aclose(self) -> None:
        """Release shared clients."""
        for close in reversed(self.closers):
            await close()


def build_transports(
    settings: Settings, backend_client: httpx.AsyncClient
) -> list[BackendTransport]:
    """Backend transports in preference order."""
    transports: list[BackendTransport] = []
    if settings.grpc_enabled:
        transports.append(
            GrpcTransport(settings.core_grpc_target, settings.core_connect_timeout_seconds)
        )
    transports.append(HttpTransport(backend_client))
    return transports


def build_container(settings: Settings) -> ServiceContainer:
    """Build the production container from settings."""
    metrics = PrometheusGatewayMetrics()

    engine = create_async_engine_from_settings(settings)
    records = SqlRecordStore(create_session_factory(engine))

    object_store = S3ObjectStore.from_settings(settings)
    workflows = TemporalWorkflowEngine.from_settings(settings)
    vector_index = QdrantVectorIndex.from_settings(settings)

    backend_client = httpx.AsyncClient(
        base_url=settings.core_http_url,
        timeout=httpx.Timeout(
            settings.core_http_timeout_seconds, connect=settings.core_connect_timeout_seconds
        ),
    )

    documents = DocumentLifecycleOrchestrator(
        records,
        object_store,
        workflows,
        vector_index,
        upload_url_ttl_seconds=settings.upload_url_ttl_seconds,
        download_url_ttl_seconds=settings.download_url_ttl_seconds,
        max_upload_bytes=settings.max_upload_bytes,
        metrics=metrics,
    )
    conversations = ConversationCoordinator(records)
    query_proxy = QueryProxy(
        build_transports(settings, backend_client),
        conversations,
        buffer_size=settings.query_buffer_size,
        send_timeout=settings.query_send_timeout_seconds,
        default_top_k=settings.default_top_k,
        metrics=metrics,
    )

    logger.info(
        f"Services configured (grpc_enabled={settings.grpc_enabled}, bucket={settings.s3_bucket})"
    )
    return ServiceContainer(
        records=records,
        workflows=workflows,
        documents=documents,
        conversations=conversations,
        query_proxy=query_proxy,
        engine=engine,
        backend_client=backend_client,
        closers=[engine.dispose, backend_client.aclose, vector_index.aclose],
    )
