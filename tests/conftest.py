"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from gateway.app.container import ServiceContainer
from gateway.app.db.models import Base
from gateway.app.db.engine import create_session_factory
from gateway.app.db.sql_repositories import SqlRecordStore
from gateway.app.orchestration.conversations import ConversationCoordinator
from gateway.app.orchestration.documents import DocumentLifecycleOrchestrator
from gateway.app.query.proxy import QueryProxy
from tests.fakes import (
    FakeObjectStore,
    FakeVectorIndex,
    FakeWorkflowEngine,
    FlakyRecordStore,
    ScriptedTransport,
    answer_events,
    make_token,
)


@pytest.fixture
def records() -> FlakyRecordStore:
    return FlakyRecordStore()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def workflows() -> FakeWorkflowEngine:
    return FakeWorkflowEngine()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def documents(
    records: FlakyRecordStore,
    object_store: FakeObjectStore,
    workflows: FakeWorkflowEngine,
    vector_index: FakeVectorIndex,
) -> DocumentLifecycleOrchestrator:
    return DocumentLifecycleOrchestrator(records, object_store, workflows, vector_index)


@pytest.fixture
def conversations(records: FlakyRecordStore) -> ConversationCoordinator:
    return ConversationCoordinator(records)


@pytest.fixture
def grpc_transport() -> ScriptedTransport:
    return ScriptedTransport("grpc", answer_events("req-grpc"))


@pytest.fixture
def http_transport() -> ScriptedTransport:
    return ScriptedTransport("http", answer_events("req-http"))


@pytest.fixture
def container(
    records: FlakyRecordStore,
    workflows: FakeWorkflowEngine,
    documents: DocumentLifecycleOrchestrator,
    conversations: ConversationCoordinator,
    grpc_transport: ScriptedTransport,
    http_transport: ScriptedTransport,
) -> ServiceContainer:
    """Container wired entirely to in-memory fakes."""
    return ServiceContainer(
        records=records,
        workflows=workflows,
        documents=documents,
        conversations=conversations,
        query_proxy=QueryProxy([grpc_transport, http_transport], conversations),
    )


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sql_store(sqlite_engine: AsyncEngine) -> SqlRecordStore:
    return SqlRecordStore(create_session_factory(sqlite_engine))
