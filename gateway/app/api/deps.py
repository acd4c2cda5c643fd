"""Request dependencies resolving services from the app container."""

from typing import Annotated

from fastapi import Depends, Request

from gateway.app.container import ServiceContainer
from gateway.app.orchestration.conversations import ConversationCoordinator
from gateway.app.orchestration.documents import DocumentLifecycleOrchestrator
from gateway.app.query.proxy import QueryProxy


def get_container(request: Request) -> ServiceContainer:
    """Container built during application startup."""
    container: ServiceContainer = request.app.state.container
    return container


def get_documents(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> DocumentLifecycleOrchestrator:
    return container.documents


def get_conversations(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ConversationCoordinator:
    return container.conversations


def get_query_proxy(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> QueryProxy:
    return container.query_proxy
