"""Query endpoint - SSE relay of the backend's streamed answer."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from gateway.app.api.auth import Principal, get_current_principal
from gateway.app.api.deps import get_query_proxy
from gateway.app.query.proxy import MAX_TOP_K, QueryProxy

router = APIRouter(tags=["query"])


class QueryRequest(BaseModel):
    """Request body for POST /query."""

    query: str = Field(..., min_length=1)
    conversation_id: str | None = None
    top_k: int = Field(0, ge=0, le=MAX_TOP_K, description="0 means the default")


@router.post("/query")
async def query(
    body: QueryRequest,
    request: Request,
    proxy: Annotated[QueryProxy, Depends(get_query_proxy)],
    _: Annotated[Principal, Depends(get_current_principal)],
) -> StreamingResponse:
    """Stream an answer as server-sent events.

    Errors found before the backend stream opens are returned as a normal
    JSON error envelope. Once streaming has begun, failures arrive as a
    final ``error`` event.
    """
    stream = await proxy.query(body.query, conversation_id=body.conversation_id, top_k=body.top_k)

    async def event_generator() -> AsyncGenerator[str, None]:
        async for event in stream.events(request.is_disconnected):
            yield event.to_sse()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
