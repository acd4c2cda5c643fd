"""HTTP/SSE backend transport."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from gateway.app.query.events import StreamEvent
from gateway.app.query.transports import BackendQuery, TransportError

logger = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/query"


def translate_sse_payload(payload: Any) -> StreamEvent:
    """Map one decoded SSE ``data:`` payload to a StreamEvent."""
    if not isinstance(payload, dict):
        return StreamEvent.unknown()

    event_type = payload.get("type")
    if event_type == "start":
        return StreamEvent.start(str(payload.get("id") or payload.get("request_id") or ""))
    if event_type == "chunk":
        return StreamEvent.chunk(str(payload.get("content", "")))
    if event_type == "end":
        return StreamEvent.end(str(payload.get("id") or payload.get("request_id") or ""))
    if event_type == "error":
        return StreamEvent.error(str(payload.get("code", "")), str(payload.get("message", "")))
    return StreamEvent.unknown()


class HttpTransport:
    """Backend transport over a streamed ``POST /api/v1/query``."""

    name = "http"

    def __init__(self, client: httpx.AsyncClient, path: str = QUERY_PATH) -> None:
        """Initialize transport.

        Args:
            client: Shared HTTP client with base_url set to the backend service
            path: Query endpoint path
        """
        self._client = client
        self._path = path

    async def stream(self, query: BackendQuery) -> AsyncIterator[StreamEvent]:
        request = self._client.build_request(
            "POST",
            self._path,
            json={
                "query": query.query,
                "conversation_id": query.conversation_id,
                "top_k": query.top_k,
            },
            headers={"Accept": "text/event-stream"},
        )

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP query request failed: {type(e).__name__}: {e}") from e

        try:
            if response.status_code != httpx.codes.OK:
                raise TransportError(f"query failed with status: {response.status_code}")

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Undecodable SSE payload from backend: {data[:200]!r}")
                    yield StreamEvent.unknown()
                    continue
                yield translate_sse_payload(payload)
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP query stream broke: {type(e).__name__}: {e}") from e
        finally:
            await response.aclose()
