"""Streaming query proxy.

Opens a backend stream over the first transport that delivers a fragment,
then relays fragments to the caller through a bounded queue fed by one
forwarding task per query. Closing the caller side cancels the task, and the
task always closes the backend stream on the way out.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

from gateway.app.errors import GatewayError, UpstreamUnavailableError, ValidationError
from gateway.app.models.common import MessageRole
from gateway.app.orchestration.conversations import ConversationCoordinator
from gateway.app.query.events import StreamEvent
from gateway.app.query.transports import BackendQuery, BackendTransport, TransportError
from gateway.app.utils.metrics import PrometheusGatewayMetrics

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
MAX_TOP_K = 50

AnswerSink = Callable[[str, str], Awaitable[None]]


class _CallerGone(Exception):
    """Caller stopped draining the queue."""


class QueryStream:
    """An opened backend stream, ready to be relayed to one caller."""

    def __init__(
        self,
        *,
        transport: str,
        source: AsyncIterator[StreamEvent],
        first: StreamEvent,
        on_end: AnswerSink | None = None,
        buffer_size: int = 100,
        send_timeout: float = 5.0,
        metrics: PrometheusGatewayMetrics | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        self.transport = transport
        self._source = source
        self._first = first
        self._on_end = on_end
        self._send_timeout = send_timeout
        self._metrics = metrics or PrometheusGatewayMetrics()
        self._poll_interval = poll_interval
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue(maxsize=buffer_size)
        self._task: asyncio.Task[None] | None = None
        self._drained = False

    async def events(
        self, is_disconnected: Callable[[], Awaitable[bool]] | None = None
    ) -> AsyncIterator[StreamEvent]:
        """Yield events until a terminal event, backend failure or disconnect.

        Args:
            is_disconnected: Polled while the queue is idle; returning True
                stops the stream
        """
        if self._task is not None:
            raise RuntimeError("query stream already consumed")

        self._task = asyncio.create_task(self._forward(), name=f"query-forward-{self.transport}")
        try:
            while True:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    if self._task.done() and self._queue.empty():
                        break
                    if is_disconnected is not None and await is_disconnected():
                        logger.info(f"Caller disconnected from {self.transport} query stream")
                        break
                    continue

                if item is None:
                    self._drained = True
                    break
                yield item
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Stop forwarding and release the backend stream."""
        task = self._task
        if task is None:
            await self._source.aclose()
            return
        if not self._drained and not task.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _forward(self) -> None:
        started = time.monotonic()
        outcome = "cancelled"
        try:
            async with contextlib.aclosing(self._relay()) as relay:
                async for event in relay:
                    await self._send(event)
                    if event.type == "end":
                        outcome = "success"
                    elif event.type == "error":
                        outcome = "error"
            await self._send(None)
        except _CallerGone:
            outcome = "caller_gone"
            logger.info(
                f"Caller stopped reading {self.transport} query stream; closing backend stream"
            )
        except Exception:
            outcome = "internal_error"
            logger.exception(f"Unexpected failure relaying {self.transport} query stream")
            with contextlib.suppress(_CallerGone):
                await self._send(StreamEvent.error("INTERNAL_ERROR", "Internal error while streaming"))
                await self._send(None)
        finally:
            await self._source.aclose()
            self._metrics.record_stream(
                self.transport, outcome, (time.monotonic() - started) * 1000
            )

    async def _send(self, item: StreamEvent | None) -> None:
        try:
            await asyncio.wait_for(self._queue.put(item), timeout=self._send_timeout)
        except asyncio.TimeoutError as e:
            raise _CallerGone from e

    async def _relay(self) -> AsyncIterator[StreamEvent]:
        """Backend events up to and including exactly one terminal event."""
        event = self._first
        request_id: str | None = None
        answer: list[str] = []

        while True:
            if event.type == "start":
                request_id = event.id
            elif event.type == "chunk":
                answer.append(event.content or "")
            elif event.type == "end":
                if not event.id and request_id:
                    event = StreamEvent.end(request_id)
                if self._on_end is not None:
                    try:
                        await self._on_end(event.id or "", "".join(answer))
                    except GatewayError as e:
                        logger.error(f"Failed to save answer from {self.transport} stream: {e}")
                        yield StreamEvent.error(e.code, e.message)
                        return
                yield event
                return
            elif event.type == "error":
                yield event
                return

            yield event

            try:
                event = await anext(self._source)
            except StopAsyncIteration:
                logger.warning(f"Backend closed {self.transport} stream without an end event")
                yield StreamEvent.error(
                    "STREAM_INCOMPLETE", "Backend closed the stream before it finished"
                )
                return
            except TransportError as e:
                logger.warning(f"Backend {self.transport} stream failed mid-stream: {e}")
                yield StreamEvent.error("STREAM_ERROR", str(e))
                return


class QueryProxy:
    """Answers queries by streaming from the backend service."""

    def __init__(
        self,
        transports: Sequence[BackendTransport],
        conversations: ConversationCoordinator,
        *,
        buffer_size: int = 100,
        send_timeout: float = 5.0,
        default_top_k: int = DEFAULT_TOP_K,
        metrics: PrometheusGatewayMetrics | None = None,
    ) -> None:
        if not transports:
            raise ValueError("at least one backend transport is required")
        self._transports = list(transports)
        self._conversations = conversations
        self._buffer_size = buffer_size
        self._send_timeout = send_timeout
        self._default_top_k = default_top_k
        self._metrics = metrics or PrometheusGatewayMetrics()

    async def query(
        self,
        query: str,
        conversation_id: str | None = None,
        top_k: int | None = None,
    ) -> QueryStream:
        """Open a backend stream for a query.

        Args:
            query: Question text, must not be blank
            conversation_id: Optional conversation to record the exchange in
            top_k: Number of passages to retrieve; 0 or None means the default

        Returns:
            QueryStream whose first event is the backend's first fragment

        Raises:
            ValidationError: On blank query or out-of-range top_k
            NotFoundError: If the conversation does not exist
            UpstreamUnavailableError: If no transport delivered a fragment
            PersistenceError: If the user message could not be saved
        """
        text = (query or "").strip()
        if not text:
            raise ValidationError("query must not be empty")

        if not top_k:
            top_k = self._default_top_k
        if top_k < 1 or top_k > MAX_TOP_K:
            raise ValidationError(
                f"top_k must be between 1 and {MAX_TOP_K}", details={"top_k": top_k}
            )

        if conversation_id:
            await self._conversations.get_conversation(conversation_id)

        backend_query = BackendQuery(
            query=text, conversation_id=conversation_id or "", top_k=top_k
        )
        transport, source, first = await self._open(backend_query)

        on_end: AnswerSink | None = None
        if conversation_id:
            try:
                await self._conversations.create_message(conversation_id, MessageRole.user, text)
            except GatewayError:
                await source.aclose()
                raise
            on_end = self._answer_sink(conversation_id, transport.name)

        logger.info(f"Query streaming over {transport.name} (top_k={top_k})")
        return QueryStream(
            transport=transport.name,
            source=source,
            first=first,
            on_end=on_end,
            buffer_size=self._buffer_size,
            send_timeout=self._send_timeout,
            metrics=self._metrics,
        )

    async def _open(
        self, backend_query: BackendQuery
    ) -> tuple[BackendTransport, AsyncIterator[StreamEvent], StreamEvent]:
        for transport in self._transports:
            source = transport.stream(backend_query)
            try:
                first = await anext(source)
            except StopAsyncIteration:
                reason = "empty_stream"
                logger.warning(f"Backend {transport.name} stream ended before any fragment")
            except TransportError as e:
                reason = "error"
                logger.warning(f"Backend {transport.name} unavailable, falling back: {e}")
            else:
                return transport, source, first

            await source.aclose()
            self._metrics.inc_transport_fallback(transport.name, reason)

        raise UpstreamUnavailableError(
            "Backend query service is unavailable",
            details={"transports": [t.name for t in self._transports]},
        )

    def _answer_sink(self, conversation_id: str, transport: str) -> AnswerSink:
        async def save_answer(request_id: str, answer: str) -> None:
            if not answer.strip():
                logger.info(f"Empty answer for conversation {conversation_id}; nothing saved")
                return
            metadata = {"transport": transport}
            if request_id:
                metadata["request_id"] = request_id
            await self._conversations.create_message(
                conversation_id, MessageRole.assistant, answer, metadata=metadata
            )

        return save_answer
