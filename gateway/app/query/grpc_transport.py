"""gRPC backend transport.

Messages travel as ``google.protobuf.Struct`` so the gateway needs no
generated stubs. A response carries exactly one of ``start``, ``chunk``,
``end`` or ``error``.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import grpc
from google.protobuf import json_format, struct_pb2

from gateway.app.query.events import StreamEvent
from gateway.app.query.transports import BackendQuery, TransportError

logger = logging.getLogger(__name__)

QUERY_STREAM_METHOD = "/kbplatform.v1.KBPlatformService/QueryStream"


def _encode_request(payload: dict[str, Any]) -> bytes:
    message = struct_pb2.Struct()
    message.update(payload)
    return message.SerializeToString()


def _decode_response(data: bytes) -> dict[str, Any]:
    return json_format.MessageToDict(struct_pb2.Struct.FromString(data))


def translate_grpc_response(message: dict[str, Any]) -> StreamEvent:
    """Map one gRPC response message to a StreamEvent."""
    if "start" in message:
        return StreamEvent.start(str(message["start"].get("request_id", "")))
    if "chunk" in message:
        return StreamEvent.chunk(str(message["chunk"].get("content", "")))
    if "end" in message:
        return StreamEvent.end(str(message["end"].get("request_id", "")))
    if "error" in message:
        error = message["error"]
        return StreamEvent.error(str(error.get("code", "")), str(error.get("message", "")))
    return StreamEvent.unknown()


class GrpcTransport:
    """Backend transport over a server-streaming gRPC call.

    Each query opens its own channel, closed together with the call.
    """

    name = "grpc"

    def __init__(
        self,
        target: str,
        connect_timeout: float = 5.0,
        channel_factory: Callable[[str], grpc.aio.Channel] = grpc.aio.insecure_channel,
    ) -> None:
        self._target = target
        self._connect_timeout = connect_timeout
        self._channel_factory = channel_factory

    async def stream(self, query: BackendQuery) -> AsyncIterator[StreamEvent]:
        channel = self._channel_factory(self._target)
        call = None
        try:
            try:
                await asyncio.wait_for(channel.channel_ready(), timeout=self._connect_timeout)
            except asyncio.TimeoutError as e:
                raise TransportError(
                    f"gRPC channel to {self._target} not ready after {self._connect_timeout}s"
                ) from e

            method = channel.unary_stream(
                QUERY_STREAM_METHOD,
                request_serializer=_encode_request,
                response_deserializer=_decode_response,
            )
            call = method(
                {
                    "query": query.query,
                    "conversation_id": query.conversation_id,
                    "top_k": query.top_k,
                }
            )
            async for message in call:
                yield translate_grpc_response(message)
        except grpc.aio.AioRpcError as e:
            raise TransportError(f"gRPC {e.code().name}: {e.details()}") from e
        finally:
            if call is not None:
                call.cancel()
            await channel.close()
