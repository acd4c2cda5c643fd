"""Vector index client - Qdrant REST API over httpx."""

import logging
from typing import Protocol

import httpx

from gateway.app.config import Settings

logger = logging.getLogger(__name__)

DOCUMENT_ID_PAYLOAD_KEY = "document_id"


class VectorIndexError(Exception):
    """Vector index request failed."""


class VectorIndex(Protocol):
    """Protocol for vector index implementations."""

    async def delete_document_vectors(self, document_id: str) -> None:
        """Delete every vector whose payload is tagged with ``document_id``.

        Raises:
            VectorIndexError: If the delete request fails
        """
        ...


class QdrantVectorIndex:
    """Qdrant-backed vector index using a filter-based point delete."""

    def __init__(self, client: httpx.AsyncClient, collection: str) -> None:
        """Initialize vector index.

        Args:
            client: Shared HTTP client with base_url set to the Qdrant server
            collection: Collection holding document chunks
        """
        self._client = client
        self._collection = collection

    @classmethod
    def from_settings(cls, settings: Settings) -> "QdrantVectorIndex":
        """Build a client from settings."""
        headers: dict[str, str] = {}
        if settings.qdrant_api_key:
            headers["api-key"] = settings.qdrant_api_key.get_secret_value()

        client = httpx.AsyncClient(
            base_url=settings.qdrant_url,
            headers=headers,
            timeout=settings.qdrant_timeout_seconds,
        )
        return cls(client, settings.qdrant_collection)

    async def delete_document_vectors(self, document_id: str) -> None:
        """Delete every vector whose payload is tagged with ``document_id``."""
        body = {
            "filter": {
                "must": [
                    {"key": DOCUMENT_ID_PAYLOAD_KEY, "match": {"value": document_id}},
                ]
            }
        }

        try:
            response = await self._client.post(
                f"/collections/{self._collection}/points/delete",
                params={"wait": "true"},
                json=body,
            )
        except httpx.HTTPError as e:
            raise VectorIndexError(
                f"Failed to delete vectors for document {document_id}: {type(e).__name__}: {e}"
            ) from e

        if response.status_code != httpx.codes.OK:
            raise VectorIndexError(
                f"Failed to delete vectors for document {document_id}: "
                f"status {response.status_code}: {response.text[:200]}"
            )

        logger.debug(f"Deleted vectors for document {document_id} from {self._collection}")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
