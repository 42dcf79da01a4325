"""Embedding and vector retrieval client (Ollama embeddings + Qdrant search)."""

from typing import Any

import httpx
import structlog

from ..core.interfaces import Sleep
from ..core.retry import backoff_retrying
from ..core.types import RetrievedPassage

logger = structlog.get_logger(__name__)


def build_search_payload(
    vector: list[float], top_k: int, asset_filter: str | None = None
) -> dict[str, Any]:
    """Build a Qdrant search body, over-fetching 2x for re-ranking headroom.

    Args:
        vector: Query embedding
        top_k: Number of passages ultimately wanted
        asset_filter: Optional ``metadata.objectId`` value to restrict on

    Returns:
        Search request payload
    """
    payload: dict[str, Any] = {
        "vector": vector,
        "limit": top_k * 2,
        "with_payload": True,
    }
    if asset_filter and asset_filter != "None":
        payload["filter"] = {
            "must": [{"key": "metadata.objectId", "match": {"value": asset_filter}}]
        }
    return payload


def rerank(hits: list[dict[str, Any]], top_k: int) -> list[RetrievedPassage]:
    """Order search hits by descending score and keep the best ``top_k``.

    ``sorted`` is stable, so equal scores keep their original order.
    """
    passages = []
    for hit in hits:
        payload = hit.get("payload") or {}
        metadata = payload.get("metadata") or {}
        passages.append(
            RetrievedPassage(
                text=payload.get("text", ""),
                source_file=str(metadata.get("file", "unknown")),
                page_range=str(metadata.get("page_range", "n/a")),
                relevance_score=float(hit.get("score", 0.0)),
            )
        )
    ranked = sorted(passages, key=lambda p: p.relevance_score, reverse=True)
    return ranked[:top_k]


def render_context(passages: list[RetrievedPassage]) -> str:
    """Join passages with their provenance into a single context block."""
    return "\n\n".join(p.render() for p in passages)


class RetrievalClient:
    """Turns questions into vectors and searches the document index.

    Retrieval never raises: any failure degrades to an empty result, which the
    answer generator treats as "no context".
    """

    def __init__(
        self,
        embed_base: str,
        qdrant_url: str,
        collection: str,
        embed_model: str = "nomic-embed-text",
        top_k: int = 4,
        retry_attempts: int = 3,
        retry_base_seconds: float = 1.0,
        session: httpx.AsyncClient | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        """Initialize the retrieval client.

        Args:
            embed_base: Embedding service base URL
            qdrant_url: Vector index base URL
            collection: Collection to search
            embed_model: Embedding model name
            top_k: Default number of passages to return
            retry_attempts: Embedding attempts before giving up
            retry_base_seconds: Base delay for exponential backoff
            session: Optional HTTP session
            sleep: Optional sleep coroutine (for testing)
        """
        self.embed_base = embed_base.rstrip("/")
        self.qdrant_url = qdrant_url.rstrip("/")
        self.collection = collection
        self.embed_model = embed_model
        self.top_k = top_k
        self.retry_attempts = retry_attempts
        self.retry_base_seconds = retry_base_seconds
        self._session = session or httpx.AsyncClient(timeout=30.0)
        self._owns_session = session is None
        self._sleep = sleep

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def _embed_once(self, query: str) -> list[float]:
        response = await self._session.post(
            f"{self.embed_base}/api/embeddings",
            json={"model": self.embed_model, "prompt": query},
        )
        response.raise_for_status()
        embedding = response.json().get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise ValueError("Embedding response missing 'embedding'")
        return embedding

    async def embed(self, query: str) -> list[float] | None:
        """Embed a query, retrying transient failures.

        Returns:
            The embedding, or None once retries are exhausted
        """
        try:
            async for attempt in backoff_retrying(
                attempts=self.retry_attempts,
                base_seconds=self.retry_base_seconds,
                sleep=self._sleep,
            ):
                with attempt:
                    n = attempt.retry_state.attempt_number
                    try:
                        return await self._embed_once(query)
                    except Exception as e:
                        logger.warning(
                            "Embedding request failed",
                            attempt=n,
                            max_attempts=self.retry_attempts,
                            error=str(e),
                        )
                        raise
        except Exception as e:
            logger.error("Failed to get query embedding", error=str(e))
        return None

    async def _search(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        response = await self._session.post(
            f"{self.qdrant_url}/collections/{self.collection}/points/search",
            json=payload,
        )
        response.raise_for_status()
        result = response.json().get("result")
        if not isinstance(result, list):
            raise ValueError("Search response missing 'result'")
        return result

    async def retrieve(
        self, query: str, asset_filter: str | None = None, top_k: int | None = None
    ) -> list[RetrievedPassage]:
        """Retrieve the most relevant passages for a query.

        Args:
            query: User question
            asset_filter: Optional asset id restricting the documents searched
            top_k: Number of passages to return (defaults to configured value)

        Returns:
            Passages ordered by descending relevance; empty on any failure
        """
        if top_k is None:
            top_k = self.top_k
        if top_k < 1:
            return []

        vector = await self.embed(query)
        if vector is None:
            return []

        payload = build_search_payload(vector, top_k, asset_filter)
        try:
            hits = await self._search(payload)
            passages = rerank(hits, top_k)
        except Exception as e:
            logger.error(
                "Vector search failed",
                collection=self.collection,
                asset_filter=asset_filter,
                error=str(e),
            )
            return []

        logger.info(
            "Retrieved passages",
            candidates=len(hits),
            returned=len(passages),
            asset_filter=asset_filter,
        )
        return passages
