"""Tests for embedding and vector retrieval."""

import json

import httpx
import pytest
import respx

from tokenchat.core.types import RetrievedPassage
from tokenchat.rag.retrieval import (
    RetrievalClient,
    build_search_payload,
    render_context,
    rerank,
)

EMBED_BASE = "http://embed.test"
QDRANT_URL = "http://qdrant.test"
SEARCH_URL = f"{QDRANT_URL}/collections/docs/points/search"


def _hit(text, score, file="guide.pdf", pages="1-2"):
    return {"score": score, "payload": {"text": text, "metadata": {"file": file, "page_range": pages}}}


def _client(sleep, **kwargs):
    return RetrievalClient(
        EMBED_BASE, QDRANT_URL, "docs", session=httpx.AsyncClient(), sleep=sleep, **kwargs
    )


class TestBuildSearchPayload:
    def test_over_fetches_twice_top_k(self):
        payload = build_search_payload([0.1, 0.2], top_k=4)

        assert payload["limit"] == 8
        assert payload["with_payload"] is True
        assert "filter" not in payload

    def test_asset_filter(self):
        payload = build_search_payload([0.1], top_k=2, asset_filter="asset-1")

        assert payload["filter"] == {
            "must": [{"key": "metadata.objectId", "match": {"value": "asset-1"}}]
        }

    def test_none_string_filter_ignored(self):
        """Test the literal string "None" is treated as no filter."""
        assert "filter" not in build_search_payload([0.1], top_k=2, asset_filter="None")


class TestRerank:
    def test_orders_by_score_and_truncates(self):
        hits = [_hit("low", 0.2), _hit("high", 0.9), _hit("mid", 0.5)]

        passages = rerank(hits, top_k=2)

        assert [p.text for p in passages] == ["high", "mid"]

    def test_ties_keep_original_order(self):
        hits = [_hit("first", 0.5), _hit("second", 0.5), _hit("third", 0.5)]

        assert [p.text for p in rerank(hits, top_k=3)] == ["first", "second", "third"]

    def test_missing_metadata(self):
        passage = rerank([{"score": 0.3, "payload": {"text": "bare"}}], top_k=1)[0]

        assert passage.source_file == "unknown"
        assert passage.page_range == "n/a"


def test_render_context():
    passages = [
        RetrievedPassage(text="A", source_file="a.pdf", page_range="1", relevance_score=0.9),
        RetrievedPassage(text="B", source_file="b.pdf", page_range="2", relevance_score=0.8),
    ]

    assert render_context(passages) == (
        "A\n[Source: a.pdf, Pages: 1]\n\nB\n[Source: b.pdf, Pages: 2]"
    )
    assert render_context([]) == ""


class TestRetrievalClient:
    """Test the embed + search round trip."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_retrieve(self, sleep):
        respx.post(f"{EMBED_BASE}/api/embeddings").mock(
            return_value=httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]})
        )
        search = respx.post(SEARCH_URL).mock(
            return_value=httpx.Response(
                200, json={"result": [_hit("b", 0.4), _hit("a", 0.8), _hit("c", 0.1)]}
            )
        )
        client = _client(sleep, top_k=2)

        passages = await client.retrieve("How do limit orders work?", asset_filter="asset-1")

        assert [p.text for p in passages] == ["a", "b"]
        body = json.loads(search.calls[0].request.content)
        assert body["limit"] == 4
        assert body["vector"] == [0.1, 0.2, 0.3]
        assert body["filter"]["must"][0]["match"]["value"] == "asset-1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_embedding_failures_give_empty_result(self, sleep):
        """Test three failed embedding attempts return [] with exponential delays."""
        embed = respx.post(f"{EMBED_BASE}/api/embeddings").mock(
            return_value=httpx.Response(503)
        )
        search = respx.post(SEARCH_URL).mock(return_value=httpx.Response(200, json={"result": []}))
        client = _client(sleep)

        passages = await client.retrieve("anything")

        assert passages == []
        assert embed.call_count == 3
        assert not search.called
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_embedding_recovers(self, sleep):
        respx.post(f"{EMBED_BASE}/api/embeddings").mock(
            side_effect=[
                httpx.ConnectError("down"),
                httpx.Response(200, json={"embedding": [1.0]}),
            ]
        )
        client = _client(sleep)

        assert await client.embed("q") == [1.0]
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_embedding_field(self, sleep):
        respx.post(f"{EMBED_BASE}/api/embeddings").mock(
            return_value=httpx.Response(200, json={"error": "model not found"})
        )
        client = _client(sleep, retry_attempts=2)

        assert await client.embed("q") is None
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_failure_gives_empty_result(self, sleep):
        respx.post(f"{EMBED_BASE}/api/embeddings").mock(
            return_value=httpx.Response(200, json={"embedding": [0.5]})
        )
        respx.post(SEARCH_URL).mock(return_value=httpx.Response(500))
        client = _client(sleep)

        assert await client.retrieve("q") == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_explicit_top_k_overrides_default(self, sleep):
        """Test top_k=0 is honoured rather than replaced by the default."""
        embed = respx.post(f"{EMBED_BASE}/api/embeddings").mock(
            return_value=httpx.Response(200, json={"embedding": [0.5]})
        )
        search = respx.post(SEARCH_URL).mock(
            return_value=httpx.Response(200, json={"result": [_hit("a", 0.9), _hit("b", 0.5)]})
        )
        client = _client(sleep, top_k=3)

        assert await client.retrieve("q", top_k=0) == []
        assert not embed.called
        assert not search.called

        passages = await client.retrieve("q", top_k=1)
        assert [p.text for p in passages] == ["a"]
        assert json.loads(search.calls[-1].request.content)["limit"] == 2

        await client.retrieve("q")
        assert json.loads(search.calls[-1].request.content)["limit"] == 6
