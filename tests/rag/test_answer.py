"""Tests for grounded answer generation."""

import json

import httpx
import pytest
import respx

from tokenchat.core.types import RetrievedPassage
from tokenchat.rag.answer import (
    GENERAL_DISCLOSURE,
    GREETING_REPLY,
    THANKS_REPLY,
    AnswerGenerator,
    canned_reply,
    strip_bold,
)

LLM_BASE = "http://llm.test/api"


class StubRetriever:
    def __init__(self, passages=None):
        self.passages = passages or []
        self.calls = []

    async def retrieve(self, query, asset_filter=None, top_k=None):
        self.calls.append((query, asset_filter))
        return self.passages


def _chat_response(content):
    return httpx.Response(200, json={"message": {"role": "assistant", "content": content}})


def _generator(retriever, sleep):
    return AnswerGenerator(LLM_BASE, retriever, session=httpx.AsyncClient(), sleep=sleep)


class TestCannedReply:
    def test_greetings(self):
        assert canned_reply("Hi") == GREETING_REPLY
        assert canned_reply("  hello ") == GREETING_REPLY

    def test_thanks(self):
        assert canned_reply("thank you") == THANKS_REPLY
        assert canned_reply("TY") == THANKS_REPLY

    def test_other(self):
        assert canned_reply("hi there, what is Jupiter?") is None


def test_strip_bold():
    assert strip_bold("**Jupiter** is an aggregator") == "Jupiter is an aggregator"


class TestAnswerGenerator:
    @pytest.mark.asyncio
    async def test_greeting_skips_retrieval(self, sleep):
        retriever = StubRetriever()
        generator = _generator(retriever, sleep)

        assert await generator.ask("hey") == GREETING_REPLY
        assert retriever.calls == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_grounded_answer(self, sleep):
        """Test retrieved context is sent to the model and bold markup removed."""
        passage = RetrievedPassage(
            text="DCA splits orders over time.",
            source_file="dca.pdf",
            page_range="2",
            relevance_score=0.8,
        )
        route = respx.post(f"{LLM_BASE}/chat").mock(
            return_value=_chat_response("**DCA** splits your order.")
        )
        retriever = StubRetriever([passage])
        generator = _generator(retriever, sleep)

        reply = await generator.ask("What is DCA?", asset_filter="asset-9")

        assert reply == "DCA splits your order."
        assert retriever.calls == [("What is DCA?", "asset-9")]
        body = json.loads(route.calls[0].request.content)
        assert body["stream"] is False
        assert "[Source: dca.pdf, Pages: 2]" in body["messages"][0]["content"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_context_discloses_general_answer(self, sleep):
        respx.post(f"{LLM_BASE}/chat").mock(return_value=_chat_response("Generally speaking..."))
        generator = _generator(StubRetriever(), sleep)

        reply = await generator.ask("What is a blockchain?")

        assert reply == f"{GENERAL_DISCLOSURE}:\n\nGenerally speaking..."

    @pytest.mark.asyncio
    @respx.mock
    async def test_model_failure_returns_error_string(self, sleep):
        """Test the retry budget is spent and an error string is returned."""
        route = respx.post(f"{LLM_BASE}/chat").mock(return_value=httpx.Response(500))
        generator = _generator(StubRetriever(), sleep)

        reply = await generator.answer("q", "ctx")

        assert reply.startswith(
            "Error: Failed to connect to the language model after 3 attempts:"
        )
        assert route.call_count == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_model_recovers_after_retry(self, sleep):
        respx.post(f"{LLM_BASE}/chat").mock(
            side_effect=[httpx.Response(502), _chat_response("ok")]
        )
        generator = _generator(StubRetriever(), sleep)

        assert await generator.answer("q", "ctx") == "ok"
