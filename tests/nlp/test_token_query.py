"""Tests for the token query responder."""

import json

import httpx
import pytest
import respx

from tokenchat.nlp.token_query import (
    EMPTY_REPLY,
    TokenQueryResponder,
    format_volume,
    offline_reply,
    token_info,
)

LLM_BASE = "http://llm.test/api"


class FixedPrices:
    """Price source returning a constant."""

    def __init__(self, price):
        self.price = price
        self.calls = []

    async def get_price(self, mint, coingecko_id=None):
        self.calls.append((mint, coingecko_id))
        return self.price


class TestFormatting:
    def test_format_volume(self, token, meme_token):
        assert format_volume(token) == "$1,234,567.50"
        assert format_volume(meme_token) is None

    def test_token_info(self, token):
        info = token_info(token, 0.5)

        assert info["symbol"] == "TEST"
        assert info["estimated_price"] == "$0.500000"
        assert info["tags"] == "N/A"
        assert info["created_at"] == "2024-01-01 00:00 UTC"

    def test_token_info_without_price(self, token):
        assert token_info(token, None)["estimated_price"] == "N/A"


class TestOfflineReply:
    """Test keyword replies used when the model is down."""

    def test_price(self, token):
        assert "real-time price" in offline_reply("What's the price?", token)

    def test_volume(self, token):
        assert offline_reply("show volume", token) == (
            "The 24-hour volume for TEST is $1,234,567.50."
        )

    def test_about(self, meme_token):
        reply = offline_reply("tell me about it", meme_token)

        assert "5 decimals" in reply
        assert "Tags: meme." in reply

    def test_alert(self, token):
        assert "coming soon" in offline_reply("alert me when it dumps", token)

    def test_default(self, token):
        assert "swap 0.1 SOL for this token" in offline_reply("hmm", token)


class TestTokenQueryResponder:
    @pytest.mark.asyncio
    @respx.mock
    async def test_streams_reply(self, token):
        """Test fragments are joined and the token context reaches the prompt."""
        body = "\n".join(
            json.dumps({"response": part}) for part in ["TEST trades ", "at $0.50.", ""]
        )
        route = respx.post(f"{LLM_BASE}/generate").mock(
            return_value=httpx.Response(200, content=body.encode())
        )
        prices = FixedPrices(0.5)
        responder = TokenQueryResponder(LLM_BASE, prices, session=httpx.AsyncClient())

        reply = await responder.respond("what's the price?", token)

        assert reply == "TEST trades at $0.50."
        assert prices.calls == [(token.address, None)]
        sent = json.loads(route.calls[0].request.content)
        assert "$0.500000" in sent["prompt"]
        assert sent["options"]["num_predict"] == 150
        assert sent["options"]["temperature"] == 0.7

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_reply(self, token):
        respx.post(f"{LLM_BASE}/generate").mock(
            return_value=httpx.Response(200, content=b'{"response": "", "done": true}\n')
        )
        responder = TokenQueryResponder(LLM_BASE, FixedPrices(None), session=httpx.AsyncClient())

        assert await responder.respond("hello?", token) == EMPTY_REPLY

    @pytest.mark.asyncio
    @respx.mock
    async def test_llm_failure_uses_offline_reply(self, token):
        respx.post(f"{LLM_BASE}/generate").mock(return_value=httpx.Response(503))
        responder = TokenQueryResponder(LLM_BASE, FixedPrices(None), session=httpx.AsyncClient())

        reply = await responder.respond("show volume", token)

        assert reply == offline_reply("show volume", token)
