"""Answers informational questions about the selected token."""

import json

import httpx
import structlog

from ..core.interfaces import PriceSource
from ..core.types import Token
from .streaming import FragmentDecoder

logger = structlog.get_logger(__name__)

EMPTY_REPLY = (
    "I understand your question, but I need more information to provide a "
    "helpful response."
)

QUERY_PROMPT = """You are a helpful DeFi assistant specializing in Solana tokens.

CONTEXT:
- Current token: {token_info}
- User query: "{query}"

GUIDELINES:
1. Provide natural, conversational responses
2. For price queries, use the estimated price or mention data limitations
3. For volume/stats queries, use the provided data
4. For monitoring/alerts, explain it's coming soon
5. For general token info, use the provided metadata
6. Be concise but informative
7. If you don't have specific data, be honest about limitations

RESPONSE STYLE:
- Natural language (NOT JSON)
- Friendly and helpful tone
- Include relevant numbers/stats when available
- Suggest related actions when appropriate"""


def format_volume(token: Token) -> str | None:
    if token.daily_volume is None:
        return None
    return f"${token.daily_volume:,.2f}"


def token_info(token: Token, price: float | None) -> dict[str, object]:
    return {
        "name": token.name,
        "symbol": token.symbol,
        "address": token.address,
        "decimals": token.decimals,
        "volume_24h": format_volume(token) or "N/A",
        "created_at": token.created_at.strftime("%Y-%m-%d %H:%M UTC"),
        "tags": ", ".join(token.tags) or "N/A",
        "coingeckoId": token.coingecko_id or "N/A",
        "estimated_price": f"${price:.6f}" if price is not None else "N/A",
    }


def offline_reply(text: str, token: Token) -> str:
    """Keyword-based reply used when the language model is unavailable."""
    lower = text.lower()
    volume = format_volume(token)
    if "price" in lower:
        return (
            f"I don't have real-time price data for {token.symbol} right now, but you "
            f"can check the 24h volume of {volume or 'N/A'} to gauge activity."
        )
    if "volume" in lower:
        return f"The 24-hour volume for {token.symbol} is {volume or 'not available'}."
    if "info" in lower or "about" in lower:
        tags = f" Tags: {', '.join(token.tags)}." if token.tags else ""
        return (
            f"{token.name} ({token.symbol}) is a Solana token with {token.decimals} "
            f"decimals. It was created on {token.created_at:%Y-%m-%d}.{tags}"
        )
    if "alert" in lower or "monitor" in lower:
        return (
            "Price alerts and monitoring features are coming soon! For now, you can "
            "manually check back or try making a small swap."
        )
    return (
        f"I can help you with information about {token.symbol} or execute swaps. "
        f'Try asking about the price, volume, or say "swap 0.1 SOL for this token".'
    )


class TokenQueryResponder:
    """Answers questions about a token using live price data and the LLM."""

    def __init__(
        self,
        llm_base: str,
        prices: PriceSource,
        model: str = "llama3.2",
        temperature: float = 0.7,
        top_p: float = 0.9,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.llm_base = llm_base.rstrip("/")
        self.prices = prices
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self._session = session or httpx.AsyncClient(timeout=60.0)
        self._owns_session = session is None

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def _stream(self, prompt: str) -> str:
        decoder = FragmentDecoder()
        async with self._session.stream(
            "POST",
            f"{self.llm_base}/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "stream": True,
                "options": {
                    "temperature": self.temperature,
                    "top_p": self.top_p,
                    "num_predict": 150,
                },
            },
        ) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                decoder.feed(chunk)
        return decoder.close()

    async def respond(self, text: str, token: Token) -> str:
        price = await self.prices.get_price(token.address, token.coingecko_id)
        prompt = QUERY_PROMPT.format(
            token_info=json.dumps(token_info(token, price), indent=2),
            query=text.replace('"', "'"),
        )
        try:
            reply = (await self._stream(prompt)).strip()
        except Exception as e:
            logger.warning("Token query LLM failed", token=token.symbol, error=str(e))
            return offline_reply(text, token)
        return reply or EMPTY_REPLY
