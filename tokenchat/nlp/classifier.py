"""Natural-language intent classification for token chat commands."""

import math
import re
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from ..config.settings import SOL_MINT
from ..core.types import HelpIntent, Intent, QueryIntent, SwapIntent, Token
from .streaming import FragmentDecoder, IntentParseError, extract_json_object

logger = structlog.get_logger(__name__)

SOL_DECIMALS = 9

SWAP_KEYWORDS = ("swap", "buy", "purchase", "get", "trade", "exchange")

_SWAP_VERB = re.compile(r"\b(" + "|".join(SWAP_KEYWORDS) + r")\b", re.IGNORECASE)
_FIRST_NUMBER = re.compile(r"(\d+\.?\d*)")

INTENT_PROMPT = """You are a JSON-only assistant for a Solana DeFi application.

RULES:
1. Analyze user commands and return ONLY valid JSON
2. For swap/buy commands, extract amount and return swap intent
3. For all other queries (price, info, monitoring, etc.), return query intent
4. Be flexible with input formats and synonyms

Current token: {symbol} ({address})
Input token for swaps: SOL ({sol_mint})

SWAP EXAMPLES:
- "swap 0.1 SOL for this token" -> {{"intent":"swap","amount":0.1,"inputMint":"{sol_mint}","outputMint":"{address}"}}
- "buy 100 tokens" -> {{"intent":"swap","amount":100,"type":"tokens","inputMint":"{sol_mint}","outputMint":"{address}"}}
- "get 50 {symbol}" -> {{"intent":"swap","amount":50,"type":"tokens","inputMint":"{sol_mint}","outputMint":"{address}"}}

QUERY EXAMPLES:
- "what's the price" -> {{"intent":"query"}}
- "tell me about this token" -> {{"intent":"query"}}
- "set alert when price drops" -> {{"intent":"query"}}
- "help" -> {{"intent":"help"}}

Command to analyze: "{command}"

Return ONLY JSON, no explanations."""


def build_intent_prompt(text: str, token: Token) -> str:
    return INTENT_PROMPT.format(
        symbol=token.symbol,
        address=token.address,
        sol_mint=SOL_MINT,
        command=text.replace('"', "'"),
    )


def to_base_units(amount: float, decimals: int) -> float:
    return amount * 10**decimals


def normalize_intent(parsed: dict[str, Any], token: Token) -> Intent:
    """Turn a parsed model object into a typed intent.

    Swap amounts are scaled to base units: token decimals when the model
    marked the amount as ``"tokens"``, otherwise SOL (9 decimals).

    Raises:
        IntentParseError: If the object does not describe a usable intent
    """
    intent = parsed.get("intent")
    if intent == "query":
        return QueryIntent()
    if intent == "help":
        return HelpIntent()
    if intent != "swap":
        raise IntentParseError(f"Unknown intent: {intent!r}")

    try:
        raw_amount = float(parsed["amount"])
    except (KeyError, TypeError, ValueError) as e:
        raise IntentParseError(f"Swap intent has no usable amount: {e}") from e
    if not math.isfinite(raw_amount):
        raise IntentParseError(f"Swap amount is not a finite number: {raw_amount}")

    kind = "token" if parsed.get("type") == "tokens" else "sol"
    decimals = token.decimals if kind == "token" else SOL_DECIMALS

    try:
        return SwapIntent(
            amount=to_base_units(raw_amount, decimals),
            input_mint=parsed.get("inputMint") or SOL_MINT,
            output_mint=parsed.get("outputMint") or token.address,
            kind=kind,
        )
    except ValidationError as e:
        raise IntentParseError(f"Invalid swap intent: {e}") from e


def fallback_intent(text: str, token: Token) -> Intent:
    """Deterministic keyword/regex classification used when the model fails.

    A swap verb plus a number yields a SOL-denominated swap into the token;
    anything else is a query.
    """
    if _SWAP_VERB.search(text):
        match = _FIRST_NUMBER.search(text)
        if match:
            return SwapIntent(
                amount=to_base_units(float(match.group(1)), SOL_DECIMALS),
                input_mint=SOL_MINT,
                output_mint=token.address,
                kind="sol",
            )
    return QueryIntent()


class IntentClassifier:
    """Classifies chat input into swap, query or help intents.

    Streams a low-temperature completion constrained to JSON and falls back to
    keyword matching whenever the model output is unusable. ``classify`` never
    raises.
    """

    def __init__(
        self,
        llm_base: str,
        model: str = "llama3.2",
        temperature: float = 0.1,
        top_p: float = 0.9,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.llm_base = llm_base.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self._session = session or httpx.AsyncClient(timeout=60.0)
        self._owns_session = session is None

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def _stream_completion(self, prompt: str) -> str:
        decoder = FragmentDecoder()
        async with self._session.stream(
            "POST",
            f"{self.llm_base}/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "stream": True,
                "options": {"temperature": self.temperature, "top_p": self.top_p},
            },
        ) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                decoder.feed(chunk)
        return decoder.close()

    async def classify(self, text: str, token: Token) -> Intent:
        """Classify ``text`` in the context of ``token``.

        Args:
            text: Raw user input
            token: Currently selected token

        Returns:
            SwapIntent (amount in base units), QueryIntent or HelpIntent
        """
        try:
            raw = await self._stream_completion(build_intent_prompt(text, token))
            logger.debug("Raw intent response", response=raw[:200])
            intent = normalize_intent(extract_json_object(raw), token)
        except Exception as e:
            intent = fallback_intent(text, token)
            logger.warning(
                "Intent parsing failed, using keyword fallback",
                error=str(e),
                fallback=intent.intent,
            )
            return intent

        logger.info("Intent classified", intent=intent.intent, token=token.symbol)
        return intent
