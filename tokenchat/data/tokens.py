"""Jupiter token metadata lookups with an advisory list cache."""

import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from ..core.types import Token

logger = structlog.get_logger(__name__)


def _parse_created_at(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        # Jupiter has served both seconds and milliseconds
        seconds = value / 1000 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str) and value:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return datetime.fromtimestamp(0, tz=UTC)


def token_from_api(item: dict[str, Any]) -> Token:
    """Map a Jupiter token API record to a Token.

    Raises:
        ValueError: If the record lacks an address, symbol or decimals
    """
    try:
        address = item["address"]
        symbol = item["symbol"]
        decimals = int(item["decimals"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed token record: {e}") from e

    extensions = item.get("extensions") or {}
    volume = item.get("daily_volume")
    return Token(
        symbol=symbol,
        name=item.get("name") or symbol,
        address=address,
        decimals=decimals,
        created_at=_parse_created_at(item.get("created_at")),
        tags=tuple(item.get("tags") or ()),
        coingecko_id=extensions.get("coingeckoId"),
        daily_volume=float(volume) if volume is not None else None,
    )


class TokenCatalog:
    """Fetches token metadata from the Jupiter token API.

    Tagged lists are cached in memory for ``cache_ttl_seconds``. The cache is
    advisory: stale entries are acceptable and ``refresh=True`` bypasses it.
    Single-token lookups always re-fetch.
    """

    def __init__(
        self,
        base_url: str = "https://lite-api.jup.ag/tokens/v1",
        cache_ttl_seconds: float = 300.0,
        session: httpx.AsyncClient | None = None,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache_ttl_seconds = cache_ttl_seconds
        self._session = session or httpx.AsyncClient(timeout=20.0)
        self._owns_session = session is None
        self._now_fn = now_fn or time.time
        self._cache: dict[str, tuple[float, list[Token]]] = {}

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def _get_json(self, path: str) -> Any:
        r = await self._session.get(f"{self.base_url}{path}")
        r.raise_for_status()
        return r.json()

    async def get_token(self, mint: str) -> Token:
        """Fetch a fresh Token for ``mint``.

        Raises:
            httpx.HTTPError: On transport errors
            ValueError: If the response is not a valid token record
        """
        data = await self._get_json(f"/token/{mint}")
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected token response for {mint}")
        token = token_from_api(data)
        logger.info("Fetched token", mint=mint, symbol=token.symbol)
        return token

    async def list_tagged(self, tag: str, refresh: bool = False) -> list[Token]:
        """List tokens carrying ``tag`` (``new`` lists recently created tokens).

        Malformed records are skipped. On fetch failure a stale cached list is
        returned when one exists.
        """
        now = self._now_fn()
        cached = self._cache.get(tag)
        if cached and not refresh and now - cached[0] < self.cache_ttl_seconds:
            return list(cached[1])

        path = "/new" if tag == "new" else f"/tagged/{tag}"
        try:
            data = await self._get_json(path)
        except httpx.HTTPError as e:
            logger.warning("Token list fetch failed", tag=tag, error=str(e))
            if cached:
                return list(cached[1])
            raise

        tokens = []
        for item in data if isinstance(data, list) else []:
            try:
                tokens.append(token_from_api(item))
            except ValueError as e:
                logger.debug("Skipping malformed token record", tag=tag, error=str(e))

        self._cache[tag] = (now, tokens)
        logger.info("Token list loaded", tag=tag, count=len(tokens))
        return list(tokens)
