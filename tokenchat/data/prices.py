"""Best-effort price oracle (CoinGecko by id, Jupiter by mint)."""

from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class PriceOracle:
    """Looks up a USD price for a token. Misses and errors return None."""

    def __init__(
        self,
        coingecko_base: str = "https://api.coingecko.com/api/v3",
        jupiter_price_base: str = "https://api.jup.ag/price/v2",
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.coingecko_base = coingecko_base.rstrip("/")
        self.jupiter_price_base = jupiter_price_base.rstrip("/")
        self._session = session or httpx.AsyncClient(timeout=15.0)
        self._owns_session = session is None

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        r = await self._session.get(url, params=params)
        r.raise_for_status()
        return r.json()

    async def get_price(self, mint: str, coingecko_id: str | None = None) -> float | None:
        """Fetch the current USD price.

        Args:
            mint: Token mint address, used with the Jupiter price API
            coingecko_id: Optional CoinGecko id, preferred when present

        Returns:
            Price in USD, or None if unavailable
        """
        try:
            if coingecko_id:
                data = await self._get_json(
                    f"{self.coingecko_base}/simple/price",
                    {"ids": coingecko_id, "vs_currencies": "usd"},
                )
                price = (data.get(coingecko_id) or {}).get("usd")
            else:
                data = await self._get_json(self.jupiter_price_base, {"ids": mint})
                price = ((data.get("data") or {}).get(mint) or {}).get("price")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(
                "Price fetch failed", mint=mint, coingecko_id=coingecko_id, error=str(e)
            )
            return None

        if price is None:
            logger.debug("Price not found", mint=mint, coingecko_id=coingecko_id)
            return None
        try:
            return float(price)
        except (TypeError, ValueError):
            return None
