"""Jupiter swap API client: quote, then build an unsigned swap transaction."""

from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class JupiterError(Exception):
    """Jupiter returned an error instead of a quote or transaction."""


def build_quote_params(
    input_mint: str,
    output_mint: str,
    amount: int,
    slippage_bps: int,
    swap_mode: str = "ExactOut",
    restrict_intermediate_tokens: bool = True,
) -> dict[str, Any]:
    """Build query parameters for the Jupiter quote endpoint.

    Args:
        input_mint: Input token mint address
        output_mint: Output token mint address
        amount: Amount in smallest units
        slippage_bps: Slippage tolerance in basis points
        swap_mode: ``ExactIn`` or ``ExactOut``
        restrict_intermediate_tokens: Route only through liquid intermediates

    Returns:
        Dictionary of query parameters
    """
    return {
        "inputMint": input_mint,
        "outputMint": output_mint,
        "amount": str(amount),
        "slippageBps": slippage_bps,
        "restrictIntermediateTokens": str(restrict_intermediate_tokens).lower(),
        "swapMode": swap_mode,
    }


def build_swap_request(
    quote: dict[str, Any],
    user_public_key: str,
    destination_account: str,
    max_priority_fee_lamports: int,
    priority_level: str = "veryHigh",
) -> dict[str, Any]:
    """Body for the swap-build endpoint with dynamic compute and a fee ceiling."""
    return {
        "quoteResponse": quote,
        "userPublicKey": user_public_key,
        "destinationTokenAccount": destination_account,
        "dynamicComputeUnitLimit": True,
        "prioritizationFeeLamports": {
            "priorityLevelWithMaxLamports": {
                "maxLamports": max_priority_fee_lamports,
                "priorityLevel": priority_level,
                "global": False,
            }
        },
    }


class JupiterClient:
    """Client for the Jupiter swap API.

    Quotes are time-sensitive, so neither call is retried: an ``error`` field
    in the response is raised as ``JupiterError``.
    """

    def __init__(
        self,
        base_url: str = "https://lite-api.jup.ag/swap/v1",
        slippage_bps: int = 50,
        swap_mode: str = "ExactOut",
        max_priority_fee_lamports: int = 1_000_000,
        priority_level: str = "veryHigh",
        session: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Jupiter client.

        Args:
            base_url: Jupiter swap API base URL
            slippage_bps: Slippage tolerance in basis points
            swap_mode: Quote swap mode
            max_priority_fee_lamports: Priority fee ceiling in lamports
            priority_level: Jupiter priority level
            session: Optional HTTP session
        """
        self.base_url = base_url.rstrip("/")
        self.slippage_bps = slippage_bps
        self.swap_mode = swap_mode
        self.max_priority_fee_lamports = max_priority_fee_lamports
        self.priority_level = priority_level
        self.session = session or httpx.AsyncClient(timeout=30.0)
        self._owns_session = session is None

    async def close(self) -> None:
        if self._owns_session:
            await self.session.aclose()

    def _check(self, endpoint: str, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise JupiterError(f"Unexpected {endpoint} response")
        if data.get("error"):
            logger.error("Jupiter API error", endpoint=endpoint, error=data["error"])
            raise JupiterError(str(data["error"]))
        return data

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        try:
            response = await self.session.request(method, url, params=params, json=body)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Jupiter API request failed", endpoint=endpoint, error=str(e))
            raise JupiterError(f"{endpoint} request failed: {e}") from e

        # Jupiter reports routing errors as JSON bodies on 4xx responses
        if response.is_error and not (isinstance(data, dict) and data.get("error")):
            raise JupiterError(f"{endpoint} returned HTTP {response.status_code}")
        return self._check(endpoint, data)

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int
    ) -> dict[str, Any]:
        """Request a quote.

        Raises:
            JupiterError: If the router returns an error or is unreachable
        """
        params = build_quote_params(
            input_mint=input_mint,
            output_mint=output_mint,
            amount=amount,
            slippage_bps=self.slippage_bps,
            swap_mode=self.swap_mode,
        )
        logger.info(
            "Requesting Jupiter quote",
            input_mint=input_mint,
            output_mint=output_mint,
            amount=amount,
            slippage_bps=self.slippage_bps,
        )
        try:
            return await self._request("GET", "quote", params=params)
        except JupiterError as e:
            raise JupiterError(f"Quote failed: {e}") from e

    async def build_swap(
        self, quote: dict[str, Any], user_public_key: str, destination_account: str
    ) -> dict[str, Any]:
        """Exchange a quote for a base64 unsigned transaction.

        Raises:
            JupiterError: If the router returns an error or no transaction
        """
        body = build_swap_request(
            quote,
            user_public_key,
            destination_account,
            self.max_priority_fee_lamports,
            self.priority_level,
        )
        logger.info(
            "Building swap transaction",
            user_public_key=user_public_key,
            destination_account=destination_account,
        )
        try:
            data = await self._request("POST", "swap", body=body)
        except JupiterError as e:
            raise JupiterError(f"Swap preparation failed: {e}") from e
        if not data.get("swapTransaction"):
            raise JupiterError("Swap preparation failed: no transaction returned")
        return data
