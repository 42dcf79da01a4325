"""Core interfaces for the token chat agent."""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from .types import Intent, RetrievedPassage, Token

Notify = Callable[[str], None]


@runtime_checkable
class Wallet(Protocol):
    """User wallet able to sign transactions.

    Signing is user-mediated and may suspend indefinitely. Rejection must be
    raised as ``WalletRejectedError``.
    """

    @property
    def pubkey(self) -> str:
        """Base58 public key of the connected wallet."""
        ...

    async def sign_transaction(self, transaction: Any) -> Any:
        """Sign a legacy or versioned transaction and return the signed form."""
        ...


class ChainRpc(Protocol):
    """Subset of the Solana JSON-RPC used by the swap executor."""

    async def get_account_info(
        self, address: str, commitment: str = "confirmed"
    ) -> dict | None:
        ...

    async def get_latest_blockhash(self, commitment: str = "finalized") -> dict:
        ...

    async def send_raw_transaction(
        self,
        txn_bytes: bytes,
        skip_preflight: bool = False,
        max_retries: int | None = None,
        preflight_commitment: str = "processed",
    ) -> str:
        ...

    async def confirm_signature(
        self,
        signature: str,
        commitment: str = "finalized",
        timeout: float = 60.0,
        poll_interval: float = 2.0,
    ) -> dict:
        ...


class SwapRouter(Protocol):
    """Two-phase liquidity router: quote, then build."""

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int
    ) -> dict[str, Any]:
        ...

    async def build_swap(
        self, quote: dict[str, Any], user_public_key: str, destination_account: str
    ) -> dict[str, Any]:
        ...


class PriceSource(Protocol):
    """Best-effort price oracle."""

    async def get_price(self, mint: str, coingecko_id: str | None = None) -> float | None:
        ...


class Retriever(Protocol):
    """Vector retrieval over the document store."""

    async def retrieve(
        self, query: str, asset_filter: str | None = None, top_k: int | None = None
    ) -> list[RetrievedPassage]:
        ...


class Classifier(Protocol):
    """Free text to typed intent."""

    async def classify(self, text: str, token: Token) -> Intent:
        ...


class Responder(Protocol):
    """Produces a prose reply for informational turns."""

    async def respond(self, text: str, token: Token) -> str:
        ...


Sleep = Callable[[float], Awaitable[None]]
