"""Solana JSON-RPC client for account lookups and transaction submission."""

import asyncio
import base64
import time
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class SolanaRpcError(Exception):
    """Exception for Solana RPC errors."""

    def __init__(self, code: int, message: str, data: dict | None = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC Error {code}: {message}")


def reaches_commitment(status: str | None, commitment: str) -> bool:
    """Whether a reported confirmation status satisfies ``commitment``."""
    if status is None:
        return False
    return COMMITMENT_RANK.get(status, -1) >= COMMITMENT_RANK.get(commitment, 2)


class RpcClient:
    """JSON-RPC client for Solana.

    Does not retry on its own; callers own their retry budgets. Submission
    retries are delegated to the node through ``maxRetries``.
    """

    def __init__(
        self,
        rpc_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.rpc_url = rpc_url
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._request_id = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _get_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _call(self, method: str, *params: Any) -> Any:
        """Send one JSON-RPC call and return its ``result``.

        Raises:
            SolanaRpcError: When the node answers with an ``error`` object
            httpx.HTTPError: On transport or status failures
        """
        request = {
            "jsonrpc": "2.0",
            "id": self._get_request_id(),
            "method": method,
            "params": list(params),
        }
        response = await self.client.post(self.rpc_url, json=request)
        response.raise_for_status()
        body = response.json()

        if "error" in body:
            error = body["error"]
            logger.warning("RPC call rejected", method=method, error=error)
            raise SolanaRpcError(
                error.get("code", -1), error.get("message", "Unknown RPC error"), error.get("data")
            )
        return body.get("result")

    async def get_account_info(
        self, address: str, commitment: str = "confirmed"
    ) -> dict | None:
        """Look up an account.

        Returns:
            Account info, or None when the account does not exist
        """
        result = await self._call(
            "getAccountInfo", address, {"encoding": "base64", "commitment": commitment}
        )
        return (result or {}).get("value")

    async def get_latest_blockhash(self, commitment: str = "finalized") -> dict[str, Any]:
        """Get the latest blockhash.

        Returns:
            Result with ``value.blockhash`` and ``value.lastValidBlockHeight``
        """
        return await self._call("getLatestBlockhash", {"commitment": commitment})

    async def send_raw_transaction(
        self,
        txn_bytes: bytes,
        skip_preflight: bool = False,
        max_retries: int | None = None,
        preflight_commitment: str = "processed",
    ) -> str:
        """Submit a signed transaction.

        Args:
            txn_bytes: Serialized signed transaction
            skip_preflight: Whether to skip preflight checks
            max_retries: Node-side rebroadcast budget
            preflight_commitment: Commitment used for preflight

        Returns:
            Transaction signature
        """
        options: dict[str, Any] = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": preflight_commitment,
        }
        if max_retries is not None:
            options["maxRetries"] = max_retries

        encoded = base64.b64encode(txn_bytes).decode("ascii")
        signature = await self._call("sendTransaction", encoded, options)
        logger.info("Transaction sent", signature=signature, size=len(txn_bytes))
        return signature

    async def _signature_status(self, signature: str) -> dict[str, Any] | None:
        result = await self._call(
            "getSignatureStatuses", [signature], {"searchTransactionHistory": True}
        )
        statuses = (result or {}).get("value") or [None]
        return statuses[0]

    async def confirm_signature(
        self,
        signature: str,
        commitment: str = "finalized",
        timeout: float = 60.0,
        poll_interval: float = 2.0,
    ) -> dict[str, Any]:
        """Poll until a signature reaches ``commitment``.

        Transport errors while polling are logged and polled through.

        Raises:
            TimeoutError: If ``timeout`` seconds pass without reaching it
            SolanaRpcError: If the transaction failed on chain
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                status = await self._signature_status(signature)
            except httpx.HTTPError as e:
                logger.warning("Signature status unavailable", signature=signature, error=str(e))
                status = None

            if status is not None and status.get("err") is not None:
                raise SolanaRpcError(-1, f"Transaction failed: {status['err']}")
            if status is not None and reaches_commitment(
                status.get("confirmationStatus"), commitment
            ):
                logger.info("Transaction confirmed", signature=signature, slot=status.get("slot"))
                return status
            await asyncio.sleep(poll_interval)

        raise TimeoutError(f"Transaction confirmation timeout after {timeout}s: {signature}")
