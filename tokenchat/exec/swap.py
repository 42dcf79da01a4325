"""Swap execution state machine.

CheckDestinationAccount -> EnsureAccountExists -> FetchQuote -> BuildSwap
-> SignAndSubmit -> ConfirmFinality, ending in SUCCEEDED or FAILED.

Once the swap transaction is submitted it is never resubmitted or cancelled.
A failure after submission means finality could not be observed, so the
signature is always surfaced for out-of-band verification.
"""

import asyncio
import base64
from collections.abc import Callable
from typing import Any

import structlog
from solders.transaction import VersionedTransaction

from ..config.settings import SOL_MINT
from ..core.interfaces import ChainRpc, Notify, Sleep, SwapRouter, Wallet
from ..core.retry import backoff_retrying
from ..core.types import SwapIntent, SwapStep, Token, TransactionAttempt
from .accounts import build_create_ata_transaction, get_associated_token_address
from .wallet import WalletRejectedError

logger = structlog.get_logger(__name__)

REMEDIATION = (
    "Possible solutions:\n"
    "• Check your wallet balance (need SOL for gas)\n"
    "• Try again later if the public RPC is rate-limited\n"
    "• Verify the token mint address\n"
    "• Reduce slippage tolerance\n"
    "• Use a smaller amount"
)


class SwapExecutionError(Exception):
    """Fatal error ending the swap at ``step``."""

    def __init__(self, step: SwapStep, message: str):
        self.step = step
        self.message = message
        super().__init__(message)


def format_swap_amount(intent: SwapIntent, token: Token) -> str:
    """Human-readable "<paid> → <received>" for notifications."""
    if intent.kind == "token":
        units = f"{intent.amount / 10**token.decimals:.{token.decimals}f}"
        if "." in units:
            units = units.rstrip("0").rstrip(".")
        return f"SOL → {units} {token.symbol}"
    if intent.input_mint != SOL_MINT:
        return f"Unknown → {token.symbol}"
    return f"{intent.amount / 10**9:.4f} SOL → {token.symbol}"


class SwapExecutor:
    """Turns a validated swap intent into a confirmed on-chain swap."""

    def __init__(
        self,
        rpc: ChainRpc,
        router: SwapRouter,
        explorer_tx_url: str = "https://solscan.io/tx/",
        merchant_pubkey: str | None = None,
        retry_attempts: int = 3,
        retry_base_seconds: float = 1.0,
        send_max_retries: int = 10,
        confirm_timeout_seconds: float = 90.0,
        wallet_sign_timeout_seconds: float | None = None,
        sleep: Sleep | None = None,
        decode_transaction: Callable[[bytes], Any] = VersionedTransaction.from_bytes,
    ) -> None:
        """Initialize swap executor.

        Args:
            rpc: Chain RPC client
            router: Liquidity router client
            explorer_tx_url: Prefix used to link signatures
            merchant_pubkey: Owner of the destination account; defaults to the
                token's own address
            retry_attempts: Attempts for the destination account lookup
            retry_base_seconds: Base delay for exponential backoff
            send_max_retries: Node-side submission retries
            confirm_timeout_seconds: Maximum wait for finalized commitment
            wallet_sign_timeout_seconds: Optional limit on wallet approval;
                None waits for the user indefinitely
            sleep: Optional sleep coroutine (for testing)
            decode_transaction: Deserializer for router transactions
        """
        self.rpc = rpc
        self.router = router
        self.explorer_tx_url = explorer_tx_url
        self.merchant_pubkey = merchant_pubkey
        self.retry_attempts = retry_attempts
        self.retry_base_seconds = retry_base_seconds
        self.send_max_retries = send_max_retries
        self.confirm_timeout_seconds = confirm_timeout_seconds
        self.wallet_sign_timeout_seconds = wallet_sign_timeout_seconds
        self._sleep = sleep
        self._decode_transaction = decode_transaction

    def _link(self, signature: str) -> str:
        return f"{self.explorer_tx_url}{signature}"

    async def execute(
        self,
        intent: SwapIntent,
        token: Token,
        wallet: Wallet,
        notify: Notify,
    ) -> TransactionAttempt:
        """Run the swap to a terminal state.

        Progress and the final outcome are reported through ``notify``; the
        method itself never raises.

        Args:
            intent: Validated swap intent
            token: Selected token
            wallet: Wallet used to sign
            notify: Callback appending assistant messages to the transcript

        Returns:
            The final TransactionAttempt (step SUCCEEDED or FAILED)
        """
        attempt = TransactionAttempt()
        log = logger.bind(token=token.symbol, output_mint=intent.output_mint)

        try:
            await self._run(intent, token, wallet, notify, attempt)
        except SwapExecutionError as e:
            attempt.fail(e.message)
            log.error("Swap failed", step=e.step.value, error=e.message)
            notify(self._failure_message(e.message, attempt.signature))
        except Exception as e:
            failed_at = attempt.step
            attempt.fail(str(e))
            log.exception("Unexpected swap error", step=failed_at.value)
            notify(self._failure_message(str(e), attempt.signature))
        return attempt

    async def _run(
        self,
        intent: SwapIntent,
        token: Token,
        wallet: Wallet,
        notify: Notify,
        attempt: TransactionAttempt,
    ) -> None:
        owner = self.merchant_pubkey or token.address

        attempt.advance(SwapStep.CHECK_DESTINATION_ACCOUNT)
        try:
            destination = get_associated_token_address(owner, intent.output_mint)
        except ValueError as e:
            raise SwapExecutionError(
                SwapStep.CHECK_DESTINATION_ACCOUNT, f"Invalid mint or owner address: {e}"
            ) from e
        attempt.destination_account = destination
        account = await self._check_destination(destination, notify, attempt)

        if account is None:
            attempt.advance(SwapStep.ENSURE_ACCOUNT_EXISTS)
            await self._create_destination(
                wallet, destination, owner, intent.output_mint, token, notify
            )
            attempt.account_created = True

        attempt.advance(SwapStep.FETCH_QUOTE)
        amount_text = format_swap_amount(intent, token)
        notify(
            f"🔄 Initiating swap: {amount_text}. "
            "Please confirm in your wallet..."
        )
        try:
            quote = await self.router.get_quote(
                intent.input_mint, intent.output_mint, int(round(intent.amount))
            )
        except Exception as e:
            raise SwapExecutionError(SwapStep.FETCH_QUOTE, str(e)) from e

        attempt.advance(SwapStep.BUILD_SWAP)
        try:
            swap = await self.router.build_swap(quote, wallet.pubkey, destination)
        except Exception as e:
            raise SwapExecutionError(SwapStep.BUILD_SWAP, str(e)) from e

        attempt.advance(SwapStep.SIGN_AND_SUBMIT)
        try:
            transaction = self._decode_transaction(
                base64.b64decode(swap["swapTransaction"])
            )
        except Exception as e:
            raise SwapExecutionError(
                SwapStep.SIGN_AND_SUBMIT, f"Could not decode swap transaction: {e}"
            ) from e
        signed = await self._sign(wallet, transaction, SwapStep.SIGN_AND_SUBMIT)
        try:
            signature = await self.rpc.send_raw_transaction(
                bytes(signed),
                skip_preflight=True,
                max_retries=self.send_max_retries,
                preflight_commitment="processed",
            )
        except Exception as e:
            raise SwapExecutionError(
                SwapStep.SIGN_AND_SUBMIT, f"Transaction submission failed: {e}"
            ) from e
        attempt.signature = signature
        notify(f"⏳ Transaction submitted! Signature: {signature}\n\nWaiting for confirmation...")

        attempt.advance(SwapStep.CONFIRM_FINALITY)
        try:
            await self.rpc.confirm_signature(
                signature, "finalized", timeout=self.confirm_timeout_seconds
            )
        except Exception as e:
            raise SwapExecutionError(
                SwapStep.CONFIRM_FINALITY, f"Could not confirm transaction: {e}"
            ) from e

        attempt.advance(SwapStep.SUCCEEDED)
        logger.info("Swap succeeded", signature=signature, token=token.symbol)
        notify(
            "✅ Swap Successful!\n\n"
            f"🔗 Transaction: {self._link(signature)}\n"
            f"💰 Amount: {amount_text}\n\n"
            "The tokens should appear in the destination wallet shortly!"
        )

    async def _check_destination(
        self, destination: str, notify: Notify, attempt: TransactionAttempt
    ) -> dict | None:
        """Look up the destination account, retrying transport errors.

        A missing account is a valid result (None), not an error.
        """
        step = SwapStep.CHECK_DESTINATION_ACCOUNT
        try:
            async for retry in backoff_retrying(
                attempts=self.retry_attempts,
                base_seconds=self.retry_base_seconds,
                sleep=self._sleep,
            ):
                with retry:
                    n = retry.retry_state.attempt_number
                    if n > 1:
                        notify(
                            f"⚠️ Retrying account check (attempt {n}/{self.retry_attempts})..."
                        )
                    try:
                        return await self.rpc.get_account_info(destination, "confirmed")
                    except Exception as e:
                        attempt.record_retry(step, str(e))
                        logger.warning(
                            "Account check failed",
                            account=destination,
                            attempt=n,
                            error=str(e),
                        )
                        raise
        except Exception as e:
            raise SwapExecutionError(
                step,
                f"Failed to fetch account info for {destination}: {e}. The public RPC "
                "endpoint may be rate-limited or blocking requests.",
            ) from e

    async def _create_destination(
        self,
        wallet: Wallet,
        destination: str,
        owner: str,
        mint: str,
        token: Token,
        notify: Notify,
    ) -> None:
        step = SwapStep.ENSURE_ACCOUNT_EXISTS
        notify(f"🛠️ Creating associated token account for {token.symbol}...")
        try:
            blockhash = (await self.rpc.get_latest_blockhash("finalized"))["value"]["blockhash"]
            transaction = build_create_ata_transaction(
                wallet.pubkey, destination, owner, mint, blockhash
            )
        except Exception as e:
            raise SwapExecutionError(
                step, f"Could not prepare account creation: {e}"
            ) from e

        signed = await self._sign(wallet, transaction, step)

        try:
            signature = await self.rpc.send_raw_transaction(
                bytes(signed),
                max_retries=self.send_max_retries,
                preflight_commitment="finalized",
            )
            await self.rpc.confirm_signature(
                signature, "finalized", timeout=self.confirm_timeout_seconds
            )
        except Exception as e:
            raise SwapExecutionError(step, f"Account creation failed: {e}") from e

        logger.info("Associated token account created", account=destination, signature=signature)
        notify(f"✅ Associated token account created! Signature: {self._link(signature)}")

    async def _sign(self, wallet: Wallet, transaction: Any, step: SwapStep) -> Any:
        """Request a wallet signature; suspends until the user acts."""
        try:
            if self.wallet_sign_timeout_seconds is None:
                return await wallet.sign_transaction(transaction)
            return await asyncio.wait_for(
                wallet.sign_transaction(transaction), self.wallet_sign_timeout_seconds
            )
        except WalletRejectedError as e:
            raise SwapExecutionError(step, f"Wallet rejected the request: {e}") from e
        except TimeoutError as e:
            raise SwapExecutionError(
                step,
                f"Wallet did not respond within {self.wallet_sign_timeout_seconds:g}s",
            ) from e

    def _failure_message(self, error: str, signature: str | None) -> str:
        parts = [f"❌ Swap Failed\n\nError: {error}"]
        if signature:
            parts.append(
                f"The transaction was submitted and may still land. Signature: "
                f"{signature}\nCheck {self._link(signature)} before retrying."
            )
        parts.append(REMEDIATION)
        parts.append("Would you like to try again?")
        return "\n\n".join(parts)
