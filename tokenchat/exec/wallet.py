"""Wallet implementations able to sign Solana transactions."""

import json
import os
from typing import Any

import base58
import structlog
from solders.keypair import Keypair
from solders.transaction import Transaction, VersionedTransaction

logger = structlog.get_logger(__name__)


class WalletRejectedError(Exception):
    """The wallet (or its user) declined to sign."""


class KeypairWallet:
    """Local wallet backed by a solders Keypair.

    Signs immediately without user interaction; used by the CLI. Browser or
    hardware wallets implement the same ``pubkey``/``sign_transaction`` shape.
    """

    def __init__(self, keypair: Keypair) -> None:
        self.keypair = keypair
        logger.info("KeypairWallet initialized", pubkey=self.pubkey)

    @classmethod
    def load(
        cls,
        keypair_path_json: str | None = None,
        secret_key_env: str = "SOLANA_SK_B58",
    ) -> "KeypairWallet":
        """Load a keypair from a JSON file or a base58 environment variable.

        Raises:
            ValueError: If no valid keypair source is found
        """
        if keypair_path_json:
            try:
                return cls(Keypair.from_bytes(load_json_keypair(keypair_path_json)))
            except ValueError as e:
                logger.warning(
                    "Failed to load JSON keypair", path=keypair_path_json, error=str(e)
                )

        try:
            return cls(Keypair.from_bytes(load_base58_secret(secret_key_env)))
        except ValueError as e:
            logger.warning(
                "Failed to load secret from environment",
                env_var=secret_key_env,
                error=str(e),
            )

        raise ValueError(
            "No valid keypair source found. Provide a JSON keypair file or set "
            f"{secret_key_env}"
        )

    @property
    def pubkey(self) -> str:
        return str(self.keypair.pubkey())

    async def sign_transaction(self, transaction: Any) -> Any:
        """Sign a legacy or versioned transaction.

        Raises:
            WalletRejectedError: If the transaction type is unsupported or the
                keypair is not a required signer
        """
        try:
            if isinstance(transaction, VersionedTransaction):
                return VersionedTransaction(transaction.message, [self.keypair])
            if isinstance(transaction, Transaction):
                transaction.sign([self.keypair], transaction.message.recent_blockhash)
                return transaction
        except Exception as e:
            raise WalletRejectedError(f"Signing failed: {e}") from e
        raise WalletRejectedError(
            f"Unsupported transaction type: {type(transaction).__name__}"
        )


def load_base58_secret(env_var: str) -> bytes:
    """Load base58-encoded secret key from environment variable.

    Returns:
        64-byte secret key
    """
    secret_str = os.getenv(env_var)
    if not secret_str:
        raise ValueError(f"Environment variable {env_var} not set")

    return load_base58_secret_from_string(secret_str)


def load_base58_secret_from_string(secret_str: str) -> bytes:
    """Decode a base58 secret key and check it is 64 bytes."""
    try:
        secret_bytes = base58.b58decode(secret_str.strip())
    except Exception as e:
        raise ValueError(f"Invalid base58 secret key: {e}") from e

    if len(secret_bytes) != 64:
        raise ValueError(
            f"Invalid secret key length: {len(secret_bytes)} bytes (expected 64)"
        )
    return secret_bytes


def load_json_keypair(json_path: str) -> bytes:
    """Load secret key from JSON keypair file (Phantom/solana-keygen format).

    Args:
        json_path: Path to JSON keypair file

    Returns:
        64-byte secret key
    """
    try:
        with open(json_path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to load JSON keypair from {json_path}: {e}") from e

    if isinstance(data, list):
        if len(data) != 64:
            raise ValueError(f"Invalid keypair array length: {len(data)} (expected 64)")
        return bytes(data)
    if isinstance(data, dict) and "secretKey" in data:
        secret_data = data["secretKey"]
        if isinstance(secret_data, list):
            return bytes(secret_data)
        if isinstance(secret_data, str):
            return load_base58_secret_from_string(secret_data)
    raise ValueError("JSON keypair file does not contain a valid secret key")
