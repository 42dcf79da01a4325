"""Associated token account derivation and creation."""

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)


def get_associated_token_address(owner: str, mint: str) -> str:
    """Derive the associated token account for (owner, mint).

    Owners off the ed25519 curve (PDAs) are allowed.

    Raises:
        ValueError: If either address is not valid base58 public key
    """
    owner_key = Pubkey.from_string(owner)
    mint_key = Pubkey.from_string(mint)
    address, _bump = Pubkey.find_program_address(
        [bytes(owner_key), bytes(TOKEN_PROGRAM_ID), bytes(mint_key)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return str(address)


def create_associated_token_account_ix(
    payer: str, associated_account: str, owner: str, mint: str
) -> Instruction:
    """Build the associated token program ``Create`` instruction."""
    accounts = [
        AccountMeta(Pubkey.from_string(payer), is_signer=True, is_writable=True),
        AccountMeta(Pubkey.from_string(associated_account), is_signer=False, is_writable=True),
        AccountMeta(Pubkey.from_string(owner), is_signer=False, is_writable=False),
        AccountMeta(Pubkey.from_string(mint), is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, b"", accounts)


def build_create_ata_transaction(
    payer: str, associated_account: str, owner: str, mint: str, blockhash: str
) -> Transaction:
    """Single-instruction unsigned transaction creating an associated account."""
    ix = create_associated_token_account_ix(payer, associated_account, owner, mint)
    message = Message.new_with_blockhash(
        [ix], Pubkey.from_string(payer), Hash.from_string(blockhash)
    )
    return Transaction.new_unsigned(message)
