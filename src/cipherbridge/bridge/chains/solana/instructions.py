"""
Instruction builders for the confidential token program.

Each builder returns a ``solders`` Instruction whose payload is an 8-byte
Anchor discriminator followed by positional fixed-width fields. Amount
fields always precede ciphertext fields, and field order mirrors the
program's argument order.
"""

import hashlib
from typing import Dict

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ...codec import concat_frames, encode_u64, frame_ciphertext, handle_bytes
from .pda import ASSOCIATED_TOKEN_PROGRAM_ID, SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID

DISCRIMINATOR_LENGTH = 8


def compute_discriminator(instruction_name: str) -> bytes:
    """Anchor instruction discriminator: ``sha256("global:<name>")[:8]``."""
    preimage = f"global:{instruction_name}".encode("utf-8")
    return hashlib.sha256(preimage).digest()[:DISCRIMINATOR_LENGTH]


INITIALIZE_SOL_VAULT = compute_discriminator("initialize_sol_vault")
INITIALIZE_USER_BALANCE = compute_discriminator("initialize_user_balance")
WRAP_TO_USER = compute_discriminator("wrap_to_user")
UNWRAP_FROM_USER = compute_discriminator("unwrap_from_user")
UNWRAP_USDC_FROM_USER = compute_discriminator("unwrap_usdc_from_user")
TRANSFER_TO_USER = compute_discriminator("transfer_to_user")
FAUCET_USDC = compute_discriminator("faucet_usdc")
BURN = compute_discriminator("burn")
MINT_TO = compute_discriminator("mint_to")

DISCRIMINATORS: Dict[str, bytes] = {
    "initialize_sol_vault": INITIALIZE_SOL_VAULT,
    "initialize_user_balance": INITIALIZE_USER_BALANCE,
    "wrap_to_user": WRAP_TO_USER,
    "unwrap_from_user": UNWRAP_FROM_USER,
    "unwrap_usdc_from_user": UNWRAP_USDC_FROM_USER,
    "transfer_to_user": TRANSFER_TO_USER,
    "faucet_usdc": FAUCET_USDC,
    "burn": BURN,
    "mint_to": MINT_TO,
}

# Input-type byte appended to length-prefixed ciphertexts: 0 = raw ciphertext.
CIPHERTEXT_INPUT = 0


def _writable(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=True)


def _readonly(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=False)


def initialize_sol_vault(program_id: Pubkey, vault: Pubkey, payer: Pubkey) -> Instruction:
    """Create the program's SOL vault account (one-time bootstrap)."""
    return Instruction(
        program_id,
        INITIALIZE_SOL_VAULT,
        [
            _writable(vault),
            _writable(payer, signer=True),
            _readonly(SYSTEM_PROGRAM_ID),
        ],
    )


def initialize_user_balance(
    program_id: Pubkey, user_balance: Pubkey, mint: Pubkey, payer: Pubkey
) -> Instruction:
    """Create the caller's per-mint confidential balance account."""
    return Instruction(
        program_id,
        INITIALIZE_USER_BALANCE,
        [
            _writable(user_balance),
            _readonly(mint),
            _writable(payer, signer=True),
            _readonly(SYSTEM_PROGRAM_ID),
        ],
    )


def wrap_to_user(
    program_id: Pubkey,
    vault: Pubkey,
    user_balance: Pubkey,
    mint: Pubkey,
    user: Pubkey,
    amount: int,
    ciphertext: bytes,
) -> Instruction:
    """``wrap_to_user(amount: u64, encrypted_amount: u128)``."""
    data = concat_frames(WRAP_TO_USER, encode_u64(amount), handle_bytes(ciphertext))
    return Instruction(
        program_id,
        data,
        [
            _writable(vault),
            _writable(user_balance),
            _readonly(mint),
            _writable(user, signer=True),
            _readonly(SYSTEM_PROGRAM_ID),
        ],
    )


def unwrap_from_user(
    program_id: Pubkey,
    vault: Pubkey,
    user_balance: Pubkey,
    mint: Pubkey,
    user: Pubkey,
    amount: int,
) -> Instruction:
    """``unwrap_from_user(amount: u64)``; lamports go back to ``user``."""
    data = concat_frames(UNWRAP_FROM_USER, encode_u64(amount))
    return Instruction(
        program_id,
        data,
        [
            _writable(vault),
            _writable(user_balance),
            _readonly(mint),
            _writable(user),
            _readonly(user, signer=True),
            _readonly(SYSTEM_PROGRAM_ID),
        ],
    )


def unwrap_usdc_from_user(
    program_id: Pubkey,
    usdc_vault: Pubkey,
    user_token_account: Pubkey,
    user_balance: Pubkey,
    mint: Pubkey,
    user: Pubkey,
    amount: int,
) -> Instruction:
    """``unwrap_usdc_from_user(amount: u64)``; SPL USDC goes to the user's ATA."""
    data = concat_frames(UNWRAP_USDC_FROM_USER, encode_u64(amount))
    return Instruction(
        program_id,
        data,
        [
            _writable(usdc_vault),
            _writable(user_token_account),
            _writable(user_balance),
            _readonly(mint),
            _readonly(user, signer=True),
            _readonly(TOKEN_PROGRAM_ID),
        ],
    )


def transfer_to_user(
    program_id: Pubkey,
    source_balance: Pubkey,
    destination_balance: Pubkey,
    mint: Pubkey,
    user: Pubkey,
    recipient: Pubkey,
    ciphertext: bytes,
) -> Instruction:
    """``transfer_to_user(encrypted_amount: u128)``."""
    data = concat_frames(TRANSFER_TO_USER, handle_bytes(ciphertext))
    return Instruction(
        program_id,
        data,
        [
            _writable(source_balance),
            _writable(destination_balance),
            _readonly(mint),
            _readonly(user, signer=True),
            _readonly(recipient),
        ],
    )


def faucet_usdc(
    program_id: Pubkey,
    user_balance: Pubkey,
    usdc_mint: Pubkey,
    user: Pubkey,
    ciphertext: bytes,
) -> Instruction:
    """``faucet_usdc(encrypted_amount: u128)``.

    The program creates the balance account itself if needed.
    """
    data = concat_frames(FAUCET_USDC, handle_bytes(ciphertext))
    return Instruction(
        program_id,
        data,
        [
            _writable(user_balance),
            _readonly(usdc_mint),
            _writable(user, signer=True),
            _readonly(SYSTEM_PROGRAM_ID),
        ],
    )


def burn(
    program_id: Pubkey,
    source_account: Pubkey,
    source_mint: Pubkey,
    user: Pubkey,
    lightning_program: Pubkey,
    ciphertext: bytes,
) -> Instruction:
    """Burn leg of a swap: length-prefixed ciphertext plus input-type byte."""
    data = concat_frames(BURN, frame_ciphertext(ciphertext, CIPHERTEXT_INPUT))
    return Instruction(
        program_id,
        data,
        [
            _writable(source_account),
            _writable(source_mint),
            _writable(user, signer=True),
            _readonly(lightning_program),
            _readonly(SYSTEM_PROGRAM_ID),
        ],
    )


def mint_to(
    program_id: Pubkey,
    destination_mint: Pubkey,
    destination_account: Pubkey,
    user: Pubkey,
    lightning_program: Pubkey,
    ciphertext: bytes,
) -> Instruction:
    """Mint leg of a swap. Note the mint precedes the account here."""
    data = concat_frames(MINT_TO, frame_ciphertext(ciphertext, CIPHERTEXT_INPUT))
    return Instruction(
        program_id,
        data,
        [
            _writable(destination_mint),
            _writable(destination_account),
            _writable(user, signer=True),
            _readonly(lightning_program),
            _readonly(SYSTEM_PROGRAM_ID),
        ],
    )


def create_associated_token_account(
    payer: Pubkey, associated_account: Pubkey, owner: Pubkey, mint: Pubkey
) -> Instruction:
    """SPL associated-token-account ``Create`` (empty payload)."""
    return Instruction(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        b"",
        [
            _writable(payer, signer=True),
            _writable(associated_account),
            _readonly(owner),
            _readonly(mint),
            _readonly(SYSTEM_PROGRAM_ID),
            _readonly(TOKEN_PROGRAM_ID),
        ],
    )
