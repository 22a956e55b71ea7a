"""
Program-derived address (PDA) management for the Solana adapter.

This module provides:
- The bump search that turns a program id and ordered seeds into an
  off-curve address
- Named helpers for every account the confidential token and AMM
  programs derive, with seed order matching the on-chain programs
- Associated token account derivation for the SPL side of unwraps
"""

import functools
import hashlib
from typing import List, NamedTuple, Sequence, Tuple, Union

from solders.pubkey import Pubkey

from ....errors import AddressDerivationExhausted, ValidationError
from ....logging import get_logger

logger = get_logger(__name__)

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEEDS = 16
MAX_SEED_LENGTH = 32
MAX_BUMP = 255

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)

# Seed tags. Order of seeds is part of each program's account contract.
USER_BALANCE_SEED = b"user_balance"
SOL_VAULT_SEED = b"sol_vault_v2"
USDC_VAULT_SEED = b"usdc_vault"
VAULT_SEED = b"vault"
POOL_SEED = b"pool"
POSITION_SEED = b"position"
SWAP_RESULT_SEED = b"swap_result"

PubkeyLike = Union[Pubkey, str, bytes]
Seed = Union[bytes, bytearray, str, Pubkey]


class DerivedAddress(NamedTuple):
    """A derived account and the bump that took it off the curve."""

    address: Pubkey
    bump: int

    def __str__(self) -> str:
        return str(self.address)


def to_pubkey(value: PubkeyLike) -> Pubkey:
    """Coerce a base58 string, 32 raw bytes or a Pubkey into a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValidationError(
                f"Public key must be 32 bytes, got {len(value)}",
                field="pubkey",
                value=len(value),
                expected=32,
            )
        return Pubkey(bytes(value))
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value)
        except ValueError as e:
            raise ValidationError(
                f"Invalid Solana address: {value}", field="pubkey", value=value
            ) from e
    raise ValidationError(
        f"Unsupported public key type: {type(value).__name__}", field="pubkey"
    )


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, Pubkey):
        return bytes(seed)
    if isinstance(seed, str):
        return seed.encode("utf-8")
    if isinstance(seed, (bytes, bytearray)):
        return bytes(seed)
    raise ValidationError(
        f"Unsupported seed type: {type(seed).__name__}", field="seeds"
    )


def _validate_seeds(seeds: Sequence[Seed]) -> List[bytes]:
    # The bump is appended as one more seed, so callers get one fewer slot.
    if len(seeds) > MAX_SEEDS - 1:
        raise ValidationError(
            f"Too many seeds: {len(seeds)}",
            field="seeds",
            value=len(seeds),
            expected=f"<= {MAX_SEEDS - 1}",
        )
    raw = [_seed_bytes(seed) for seed in seeds]
    for index, seed in enumerate(raw):
        if len(seed) > MAX_SEED_LENGTH:
            raise ValidationError(
                f"Seed {index} is {len(seed)} bytes, max is {MAX_SEED_LENGTH}",
                field="seeds",
                value=len(seed),
                expected=f"<= {MAX_SEED_LENGTH}",
            )
    return raw


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Hash seeds and program id into a candidate address (may be on curve)."""
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    return Pubkey(hasher.digest())


DERIVATION_CACHE_SIZE = 1024


@functools.lru_cache(maxsize=DERIVATION_CACHE_SIZE)
def _find_address(program: bytes, seeds: Tuple[bytes, ...]) -> DerivedAddress:
    program_id = Pubkey(program)
    for bump in range(MAX_BUMP, -1, -1):
        candidate = create_program_address(list(seeds) + [bytes([bump])], program_id)
        if not candidate.is_on_curve():
            return DerivedAddress(candidate, bump)
    raise AddressDerivationExhausted(
        f"No off-curve address for {len(seeds)} seeds under {program_id}",
        program_id=str(program_id),
    )


def derive_address(program_id: PubkeyLike, seeds: Sequence[Seed]) -> DerivedAddress:
    """Derive the canonical program address for ``seeds`` under ``program_id``.

    Bumps are tried from 255 down to 0; the first candidate that is not a
    valid ed25519 point wins.

    Raises:
        ValidationError: too many seeds or a seed longer than 32 bytes.
        AddressDerivationExhausted: every bump produced an on-curve point.
    """
    program = to_pubkey(program_id)
    return _find_address(bytes(program), tuple(_validate_seeds(seeds)))


def user_balance_address(
    program_id: PubkeyLike, owner: PubkeyLike, mint: PubkeyLike
) -> DerivedAddress:
    """Per-(owner, mint) confidential balance account."""
    return derive_address(
        program_id, [USER_BALANCE_SEED, to_pubkey(owner), to_pubkey(mint)]
    )


def sol_vault_address(program_id: PubkeyLike) -> DerivedAddress:
    """Vault holding lamports backing wrapped SOL."""
    return derive_address(program_id, [SOL_VAULT_SEED])


def usdc_vault_address(program_id: PubkeyLike) -> DerivedAddress:
    """Authority PDA of the SPL USDC vault."""
    return derive_address(program_id, [USDC_VAULT_SEED])


def token_vault_address(program_id: PubkeyLike, spl_mint: PubkeyLike) -> DerivedAddress:
    """Vault token account for an SPL mint."""
    return derive_address(program_id, [VAULT_SEED, to_pubkey(spl_mint)])


def pool_address(
    amm_program_id: PubkeyLike, mint_a: PubkeyLike, mint_b: PubkeyLike
) -> DerivedAddress:
    return derive_address(
        amm_program_id, [POOL_SEED, to_pubkey(mint_a), to_pubkey(mint_b)]
    )


def position_address(
    amm_program_id: PubkeyLike, pool: PubkeyLike, user: PubkeyLike
) -> DerivedAddress:
    return derive_address(
        amm_program_id, [POSITION_SEED, to_pubkey(pool), to_pubkey(user)]
    )


def swap_result_address(
    amm_program_id: PubkeyLike, pool: PubkeyLike, user: PubkeyLike
) -> DerivedAddress:
    return derive_address(
        amm_program_id, [SWAP_RESULT_SEED, to_pubkey(pool), to_pubkey(user)]
    )


def associated_token_address(owner: PubkeyLike, mint: PubkeyLike) -> Pubkey:
    """Associated SPL token account of ``owner`` for ``mint``."""
    return derive_address(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        [to_pubkey(owner), TOKEN_PROGRAM_ID, to_pubkey(mint)],
    ).address
