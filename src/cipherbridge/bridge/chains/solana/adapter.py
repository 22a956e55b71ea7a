"""
SVM ledger adapter for the confidential token program.

This module provides:
- Program, mint and account configuration for the devnet deployment
- Transaction builders for wrap, unwrap, transfer, faucet and swap legs
- Existence probing with lazy bootstrap of the caller's own accounts
- Submission through the Solana RPC client
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ....errors import (
    AccountNotInitialized,
    NotConnected,
    RecipientNotOnboarded,
    VaultUnderfunded,
)
from ....logging import get_logger
from ...bridge_types import (
    AmountLike,
    ChainKind,
    EncryptedAmount,
    LedgerTransaction,
    SessionState,
    SwapDirection,
    TokenKind,
    TransactionReceipt,
    to_base_units,
)
from ..base import LedgerAdapter
from . import instructions
from .client import SolanaClient
from .pda import (
    associated_token_address,
    sol_vault_address,
    to_pubkey,
    user_balance_address,
)

logger = get_logger(__name__)

FAUCET_AMOUNT = 100 * 10**6


@dataclass
class SolanaProgramConfig:
    """Deployed program ids, mints and fixed accounts."""

    program_id: str = "h6T7wsEJWMxN2uEZUc4SipEd8Zmz2DWasCDopindjC5"
    lightning_program_id: str = "5sjEbPiqgZrYwR31ahR6Uk9wf5awoX61YGg7jExQSwaj"
    amm_program_id: str = "2UgU5dyB9Z7XEGKn3SW8CFz794ajVrSo4fuEJMQdM1t7"
    # cSOL, 9 decimals
    sol_mint: str = "J7bYB7CMVKnakNZxeDY6eG7KTHVryPdHmXdR3cbWRV4F"
    sol_account: str = "9rQzfa71BUUGGfiwjSoWLAUzgDGhJnqd1RbCFwMEdjSz"
    # cUSDC, 6 decimals
    usdc_mint: str = "G7EzuDs86oQX7ckv5AheQTBgas4UYFqD1Zorx3V3FhdK"
    usdc_account: str = "CY8N8fDMaB88E39m9TWMycX9LShMEV6HkSWN5NpU2SBt"
    spl_usdc_mint: str = "4URjKHCdGwqQVZwqLmkAc25gGLTXw7xBkoPMcPuVYJ7U"
    usdc_vault: str = "HgE9MCv5umddqVHaytfEMm4fNfquqRwW38Sa34DHgp9s"
    sol_usd_price: int = 200

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SolanaProgramConfig":
        """Create from dictionary."""
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        config = cls(**known)
        config.sol_usd_price = int(config.sol_usd_price)
        return config

    @property
    def program(self) -> Pubkey:
        return to_pubkey(self.program_id)

    def mint_for(self, kind: TokenKind) -> Pubkey:
        return to_pubkey(self.sol_mint if kind == TokenKind.NATIVE else self.usdc_mint)

    def decimals_for(self, kind: TokenKind) -> int:
        return 9 if kind == TokenKind.NATIVE else 6


class SolanaAdapter(LedgerAdapter):
    """Builds confidential-token transactions for the SVM ledger."""

    chain = ChainKind.SVM

    def __init__(
        self,
        session: SessionState,
        client: SolanaClient,
        programs: Optional[SolanaProgramConfig] = None,
        signer: Optional[Any] = None,
    ):
        super().__init__(session)
        self.client = client
        self.programs = programs or SolanaProgramConfig()
        self.signer = signer

    def _caller(self) -> Pubkey:
        return to_pubkey(self.require_identity())

    async def _exists(self, address: Pubkey, label: str) -> bool:
        exists = await self.client.account_exists(address)
        logger.debug(f"{label} {address}: {'exists' if exists else 'missing'}")
        return exists

    async def wrap(
        self,
        amount: AmountLike,
        encrypted: EncryptedAmount,
        kind: TokenKind = TokenKind.NATIVE,
    ) -> LedgerTransaction:
        """Lock ``amount`` (token units) in the vault and credit the caller.

        Prepends vault and balance-account initialization when either is
        missing, so bootstrap and the first wrap land atomically.
        """
        amount = to_base_units(amount, self.programs.decimals_for(kind))
        user = self._caller()
        program = self.programs.program
        mint = self.programs.mint_for(kind)
        vault = sol_vault_address(program).address
        balance = user_balance_address(program, user, mint).address

        steps: List[Instruction] = []
        if not await self._exists(vault, "vault"):
            logger.info(f"Bootstrapping vault {vault}")
            steps.append(instructions.initialize_sol_vault(program, vault, user))
        if not await self._exists(balance, "balance account"):
            logger.info(f"Bootstrapping balance account {balance} for {user}")
            steps.append(
                instructions.initialize_user_balance(program, balance, mint, user)
            )
        steps.append(
            instructions.wrap_to_user(
                program, vault, balance, mint, user, amount, encrypted.ciphertext
            )
        )
        return self.new_transaction(steps, "wrap")

    async def unwrap(
        self, amount: AmountLike, kind: TokenKind = TokenKind.NATIVE
    ) -> LedgerTransaction:
        """Release ``amount`` (token units) back to the caller.

        Raises:
            AccountNotInitialized: the caller has no balance account for the mint.
            VaultUnderfunded: native unwrap exceeding the vault's lamports.
        """
        amount = to_base_units(amount, self.programs.decimals_for(kind))
        user = self._caller()
        program = self.programs.program
        mint = self.programs.mint_for(kind)
        balance = user_balance_address(program, user, mint).address

        if not await self._exists(balance, "balance account"):
            raise AccountNotInitialized(
                f"No balance account for {user}; wrap or use the faucet first",
                account=str(balance),
                owner=str(user),
            )

        if kind == TokenKind.STABLE:
            return await self._unwrap_stable(amount, user, balance, mint)

        vault = sol_vault_address(program).address
        vault_info = await self.client.get_account_info(vault)
        available = vault_info.lamports if vault_info is not None else 0
        if available < amount:
            raise VaultUnderfunded(
                f"Vault holds {available} lamports, unwrap needs {amount}",
                vault=str(vault),
                available=available,
                requested=amount,
            )
        step = instructions.unwrap_from_user(program, vault, balance, mint, user, amount)
        return self.new_transaction([step], "unwrap")

    async def _unwrap_stable(
        self, amount: int, user: Pubkey, balance: Pubkey, mint: Pubkey
    ) -> LedgerTransaction:
        spl_mint = to_pubkey(self.programs.spl_usdc_mint)
        token_account = associated_token_address(user, spl_mint)

        steps: List[Instruction] = []
        if not await self._exists(token_account, "token account"):
            logger.info(f"Creating token account {token_account} for {user}")
            steps.append(
                instructions.create_associated_token_account(
                    user, token_account, user, spl_mint
                )
            )
        steps.append(
            instructions.unwrap_usdc_from_user(
                self.programs.program,
                to_pubkey(self.programs.usdc_vault),
                token_account,
                balance,
                mint,
                user,
                amount,
            )
        )
        return self.new_transaction(steps, "unwrap")

    async def transfer(
        self,
        recipient: str,
        encrypted: EncryptedAmount,
        kind: TokenKind = TokenKind.NATIVE,
    ) -> LedgerTransaction:
        """Move an encrypted amount between two existing balance accounts.

        The recipient's account is never created here.

        Raises:
            RecipientNotOnboarded: the recipient has no balance account.
            AccountNotInitialized: the caller has no balance account.
        """
        user = self._caller()
        destination_owner = to_pubkey(recipient)
        program = self.programs.program
        mint = self.programs.mint_for(kind)
        source = user_balance_address(program, user, mint).address
        destination = user_balance_address(program, destination_owner, mint).address

        if not await self._exists(destination, "recipient balance account"):
            raise RecipientNotOnboarded(
                f"Recipient {destination_owner} has no balance account for this token",
                account=str(destination),
                owner=str(destination_owner),
            )
        if not await self._exists(source, "balance account"):
            raise AccountNotInitialized(
                f"No balance account for {user}",
                account=str(source),
                owner=str(user),
            )
        step = instructions.transfer_to_user(
            program, source, destination, mint, user, destination_owner,
            encrypted.ciphertext,
        )
        return self.new_transaction([step], "transfer")

    async def faucet(self, encrypted: EncryptedAmount) -> LedgerTransaction:
        """Single ``faucet_usdc`` instruction for :data:`FAUCET_AMOUNT`."""
        user = self._caller()
        program = self.programs.program
        mint = self.programs.mint_for(TokenKind.STABLE)
        balance = user_balance_address(program, user, mint).address
        step = instructions.faucet_usdc(program, balance, mint, user, encrypted.ciphertext)
        return self.new_transaction([step], "faucet")

    async def swap_leg(
        self,
        source: EncryptedAmount,
        destination: EncryptedAmount,
        direction: SwapDirection,
    ) -> LedgerTransaction:
        """Burn from the source pool account and mint to the destination one.

        Both instructions share one transaction so no burn is ever observed
        without its mint.
        """
        user = self._caller()
        programs = self.programs
        lightning = to_pubkey(programs.lightning_program_id)
        sol_mint, sol_account = to_pubkey(programs.sol_mint), to_pubkey(programs.sol_account)
        usdc_mint, usdc_account = to_pubkey(programs.usdc_mint), to_pubkey(programs.usdc_account)

        if direction == SwapDirection.STABLE_TO_BASE:
            from_account, from_mint = usdc_account, usdc_mint
            to_account, to_mint = sol_account, sol_mint
        else:
            from_account, from_mint = sol_account, sol_mint
            to_account, to_mint = usdc_account, usdc_mint

        steps = [
            instructions.burn(
                programs.program, from_account, from_mint, user, lightning,
                source.ciphertext,
            ),
            instructions.mint_to(
                programs.program, to_mint, to_account, user, lightning,
                destination.ciphertext,
            ),
        ]
        return self.new_transaction(steps, "swap")

    async def execute(self, transaction: LedgerTransaction) -> TransactionReceipt:
        """Sign with the session's signer, submit, and wait for confirmation."""
        self.check_chain(transaction)
        self.require_identity()
        if self.signer is None:
            raise NotConnected(
                "No Solana signer attached to this session", chain=self.chain.value
            )
        logger.info(
            f"Submitting {transaction.action} with {len(transaction)} instruction(s)"
        )
        signature = await self.client.sign_and_send(transaction.steps, self.signer)
        return TransactionReceipt(chain=self.chain, transaction_id=signature)
