"""
Confidential operation engine for CipherBridge.

This module ties the ledger adapters, the confidentiality gateway and the
shadow balance ledger together for one session. Every operation runs the
same strict sequence:

1. validate the amount (and the cached balance where one is spent)
2. encrypt through the gateway
3. build the ledger transaction
4. submit and wait for confirmation
5. update the shadow balance

Shadow balances are touched only after step 4 succeeds. Each action family
holds its in-flight flag for the whole sequence, so a second invocation is
rejected rather than queued.

It also provides ``BalancePoller``, which refreshes public balances on a
timer without touching any in-flight transaction state.
"""

import asyncio
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import NotConnected, ValidationError
from ..logging import LogContext, get_logger
from .bridge_types import (
    ActionFamily,
    AmountLike,
    ChainKind,
    EncryptedAmount,
    EncryptionContext,
    SessionState,
    SwapDirection,
    TokenKind,
    TransactionReceipt,
    from_base_units,
    parse_amount,
    to_base_units,
)
from .chains.base import LedgerAdapter
from .chains.ethereum.adapter import EvmAdapter
from .chains.ethereum.client import EvmClient
from .chains.ethereum.contracts import MAX_APPROVAL
from .chains.solana.adapter import FAUCET_AMOUNT, SolanaAdapter, SolanaProgramConfig
from .chains.solana.client import SolanaClient
from .chains.solana.pda import associated_token_address, to_pubkey
from .config import EngineConfig
from .gateway import ConfidentialityGateway
from .quotes import chainlink_price, quote_swap, swap_leg_amount
from .shadow_balances import ShadowBalanceLedger

logger = get_logger(__name__)

EMPTY_HANDLE = bytes(32)


class ConfidentialOperations:
    """User-facing confidential operations on both ledgers."""

    def __init__(
        self,
        session: SessionState,
        gateway: ConfidentialityGateway,
        svm: Optional[SolanaAdapter] = None,
        evm: Optional[EvmAdapter] = None,
        shadow: Optional[ShadowBalanceLedger] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.svm = svm
        self.evm = evm
        self.shadow = shadow or ShadowBalanceLedger()
        self.config = config or EngineConfig()

    def _require_svm(self) -> SolanaAdapter:
        if self.svm is None:
            raise NotConnected("No SVM adapter configured", chain=ChainKind.SVM.value)
        return self.svm

    def _require_evm(self) -> EvmAdapter:
        if self.evm is None:
            raise NotConnected("No EVM adapter configured", chain=ChainKind.EVM.value)
        return self.evm

    @property
    def programs(self) -> SolanaProgramConfig:
        return self.svm.programs if self.svm is not None else self.config.programs

    async def _encrypt(
        self, chain: ChainKind, plaintext: int, program: str, decimals: int
    ) -> EncryptedAmount:
        owner = self.session.identity(chain)
        encrypted = await self.gateway.encrypt(
            plaintext, EncryptionContext(owner=owner, program=program), decimals=decimals
        )
        logger.debug(f"Encrypted {decimals}-decimal amount for {program}: {encrypted.preview()}")
        return encrypted

    async def _submit(self, adapter: LedgerAdapter, transaction) -> TransactionReceipt:
        receipt = await adapter.execute(transaction)
        logger.info(
            f"{transaction.action} confirmed on {adapter.chain.value}: "
            f"{receipt.transaction_id}",
            context=LogContext(
                chain=adapter.chain.value,
                operation=transaction.action,
                session_id=self.session.session_id,
                transaction_id=receipt.transaction_id,
            ),
        )
        return receipt

    # SVM operations

    async def wrap(
        self, amount: AmountLike, kind: TokenKind = TokenKind.NATIVE
    ) -> TransactionReceipt:
        """Wrap ``amount`` into the caller's confidential balance."""
        with self.session.in_flight(ActionFamily.WRAP):
            svm = self._require_svm()
            token = self.config.token(ChainKind.SVM, kind)
            owner = self.session.identity(ChainKind.SVM)
            units = to_base_units(amount, token.decimals)

            encrypted = await self._encrypt(
                ChainKind.SVM, units, self.programs.program_id, token.decimals
            )
            transaction = await svm.wrap(amount, encrypted, kind)
            receipt = await self._submit(svm, transaction)

            self.shadow.apply(owner, token, parse_amount(amount))
            return receipt

    async def unwrap(
        self, amount: AmountLike, kind: TokenKind = TokenKind.NATIVE
    ) -> TransactionReceipt:
        """Release ``amount`` from the caller's confidential balance."""
        with self.session.in_flight(ActionFamily.UNWRAP):
            svm = self._require_svm()
            token = self.config.token(ChainKind.SVM, kind)
            owner = self.session.identity(ChainKind.SVM)
            value = parse_amount(amount)

            transaction = await svm.unwrap(value, kind)
            receipt = await self._submit(svm, transaction)

            self.shadow.apply(owner, token, -value)
            return receipt

    async def transfer(
        self, recipient: str, amount: AmountLike, kind: TokenKind = TokenKind.NATIVE
    ) -> TransactionReceipt:
        """Send an encrypted amount to another onboarded wallet."""
        with self.session.in_flight(ActionFamily.TRANSFER):
            svm = self._require_svm()
            token = self.config.token(ChainKind.SVM, kind)
            owner = self.session.identity(ChainKind.SVM)
            value = parse_amount(amount)
            self.shadow.transfer_amount(token, value)
            self.shadow.ensure_sufficient(owner, token, value)

            encrypted = await self._encrypt(
                ChainKind.SVM,
                to_base_units(value, token.decimals),
                self.programs.program_id,
                token.decimals,
            )
            transaction = await svm.transfer(recipient, encrypted, kind)
            receipt = await self._submit(svm, transaction)

            self.shadow.transfer(owner, recipient, token, value)
            return receipt

    async def faucet(self) -> TransactionReceipt:
        """Mint the fixed test amount of confidential stable tokens."""
        with self.session.in_flight(ActionFamily.FAUCET):
            svm = self._require_svm()
            token = self.config.token(ChainKind.SVM, TokenKind.STABLE)
            owner = self.session.identity(ChainKind.SVM)

            encrypted = await self._encrypt(
                ChainKind.SVM, FAUCET_AMOUNT, self.programs.program_id, token.decimals
            )
            transaction = await svm.faucet(encrypted)
            receipt = await self._submit(svm, transaction)

            self.shadow.set(owner, token, from_base_units(FAUCET_AMOUNT, token.decimals))
            return receipt

    async def swap(
        self, amount: AmountLike, direction: SwapDirection
    ) -> TransactionReceipt:
        """Swap between cUSDC and cSOL at the configured SOL price."""
        with self.session.in_flight(ActionFamily.SWAP):
            svm = self._require_svm()
            if direction == SwapDirection.STABLE_TO_BASE:
                source_kind, destination_kind = TokenKind.STABLE, TokenKind.NATIVE
            else:
                source_kind, destination_kind = TokenKind.NATIVE, TokenKind.STABLE
            source = self.config.token(ChainKind.SVM, source_kind)
            destination = self.config.token(ChainKind.SVM, destination_kind)
            owner = self.session.identity(ChainKind.SVM)
            value = parse_amount(amount)
            self.shadow.ensure_sufficient(owner, source, value)

            price = self.programs.sol_usd_price
            out_units = swap_leg_amount(value, price, direction)
            if out_units <= 0:
                raise ValidationError(
                    f"Swap of {value} {source.symbol} is too small to mint anything",
                    field="amount",
                    value=str(value),
                )
            program = self.programs.program_id
            burn_amount = await self._encrypt(
                ChainKind.SVM, to_base_units(value, source.decimals), program, source.decimals
            )
            mint_amount = await self._encrypt(
                ChainKind.SVM, out_units, program, destination.decimals
            )
            transaction = await svm.swap_leg(burn_amount, mint_amount, direction)
            receipt = await self._submit(svm, transaction)

            self.shadow.apply(owner, source, -value)
            self.shadow.apply(
                owner, destination, from_base_units(out_units, destination.decimals)
            )
            return receipt

    def svm_swap_quote(
        self, amount: AmountLike, direction: SwapDirection
    ) -> Optional[float]:
        return quote_swap(amount, self.programs.sol_usd_price, direction)

    def balances(self) -> Dict[str, str]:
        """Cached display balances for the connected SVM wallet."""
        return self.shadow.balances(self.session.identity(ChainKind.SVM))

    # EVM operations

    async def evm_wrap(
        self, amount: AmountLike, kind: TokenKind = TokenKind.NATIVE
    ) -> TransactionReceipt:
        """Wrap ETH (payable) or approved USDC into its confidential token."""
        with self.session.in_flight(ActionFamily.WRAP):
            evm = self._require_evm()
            if kind == TokenKind.NATIVE:
                transaction = evm.wrap_native(amount)
            else:
                transaction = evm.wrap_wrapped(amount)
            return await self._submit(evm, transaction)

    async def evm_approve_underlying(self, amount: AmountLike) -> TransactionReceipt:
        """Let the cUSDC wrapper pull ``amount`` of plain USDC."""
        with self.session.in_flight(ActionFamily.APPROVE):
            evm = self._require_evm()
            return await self._submit(evm, evm.approve_underlying(amount))

    async def evm_unwrap(
        self, amount: AmountLike, kind: TokenKind = TokenKind.NATIVE
    ) -> TransactionReceipt:
        with self.session.in_flight(ActionFamily.UNWRAP):
            evm = self._require_evm()
            transaction = evm.unwrap(amount, is_wrapped=kind == TokenKind.STABLE)
            return await self._submit(evm, transaction)

    async def evm_approve(
        self,
        kind: TokenKind = TokenKind.STABLE,
        amount: Optional[AmountLike] = None,
        spender: Optional[str] = None,
    ) -> TransactionReceipt:
        """Encrypted allowance for the swap contract.

        Without ``amount`` the allowance is effectively unlimited.
        """
        with self.session.in_flight(ActionFamily.APPROVE):
            evm = self._require_evm()
            token_address = evm.token_address(kind)
            decimals = evm.decimals_for(kind)
            units = MAX_APPROVAL if amount is None else to_base_units(amount, decimals)
            encrypted = await self._encrypt(ChainKind.EVM, units, token_address, decimals)
            transaction = evm.approve(spender or evm.contracts.swap, encrypted, kind)
            return await self._submit(evm, transaction)

    async def evm_transfer(
        self, to: str, amount: AmountLike, kind: TokenKind = TokenKind.STABLE
    ) -> TransactionReceipt:
        """Confidential ERC-20 transfer."""
        with self.session.in_flight(ActionFamily.TRANSFER):
            evm = self._require_evm()
            token_address = evm.token_address(kind)
            decimals = evm.decimals_for(kind)
            encrypted = await self._encrypt(
                ChainKind.EVM, to_base_units(amount, decimals), token_address, decimals
            )
            return await self._submit(evm, evm.transfer(to, encrypted, kind))

    async def evm_swap(
        self, amount: AmountLike, direction: SwapDirection
    ) -> TransactionReceipt:
        """Swap through the pool contract; the amount is encrypted for it."""
        with self.session.in_flight(ActionFamily.SWAP):
            evm = self._require_evm()
            kind = (
                TokenKind.STABLE
                if direction == SwapDirection.STABLE_TO_BASE
                else TokenKind.NATIVE
            )
            decimals = evm.decimals_for(kind)
            encrypted = await self._encrypt(
                ChainKind.EVM,
                to_base_units(amount, decimals),
                evm.contracts.swap,
                decimals,
            )
            return await self._submit(evm, evm.swap(encrypted, direction))

    async def evm_add_liquidity(
        self, stable_amount: AmountLike, native_amount: AmountLike
    ) -> TransactionReceipt:
        with self.session.in_flight(ActionFamily.ADD_LIQUIDITY):
            evm = self._require_evm()
            pool = evm.contracts.swap
            stable_decimals = evm.decimals_for(TokenKind.STABLE)
            native_decimals = evm.decimals_for(TokenKind.NATIVE)
            stable_units = to_base_units(stable_amount, stable_decimals)
            native_units = to_base_units(native_amount, native_decimals)

            encrypted_stable = await self._encrypt(
                ChainKind.EVM, stable_units, pool, stable_decimals
            )
            encrypted_native = await self._encrypt(
                ChainKind.EVM, native_units, pool, native_decimals
            )
            transaction = evm.add_liquidity(encrypted_stable, encrypted_native)
            return await self._submit(evm, transaction)

    async def evm_swap_quote(
        self, amount: AmountLike, direction: SwapDirection
    ) -> Optional[float]:
        """Swap preview at the pool's current oracle price."""
        evm = self._require_evm()
        price = chainlink_price(await evm.eth_usd_price())
        return quote_swap(amount, price, direction)

    async def decrypt_balances(
        self,
        authorization: str,
        kinds: Sequence[TokenKind] = (TokenKind.NATIVE, TokenKind.STABLE),
    ) -> Dict[str, Decimal]:
        """Reveal the caller's confidential EVM balances.

        Tokens whose handle is empty (never funded) are left out.
        """
        with self.session.in_flight(ActionFamily.DECRYPT):
            evm = self._require_evm()
            owner = self.session.identity(ChainKind.EVM)
            handles = await evm.balance_handles(list(kinds))

            funded: List[TokenKind] = []
            encrypted: List[EncryptedAmount] = []
            for kind, handle in zip(kinds, handles):
                if handle == EMPTY_HANDLE:
                    continue
                funded.append(kind)
                encrypted.append(
                    EncryptedAmount(
                        ciphertext=handle,
                        decimals=evm.decimals_for(kind),
                        owner=owner,
                        program=evm.token_address(kind),
                    )
                )
            if not encrypted:
                logger.info(f"No encrypted balances to decrypt for {owner}")
                return {}

            plaintexts = await self.gateway.decrypt(encrypted, authorization)
            revealed = {}
            for kind, handle, plaintext in zip(funded, encrypted, plaintexts):
                symbol = self.config.token(ChainKind.EVM, kind).symbol
                revealed[symbol] = from_base_units(plaintext, handle.decimals)
            logger.info(f"Decrypted {len(revealed)} balance(s) for {owner}")
            return revealed


Fetcher = Callable[[str], Awaitable[int]]


class BalancePoller:
    """Periodic public-balance refresh, one task per balance.

    Results land in ``snapshot`` only; the poller never reads or writes
    transaction state or the shadow ledger.
    """

    def __init__(
        self,
        session: SessionState,
        solana_client: Optional[SolanaClient] = None,
        evm_client: Optional[EvmClient] = None,
        programs: Optional[SolanaProgramConfig] = None,
        interval: float = 10.0,
    ):
        if interval <= 0:
            raise ValidationError(
                "Poll interval must be positive", field="interval", value=interval
            )
        self.session = session
        self.solana_client = solana_client
        self.evm_client = evm_client
        self.programs = programs or SolanaProgramConfig()
        self.interval = interval
        self.snapshot: Dict[str, int] = {}
        self.running = False
        self.tasks: List[asyncio.Task] = []

    def _fetchers(self) -> Dict[str, Tuple[ChainKind, Fetcher]]:
        fetchers = {}
        if self.solana_client is not None:
            fetchers["SOL"] = (ChainKind.SVM, self.solana_client.get_balance)
            fetchers["SPL_USDC"] = (ChainKind.SVM, self._spl_usdc_balance)
        if self.evm_client is not None:
            fetchers["ETH"] = (ChainKind.EVM, self.evm_client.get_balance)
        return fetchers

    async def _spl_usdc_balance(self, owner: str) -> int:
        token_account = associated_token_address(
            to_pubkey(owner), to_pubkey(self.programs.spl_usdc_mint)
        )
        return await self.solana_client.get_token_amount(token_account)

    async def refresh(self, name: str) -> Optional[int]:
        """Fetch one balance now; ``None`` if its wallet is not connected."""
        chain, fetch = self._fetchers()[name]
        if not self.session.is_connected(chain):
            return None
        value = await fetch(self.session.identity(chain))
        self.snapshot[name] = value
        return value

    async def refresh_all(self) -> Dict[str, int]:
        for name in self._fetchers():
            await self.refresh(name)
        return dict(self.snapshot)

    async def _poll_loop(self, name: str) -> None:
        while self.running:
            try:
                await self.refresh(name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Balance refresh for {name} failed: {e}")
            await asyncio.sleep(self.interval)

    async def start(self) -> None:
        """Start one polling task per known balance."""
        if self.running:
            return
        self.running = True
        for name in self._fetchers():
            self.tasks.append(asyncio.create_task(self._poll_loop(name)))
        logger.info(f"Balance poller started ({len(self.tasks)} task(s), {self.interval}s)")

    async def stop(self) -> None:
        """Cancel the polling tasks."""
        if not self.running:
            return
        self.running = False
        for task in self.tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.tasks = []
        logger.info("Balance poller stopped")
