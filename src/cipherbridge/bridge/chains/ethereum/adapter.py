"""
EVM ledger adapter for the confidential ERC-20 wrappers and swap contract.

Every operation returns a transaction holding exactly one ContractCall.
Plaintext wrap and unwrap amounts are scaled to the token's decimals here;
approve, transfer, swap and liquidity calls only ever carry ciphertext.
"""

from typing import Any, List, Optional

from web3 import Web3

from ....errors import NotConnected, ValidationError
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
from . import contracts
from .client import EvmClient
from .contracts import ContractCall, EvmContractsConfig

logger = get_logger(__name__)

NATIVE_DECIMALS = 18
STABLE_DECIMALS = 6
PRICE_FEED_DECIMALS = 8


def require_address(value: str, field_name: str) -> str:
    """Checksummed form of ``value`` or ``ValidationError``."""
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValidationError(
            f"Invalid address for {field_name}: {value!r}",
            field=field_name,
            value=value,
            expected="20-byte hex address",
        )
    return Web3.to_checksum_address(value)


def require_encrypted(value: Any, field_name: str = "encrypted_amount") -> EncryptedAmount:
    if not isinstance(value, EncryptedAmount):
        raise ValidationError(
            f"{field_name} must be an EncryptedAmount, got {type(value).__name__}",
            field=field_name,
            expected="EncryptedAmount",
        )
    return value


class EvmAdapter(LedgerAdapter):
    """Builds contract calls for the EVM ledger."""

    chain = ChainKind.EVM

    def __init__(
        self,
        session: SessionState,
        client: Optional[EvmClient] = None,
        contracts_config: Optional[EvmContractsConfig] = None,
        signer: Optional[Any] = None,
    ):
        super().__init__(session)
        self.client = client
        self.contracts = contracts_config or EvmContractsConfig()
        self.signer = signer

    def token_address(self, kind: TokenKind) -> str:
        if kind == TokenKind.NATIVE:
            return self.contracts.confidential_eth
        return self.contracts.confidential_usdc

    @staticmethod
    def decimals_for(kind: TokenKind) -> int:
        return NATIVE_DECIMALS if kind == TokenKind.NATIVE else STABLE_DECIMALS

    def _single(self, call: ContractCall, action: str) -> LedgerTransaction:
        logger.debug(f"{action}: {call.signature} on {call.address} value={call.value}")
        return self.new_transaction([call], action)

    def wrap_native(self, amount: AmountLike) -> LedgerTransaction:
        """``wrap()`` on cETH with the amount attached as value."""
        self.require_identity()
        value = to_base_units(amount, NATIVE_DECIMALS)
        call = ContractCall(
            self.contracts.confidential_eth, contracts.WRAP_NATIVE, (), value=value
        )
        return self._single(call, "wrap")

    def wrap_wrapped(self, amount: AmountLike) -> LedgerTransaction:
        """``wrap(uint256)`` on cUSDC; needs a prior underlying approval."""
        self.require_identity()
        units = to_base_units(amount, STABLE_DECIMALS)
        call = ContractCall(
            self.contracts.confidential_usdc, contracts.WRAP_WRAPPED, (units,)
        )
        return self._single(call, "wrap")

    def approve_underlying(self, amount: AmountLike) -> LedgerTransaction:
        """Plain ERC-20 approval letting cUSDC pull the underlying USDC."""
        self.require_identity()
        units = to_base_units(amount, STABLE_DECIMALS)
        call = ContractCall(
            self.contracts.mock_usdc,
            contracts.APPROVE,
            (self.contracts.confidential_usdc, units),
        )
        return self._single(call, "approve")

    def approve(
        self,
        spender: str,
        encrypted: EncryptedAmount,
        kind: TokenKind = TokenKind.STABLE,
    ) -> LedgerTransaction:
        """Encrypted allowance on a confidential token."""
        self.require_identity()
        spender = require_address(spender, "spender")
        encrypted = require_encrypted(encrypted)
        call = ContractCall(
            self.token_address(kind),
            contracts.APPROVE_ENCRYPTED,
            (spender, encrypted.ciphertext),
            value=self.contracts.approve_fee,
            gas=contracts.FHE_GAS,
        )
        return self._single(call, "approve")

    def unwrap(self, amount: AmountLike, is_wrapped: bool) -> LedgerTransaction:
        """``unwrap(uint256)`` on cUSDC (6 decimals) or cETH (18 decimals)."""
        self.require_identity()
        kind = TokenKind.STABLE if is_wrapped else TokenKind.NATIVE
        units = to_base_units(amount, self.decimals_for(kind))
        call = ContractCall(self.token_address(kind), contracts.UNWRAP, (units,))
        return self._single(call, "unwrap")

    def transfer(
        self,
        to: str,
        encrypted: EncryptedAmount,
        kind: TokenKind = TokenKind.STABLE,
    ) -> LedgerTransaction:
        """``transfer(address,bytes)`` on the confidential token."""
        self.require_identity()
        recipient = require_address(to, "to")
        encrypted = require_encrypted(encrypted)
        call = ContractCall(
            self.token_address(kind),
            contracts.TRANSFER_ENCRYPTED,
            (recipient, encrypted.ciphertext),
            value=self.contracts.transfer_fee,
            gas=contracts.TRANSFER_GAS,
        )
        return self._single(call, "transfer")

    def swap(self, encrypted: EncryptedAmount, direction: SwapDirection) -> LedgerTransaction:
        """Confidential swap through the pool contract."""
        self.require_identity()
        encrypted = require_encrypted(encrypted)
        signature = (
            contracts.SWAP_USDC_FOR_ETH
            if direction == SwapDirection.STABLE_TO_BASE
            else contracts.SWAP_ETH_FOR_USDC
        )
        call = ContractCall(
            self.contracts.swap,
            signature,
            (encrypted.ciphertext,),
            value=self.contracts.swap_fee,
            gas=contracts.FHE_GAS,
        )
        return self._single(call, "swap")

    def add_liquidity(
        self, encrypted_stable: EncryptedAmount, encrypted_native: EncryptedAmount
    ) -> LedgerTransaction:
        self.require_identity()
        stable = require_encrypted(encrypted_stable, "encrypted_stable")
        native = require_encrypted(encrypted_native, "encrypted_native")
        call = ContractCall(
            self.contracts.swap,
            contracts.ADD_LIQUIDITY,
            (stable.ciphertext, native.ciphertext),
            value=self.contracts.liquidity_fee,
            gas=contracts.FHE_GAS,
        )
        return self._single(call, "add_liquidity")

    def balance_of(self, kind: TokenKind, owner: Optional[str] = None) -> ContractCall:
        """View call returning the owner's 32-byte balance handle."""
        holder = require_address(owner or self.require_identity(), "owner")
        return ContractCall(self.token_address(kind), contracts.BALANCE_OF, (holder,))

    def _require_client(self) -> EvmClient:
        if self.client is None:
            raise NotConnected("No EVM client configured", chain=self.chain.value)
        return self.client

    async def balance_handles(self, kinds: List[TokenKind]) -> List[bytes]:
        """Current ``balanceOf`` handles for the caller, one per kind."""
        client = self._require_client()
        handles = []
        for kind in kinds:
            (handle,) = await client.call(self.balance_of(kind), ["bytes32"])
            handles.append(bytes(handle))
        return handles

    async def eth_usd_price(self) -> int:
        """Raw 8-decimal oracle answer from the swap contract."""
        client = self._require_client()
        call = ContractCall(self.contracts.swap, contracts.GET_ETH_USD_PRICE, ())
        (price,) = await client.call(call, ["int256"])
        return int(price)

    async def execute(self, transaction: LedgerTransaction) -> TransactionReceipt:
        """Sign the single call, broadcast it and wait for the receipt."""
        self.check_chain(transaction)
        self.require_identity()
        client = self._require_client()
        if self.signer is None:
            raise NotConnected("No EVM signer attached to this session", chain=self.chain.value)
        (call,) = transaction.steps
        tx_hash = await client.send_call(call, self.signer)
        await client.wait_for_receipt(tx_hash)
        return TransactionReceipt(chain=self.chain, transaction_id=tx_hash)
