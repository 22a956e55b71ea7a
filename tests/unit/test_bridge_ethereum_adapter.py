"""
Tests for the EVM ledger adapter and its contract call descriptors.

This module tests:
- Selector and calldata encoding
- Decimal scaling of plaintext wrap and unwrap amounts
- Ciphertext-only approve, transfer, swap and liquidity calls
- Balance handle reads and submission through the client
"""

from unittest.mock import Mock

import pytest
from eth_abi import decode
from eth_account import Account

from cipherbridge.bridge.bridge_types import (
    ChainKind,
    EncryptedAmount,
    LedgerTransaction,
    SessionState,
    SwapDirection,
    TokenKind,
)
from cipherbridge.bridge.chains.ethereum import contracts
from cipherbridge.bridge.chains.ethereum.adapter import EvmAdapter
from cipherbridge.bridge.chains.ethereum.contracts import (
    ContractCall,
    EvmContractsConfig,
    function_selector,
    parse_signature,
)
from cipherbridge.errors import (
    ConfigurationError,
    InvalidAmount,
    NotConnected,
    SubmissionFailed,
    ValidationError,
)
from cipherbridge.testing import FakeEvmClient

CONTRACTS = EvmContractsConfig()


@pytest.fixture
def wallet():
    return Account.create().address


@pytest.fixture
def session(wallet):
    state = SessionState()
    state.connect(ChainKind.EVM, wallet)
    return state


@pytest.fixture
def client():
    return FakeEvmClient()


@pytest.fixture
def adapter(session, client):
    return EvmAdapter(session, client, CONTRACTS, signer=Mock(address="0x0"))


@pytest.fixture
def encrypted(wallet):
    return EncryptedAmount(
        ciphertext=b"\x42" * 66, decimals=6, owner=wallet, program=CONTRACTS.swap
    )


def only_call(transaction: LedgerTransaction) -> ContractCall:
    assert transaction.chain == ChainKind.EVM
    assert len(transaction) == 1
    return transaction.steps[0]


class TestContractCall:
    """Test call descriptors."""

    def test_known_selectors(self):
        assert function_selector("approve(address,uint256)").hex() == "095ea7b3"
        assert function_selector("balanceOf(address)").hex() == "70a08231"

    def test_parse_signature(self):
        assert parse_signature("wrap()") == ("wrap", [])
        assert parse_signature("approve(address,bytes)") == ("approve", ["address", "bytes"])

    def test_malformed_signature(self):
        with pytest.raises(ValidationError):
            parse_signature("wrap")

    def test_arity_checked(self):
        with pytest.raises(ValidationError):
            ContractCall(CONTRACTS.confidential_usdc, contracts.UNWRAP, ())

    def test_calldata(self):
        call = ContractCall(CONTRACTS.confidential_usdc, contracts.UNWRAP, (10,))
        assert call.calldata[:4] == function_selector("unwrap(uint256)")
        assert decode(["uint256"], call.calldata[4:]) == (10,)

    def test_to_dict(self):
        data = ContractCall(CONTRACTS.confidential_eth, contracts.WRAP_NATIVE, value=5).to_dict()
        assert data["value"] == 5
        assert data["gas"] == contracts.DEFAULT_GAS
        assert data["data"] == data["selector"]


class TestContractsConfig:
    """Test deployment configuration."""

    def test_addresses_checksummed(self):
        config = EvmContractsConfig(swap=CONTRACTS.swap.lower())
        assert config.swap == CONTRACTS.swap

    def test_invalid_address(self):
        with pytest.raises(ConfigurationError):
            EvmContractsConfig(swap="0x1234")

    def test_round_trip(self):
        assert EvmContractsConfig.from_dict(CONTRACTS.to_dict()) == CONTRACTS

    def test_fees(self):
        assert CONTRACTS.approve_fee == 5 * 10**16
        assert CONTRACTS.transfer_fee == 10**16


class TestPlaintextCalls:
    """Test wrap, unwrap and underlying approval."""

    def test_wrap_native_scales_to_18_decimals(self, adapter):
        """Test wrapping 1.5 native units attaches 1.5e18 wei and nothing else."""
        call = only_call(adapter.wrap_native("1.5"))

        assert call.address == CONTRACTS.confidential_eth
        assert call.signature == "wrap()"
        assert call.args == ()
        assert call.value == 1500000000000000000

    def test_wrap_wrapped_scales_to_6_decimals(self, adapter):
        call = only_call(adapter.wrap_wrapped(25))
        assert call.address == CONTRACTS.confidential_usdc
        assert call.args == (25_000_000,)
        assert call.value == 0

    def test_approve_underlying(self, adapter):
        call = only_call(adapter.approve_underlying(100))
        assert call.address == CONTRACTS.mock_usdc
        assert call.args == (CONTRACTS.confidential_usdc, 100_000_000)
        assert call.selector.hex() == "095ea7b3"

    def test_unwrap(self, adapter):
        stable = only_call(adapter.unwrap("2.5", is_wrapped=True))
        native = only_call(adapter.unwrap("0.01", is_wrapped=False))
        assert stable.address == CONTRACTS.confidential_usdc
        assert stable.args == (2_500_000,)
        assert native.address == CONTRACTS.confidential_eth
        assert native.args == (10**16,)

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", float("nan"), "1e-30"])
    def test_invalid_amounts(self, adapter, amount):
        with pytest.raises(InvalidAmount):
            adapter.wrap_native(amount)

    def test_not_connected(self, client):
        adapter = EvmAdapter(SessionState(), client, CONTRACTS)
        with pytest.raises(NotConnected):
            adapter.wrap_native(1)


class TestEncryptedCalls:
    """Test ciphertext-carrying calls."""

    def test_approve(self, adapter, encrypted):
        call = only_call(adapter.approve(CONTRACTS.swap, encrypted))
        assert call.address == CONTRACTS.confidential_usdc
        assert call.signature == "approve(address,bytes)"
        assert call.args == (CONTRACTS.swap, encrypted.ciphertext)
        assert call.value == CONTRACTS.approve_fee
        assert call.gas == contracts.FHE_GAS

    def test_approve_native_token(self, adapter, encrypted):
        call = only_call(adapter.approve(CONTRACTS.swap, encrypted, TokenKind.NATIVE))
        assert call.address == CONTRACTS.confidential_eth

    def test_approve_rejects_plaintext(self, adapter):
        with pytest.raises(ValidationError):
            adapter.approve(CONTRACTS.swap, 1000)

    def test_transfer(self, adapter, encrypted):
        recipient = Account.create().address
        call = only_call(adapter.transfer(recipient.lower(), encrypted))
        assert call.args == (recipient, encrypted.ciphertext)
        assert call.value == CONTRACTS.transfer_fee
        assert call.gas == contracts.TRANSFER_GAS

    def test_transfer_rejects_plaintext(self, adapter):
        with pytest.raises(ValidationError):
            adapter.transfer(Account.create().address, 5)

    def test_transfer_rejects_bad_address(self, adapter, encrypted):
        with pytest.raises(ValidationError):
            adapter.transfer("0xnotanaddress", encrypted)

    def test_swap_directions(self, adapter, encrypted):
        buy = only_call(adapter.swap(encrypted, SwapDirection.STABLE_TO_BASE))
        sell = only_call(adapter.swap(encrypted, SwapDirection.BASE_TO_STABLE))
        assert buy.signature == "swapUsdcForEth(bytes)"
        assert sell.signature == "swapEthForUsdc(bytes)"
        assert buy.address == CONTRACTS.swap
        assert buy.value == CONTRACTS.swap_fee

    def test_add_liquidity(self, adapter, encrypted):
        call = only_call(adapter.add_liquidity(encrypted, encrypted))
        assert call.signature == "addLiquidity(bytes,bytes)"
        assert call.value == CONTRACTS.liquidity_fee

    def test_calldata_encodes_ciphertext(self, adapter, encrypted):
        call = only_call(adapter.transfer(Account.create().address, encrypted))
        _, payload = decode(["address", "bytes"], call.calldata[4:])
        assert payload == encrypted.ciphertext


class TestReadsAndExecute:
    """Test view calls and submission."""

    def test_balance_of_defaults_to_caller(self, adapter, wallet):
        call = adapter.balance_of(TokenKind.STABLE)
        assert call.args == (wallet,)
        assert call.selector.hex() == "70a08231"

    @pytest.mark.asyncio
    async def test_balance_handles(self, adapter, client):
        handle = b"\x01" * 32
        client.handles[CONTRACTS.confidential_usdc.lower()] = handle

        handles = await adapter.balance_handles([TokenKind.NATIVE, TokenKind.STABLE])

        assert handles == [bytes(32), handle]

    @pytest.mark.asyncio
    async def test_eth_usd_price(self, adapter, client):
        client.eth_usd_price = 3100 * 10**8
        assert await adapter.eth_usd_price() == 3100 * 10**8

    @pytest.mark.asyncio
    async def test_execute(self, adapter, client):
        transaction = adapter.wrap_native(1)

        receipt = await adapter.execute(transaction)

        assert receipt.chain == ChainKind.EVM
        assert receipt.transaction_id.startswith("0x")
        assert client.sent == transaction.steps

    @pytest.mark.asyncio
    async def test_execute_without_client(self, session):
        adapter = EvmAdapter(session, None, CONTRACTS, signer=Mock())
        with pytest.raises(NotConnected):
            await adapter.execute(adapter.wrap_native(1))

    @pytest.mark.asyncio
    async def test_execute_without_signer(self, session, client):
        adapter = EvmAdapter(session, client, CONTRACTS)
        with pytest.raises(NotConnected):
            await adapter.execute(adapter.wrap_native(1))

    @pytest.mark.asyncio
    async def test_execute_failure(self, adapter, client):
        client.fail_with = SubmissionFailed("reverted", chain="base-sepolia")
        with pytest.raises(SubmissionFailed):
            await adapter.execute(adapter.wrap_native(1))

    def test_evm_transaction_single_call(self, adapter):
        call = ContractCall(CONTRACTS.confidential_eth, contracts.WRAP_NATIVE)
        with pytest.raises(ValidationError):
            LedgerTransaction(chain=ChainKind.EVM, steps=[call, call])
