"""
Tests for the confidential operation engine and balance poller.

This module tests:
- SVM operations and their shadow balance updates
- Shadow updates only after confirmation
- In-flight exclusion per action family
- EVM operations, quotes and balance decryption
- Periodic public balance refresh
"""

import asyncio
from decimal import Decimal
from unittest.mock import Mock

import pytest
from eth_account import Account
from solders.keypair import Keypair

from cipherbridge.bridge.bridge_types import (
    ActionFamily,
    ChainKind,
    SessionState,
    SwapDirection,
    TokenKind,
)
from cipherbridge.bridge.chains.ethereum.adapter import EvmAdapter
from cipherbridge.bridge.chains.ethereum.contracts import MAX_APPROVAL, EvmContractsConfig
from cipherbridge.bridge.chains.solana.adapter import SolanaAdapter, SolanaProgramConfig
from cipherbridge.bridge.chains.solana.client import SolanaClient, SolanaConfig
from cipherbridge.bridge.chains.solana.pda import (
    associated_token_address,
    sol_vault_address,
    to_pubkey,
    user_balance_address,
)
from cipherbridge.bridge.operations import BalancePoller, ConfidentialOperations
from cipherbridge.errors import (
    DecryptionDenied,
    InsufficientShadowBalance,
    NotConnected,
    OperationInProgress,
    SubmissionFailed,
    ValidationError,
)
from cipherbridge.testing import (
    FakeEvmClient,
    FakeGateway,
    FakeSolanaClient,
    mask_decrypt,
    mask_encrypt,
)

PROGRAMS = SolanaProgramConfig()
CONTRACTS = EvmContractsConfig()


@pytest.fixture
def user():
    return Keypair().pubkey()


@pytest.fixture
def wallet():
    return Account.create().address


@pytest.fixture
def session(user, wallet):
    state = SessionState()
    state.connect(ChainKind.SVM, str(user))
    state.connect(ChainKind.EVM, wallet)
    return state


@pytest.fixture
def solana_client():
    return FakeSolanaClient()


@pytest.fixture
def evm_client():
    return FakeEvmClient()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def ops(session, gateway, solana_client, evm_client):
    svm = SolanaAdapter(session, solana_client, PROGRAMS, signer=Mock())
    evm = EvmAdapter(session, evm_client, CONTRACTS, signer=Mock())
    return ConfidentialOperations(session, gateway, svm=svm, evm=evm)


def balance_account(owner, kind=TokenKind.NATIVE):
    return user_balance_address(PROGRAMS.program, owner, PROGRAMS.mint_for(kind)).address


class TestSvmWrapUnwrap:
    """Test wrap and unwrap with shadow updates."""

    @pytest.mark.asyncio
    async def test_wrap_credits_shadow(self, ops, user, gateway, solana_client):
        receipt = await ops.wrap("1.5")

        assert receipt.transaction_id == "sig1"
        assert ops.shadow.get(str(user), "cSOL") == "1.5000 cSOL"
        assert gateway.encrypt_calls[0].program == PROGRAMS.program_id
        assert len(solana_client.sent) == 1

    @pytest.mark.asyncio
    async def test_wrap_encrypts_base_units(self, ops, solana_client):
        await ops.wrap("0.25")
        wrap_data = bytes(solana_client.sent[0][-1].data)
        assert mask_decrypt(wrap_data[16:]) == 250_000_000

    @pytest.mark.asyncio
    async def test_failed_submission_leaves_shadow(self, ops, user, solana_client):
        solana_client.fail_with = SubmissionFailed("simulation failed")

        with pytest.raises(SubmissionFailed):
            await ops.wrap(2)

        assert ops.shadow.get(str(user), "cSOL") == "0"
        assert not ops.session.is_in_flight(ActionFamily.WRAP)

    @pytest.mark.asyncio
    async def test_unreachable_node(self, session, gateway, user):
        """Test a refused RPC connection surfaces as SubmissionFailed."""
        async with SolanaClient(SolanaConfig(rpc_url="http://127.0.0.1:9", timeout=5)) as client:
            svm = SolanaAdapter(session, client, PROGRAMS, signer=Mock())
            ops = ConfidentialOperations(session, gateway, svm=svm)
            with pytest.raises(SubmissionFailed):
                await ops.wrap(1)

        assert ops.shadow.get(str(user), "cSOL") == "0"
        assert not session.is_in_flight(ActionFamily.WRAP)

    @pytest.mark.asyncio
    async def test_unwrap_debits_shadow(self, ops, user, solana_client):
        await ops.wrap(2)
        solana_client.add_account(balance_account(user))
        solana_client.add_account(sol_vault_address(PROGRAMS.program).address, lamports=5 * 10**9)

        await ops.unwrap("0.5")

        assert ops.shadow.get(str(user), "cSOL") == "1.5000 cSOL"

    @pytest.mark.asyncio
    async def test_unwrap_has_no_shadow_precheck(self, ops, user, solana_client):
        """Test that the ledger, not the cache, decides whether unwrap succeeds."""
        solana_client.add_account(balance_account(user))
        solana_client.add_account(sol_vault_address(PROGRAMS.program).address, lamports=10**10)

        await ops.unwrap(1)

        assert ops.shadow.get(str(user), "cSOL") == "0"

    @pytest.mark.asyncio
    async def test_wrap_rejected_while_in_flight(self, ops, session, gateway):
        session.in_flight_actions.add(ActionFamily.WRAP)
        with pytest.raises(OperationInProgress):
            await ops.wrap(1)
        assert gateway.encrypt_calls == []

    @pytest.mark.asyncio
    async def test_other_families_not_blocked(self, ops, session, user):
        session.in_flight_actions.add(ActionFamily.SWAP)
        await ops.wrap(1)
        assert ops.shadow.get(str(user), "cSOL") == "1.0000 cSOL"

    @pytest.mark.asyncio
    async def test_without_adapter(self, session, gateway):
        with pytest.raises(NotConnected):
            await ConfidentialOperations(session, gateway).wrap(1)


class TestSvmTransfer:
    """Test confidential transfers."""

    @pytest.mark.asyncio
    async def test_transfer_moves_shadow(self, ops, user, solana_client):
        recipient = Keypair().pubkey()
        await ops.wrap(3)
        solana_client.add_account(balance_account(user))
        solana_client.add_account(balance_account(recipient))

        await ops.transfer(str(recipient), 1)

        assert ops.shadow.get(str(user), "cSOL") == "2.0000 cSOL"
        assert ops.shadow.get(str(recipient), "cSOL") == "1.0000 cSOL"

    @pytest.mark.asyncio
    async def test_insufficient_shadow_balance(self, ops, gateway, solana_client):
        with pytest.raises(InsufficientShadowBalance):
            await ops.transfer(str(Keypair().pubkey()), 1)
        assert gateway.encrypt_calls == []
        assert solana_client.sent == []

    @pytest.mark.asyncio
    async def test_sub_precision_transfer_rejected_before_submission(
        self, ops, gateway, solana_client
    ):
        await ops.wrap(3)
        sent = len(solana_client.sent)
        encrypted = len(gateway.encrypt_calls)

        with pytest.raises(ValidationError):
            await ops.transfer(str(Keypair().pubkey()), "0.00001")

        assert len(gateway.encrypt_calls) == encrypted
        assert len(solana_client.sent) == sent


class TestSvmFaucetAndSwap:
    """Test the faucet and the burn-and-mint swap."""

    @pytest.mark.asyncio
    async def test_faucet_sets_shadow(self, ops, user, solana_client):
        ops.shadow.apply(str(user), "cUSDC", 5)

        await ops.faucet()

        assert ops.shadow.get(str(user), "cUSDC") == "100.00 cUSDC"
        faucet_data = bytes(solana_client.sent[0][0].data)
        assert mask_decrypt(faucet_data[8:]) == 100 * 10**6

    @pytest.mark.asyncio
    async def test_swap_stable_to_base(self, ops, user, gateway, solana_client):
        await ops.faucet()

        await ops.swap(30, SwapDirection.STABLE_TO_BASE)

        assert ops.shadow.get(str(user), "cUSDC") == "70.00 cUSDC"
        assert ops.shadow.get(str(user), "cSOL") == "0.1500 cSOL"
        burn_context, mint_context = gateway.encrypt_calls[-2:]
        assert burn_context.program == mint_context.program == PROGRAMS.program_id
        assert len(solana_client.sent[-1]) == 2

    @pytest.mark.asyncio
    async def test_swap_base_to_stable(self, ops, user):
        ops.shadow.apply(str(user), "cSOL", 1)

        await ops.swap("0.5", SwapDirection.BASE_TO_STABLE)

        assert ops.shadow.get(str(user), "cSOL") == "0.5000 cSOL"
        assert ops.shadow.get(str(user), "cUSDC") == "100.00 cUSDC"

    @pytest.mark.asyncio
    async def test_swap_needs_balance(self, ops):
        with pytest.raises(InsufficientShadowBalance):
            await ops.swap(10, SwapDirection.STABLE_TO_BASE)

    @pytest.mark.asyncio
    async def test_swap_too_small(self, ops, user, solana_client):
        ops.shadow.apply(str(user), "cSOL", 1)
        with pytest.raises(ValidationError):
            await ops.swap("0.000000001", SwapDirection.BASE_TO_STABLE)
        assert solana_client.sent == []

    def test_swap_quote(self, ops):
        assert ops.svm_swap_quote(200, SwapDirection.STABLE_TO_BASE) == pytest.approx(0.997)

    @pytest.mark.asyncio
    async def test_balances(self, ops):
        await ops.faucet()
        assert ops.balances()["cUSDC"] == "100.00 cUSDC"


class TestEvmOperations:
    """Test EVM operations, which never touch the shadow ledger."""

    @pytest.mark.asyncio
    async def test_wrap_native(self, ops, evm_client, gateway):
        receipt = await ops.evm_wrap(1)
        assert receipt.chain == ChainKind.EVM
        assert evm_client.sent[0].value == 10**18
        assert gateway.encrypt_calls == []

    @pytest.mark.asyncio
    async def test_wrap_stable(self, ops, evm_client):
        await ops.evm_approve_underlying(10)
        await ops.evm_wrap(10, TokenKind.STABLE)
        assert [call.signature for call in evm_client.sent] == [
            "approve(address,uint256)",
            "wrap(uint256)",
        ]

    @pytest.mark.asyncio
    async def test_unwrap_stable(self, ops, evm_client):
        await ops.evm_unwrap("1.25", TokenKind.STABLE)
        assert evm_client.sent[0].args == (1_250_000,)

    @pytest.mark.asyncio
    async def test_approve_defaults_to_unlimited_swap_allowance(
        self, ops, evm_client, gateway, wallet
    ):
        await ops.evm_approve()

        call = evm_client.sent[0]
        assert call.address == CONTRACTS.confidential_usdc
        assert call.args[0] == CONTRACTS.swap
        assert mask_decrypt(call.args[1]) == MAX_APPROVAL
        assert gateway.encrypt_calls[0].owner == wallet
        assert gateway.encrypt_calls[0].program == CONTRACTS.confidential_usdc

    @pytest.mark.asyncio
    async def test_transfer(self, ops, evm_client, user):
        recipient = Account.create().address
        await ops.evm_transfer(recipient, 5)
        call = evm_client.sent[0]
        assert call.args[0] == recipient
        assert mask_decrypt(call.args[1]) == 5_000_000
        assert ops.shadow.get(str(user), "cUSDC") == "0"

    @pytest.mark.asyncio
    async def test_swap_encrypts_for_pool(self, ops, evm_client, gateway):
        await ops.evm_swap("0.1", SwapDirection.BASE_TO_STABLE)
        assert gateway.encrypt_calls[0].program == CONTRACTS.swap
        assert evm_client.sent[0].signature == "swapEthForUsdc(bytes)"
        assert mask_decrypt(evm_client.sent[0].args[0]) == 10**17

    @pytest.mark.asyncio
    async def test_add_liquidity(self, ops, evm_client):
        await ops.evm_add_liquidity(100, "0.05")
        stable, native = evm_client.sent[0].args
        assert mask_decrypt(stable) == 100 * 10**6
        assert mask_decrypt(native) == 5 * 10**16

    @pytest.mark.asyncio
    async def test_swap_quote_uses_oracle(self, ops, evm_client):
        evm_client.eth_usd_price = 2500 * 10**8
        quote = await ops.evm_swap_quote(1, SwapDirection.BASE_TO_STABLE)
        assert quote == pytest.approx(2500 * 0.997)


class TestDecryptBalances:
    """Test revealing confidential EVM balances."""

    @pytest.mark.asyncio
    async def test_skips_empty_handles(self, ops, evm_client, gateway):
        evm_client.handles[CONTRACTS.confidential_usdc.lower()] = mask_encrypt(5_000_000)

        revealed = await ops.decrypt_balances("sig")

        assert revealed == {"cUSDC": Decimal("5")}
        assert len(gateway.decrypt_calls[0]) == 1

    @pytest.mark.asyncio
    async def test_both_tokens(self, ops, evm_client):
        evm_client.handles[CONTRACTS.confidential_usdc.lower()] = mask_encrypt(1_500_000)
        evm_client.handles[CONTRACTS.confidential_eth.lower()] = mask_encrypt(2 * 10**17)

        revealed = await ops.decrypt_balances("sig")

        assert revealed == {"cETH": Decimal("0.2"), "cUSDC": Decimal("1.5")}

    @pytest.mark.asyncio
    async def test_nothing_funded(self, ops, gateway):
        assert await ops.decrypt_balances("sig") == {}
        assert gateway.decrypt_calls == []

    @pytest.mark.asyncio
    async def test_denied(self, session, evm_client):
        gateway = FakeGateway(authorized={"good"})
        evm = EvmAdapter(session, evm_client, CONTRACTS, signer=Mock())
        ops = ConfidentialOperations(session, gateway, evm=evm)
        evm_client.handles[CONTRACTS.confidential_usdc.lower()] = mask_encrypt(1)

        with pytest.raises(DecryptionDenied):
            await ops.decrypt_balances("bad")
        assert not session.is_in_flight(ActionFamily.DECRYPT)


class TestBalancePoller:
    """Test periodic public balance refresh."""

    def test_rejects_non_positive_interval(self, session):
        with pytest.raises(ValidationError):
            BalancePoller(session, interval=0)

    @pytest.mark.asyncio
    async def test_refresh_all(self, session, user, wallet, solana_client, evm_client):
        solana_client.add_account(user, lamports=3 * 10**9)
        token_account = associated_token_address(user, to_pubkey(PROGRAMS.spl_usdc_mint))
        solana_client.token_amounts[str(token_account)] = 42_000_000
        evm_client.balances[wallet] = 10**18

        poller = BalancePoller(session, solana_client, evm_client)
        snapshot = await poller.refresh_all()

        assert snapshot == {"SOL": 3 * 10**9, "SPL_USDC": 42_000_000, "ETH": 10**18}

    @pytest.mark.asyncio
    async def test_disconnected_wallet_skipped(self, evm_client):
        poller = BalancePoller(SessionState(), evm_client=evm_client)
        assert await poller.refresh("ETH") is None
        assert poller.snapshot == {}

    @pytest.mark.asyncio
    async def test_start_and_stop(self, session, wallet, evm_client):
        evm_client.balances[wallet] = 7
        poller = BalancePoller(session, evm_client=evm_client, interval=0.01)

        await poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert poller.snapshot["ETH"] == 7
        assert poller.tasks == []
        assert not poller.running

    @pytest.mark.asyncio
    async def test_loop_survives_fetch_errors(self, session):
        calls = []

        async def get_balance(address):
            calls.append(address)
            if len(calls) == 1:
                raise ConnectionError("rpc down")
            return 9

        client = Mock()
        client.get_balance = get_balance
        poller = BalancePoller(session, evm_client=client, interval=0.01)

        await poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert poller.snapshot["ETH"] == 9

    @pytest.mark.asyncio
    async def test_does_not_touch_in_flight_state(self, session, wallet, evm_client):
        session.in_flight_actions.add(ActionFamily.BRIDGE)
        poller = BalancePoller(session, evm_client=evm_client)
        await poller.refresh_all()
        assert session.in_flight_actions == {ActionFamily.BRIDGE}
