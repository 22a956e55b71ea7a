"""In-memory collaborators for CipherBridge tests.

This module provides fakes for everything the engine talks to over the
network: the confidentiality gateway, both ledger clients and the bridge
relay. They record what they were asked to do and answer from local state.
"""

import itertools
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ..bridge.bridge_manager import BridgeRelay
from ..bridge.bridge_types import (
    BridgeOperation,
    BridgeQuote,
    EncryptedAmount,
    EncryptionContext,
    RelayStatus,
)
from ..bridge.chains.ethereum.contracts import ContractCall
from ..bridge.chains.solana.client import SolanaAccount
from ..bridge.codec import HANDLE_WIDTH, decode_uint, encode_uint, handle_bytes
from ..bridge.gateway import ConfidentialityGateway, check_plaintext
from ..errors import DecryptionDenied, EncryptionUnavailable
from ..logging import get_logger

logger = get_logger(__name__)

# Development-only mask. Not encryption.
XOR_MASK = 0xDEADBEEFCAFEBABE1234567890ABCDEF


def mask_encrypt(plaintext: int) -> bytes:
    """16-byte LE ciphertext of ``plaintext`` under the development mask."""
    return encode_uint(plaintext ^ XOR_MASK, HANDLE_WIDTH)


def mask_decrypt(ciphertext: bytes) -> int:
    return decode_uint(handle_bytes(ciphertext), HANDLE_WIDTH) ^ XOR_MASK


class FakeGateway(ConfidentialityGateway):
    """XOR-mask gateway for tests and local development."""

    def __init__(self, authorized: Optional[Set[str]] = None):
        self.authorized = authorized
        self.encrypt_calls: List[EncryptionContext] = []
        self.decrypt_calls: List[List[EncryptedAmount]] = []
        self.unavailable = False

    async def encrypt(
        self, plaintext: int, context: EncryptionContext, decimals: int = 0
    ) -> EncryptedAmount:
        check_plaintext(plaintext)
        self.encrypt_calls.append(context)
        if self.unavailable:
            raise EncryptionUnavailable("Gateway offline", endpoint="fake")
        return EncryptedAmount(
            ciphertext=mask_encrypt(plaintext),
            decimals=decimals,
            owner=context.owner,
            program=context.program,
            value_kind=context.value_kind,
        )

    async def decrypt(
        self, handles: Sequence[EncryptedAmount], authorization: str
    ) -> List[int]:
        self.decrypt_calls.append(list(handles))
        if self.authorized is not None and authorization not in self.authorized:
            raise DecryptionDenied("Signature not authorized", endpoint="fake")
        return [mask_decrypt(handle.ciphertext) for handle in handles]


class FakeSolanaClient:
    """Account map plus a log of submitted instruction lists."""

    def __init__(self):
        self.accounts: Dict[str, SolanaAccount] = {}
        self.token_amounts: Dict[str, int] = {}
        self.sent: List[List[Instruction]] = []
        self.fail_with: Optional[Exception] = None
        self._signatures = itertools.count(1)

    def add_account(
        self, address: Union[str, Pubkey], lamports: int = 1_000_000, owner: str = ""
    ) -> SolanaAccount:
        account = SolanaAccount(address=str(address), lamports=lamports, owner=owner)
        self.accounts[str(address)] = account
        return account

    async def get_account_info(self, address: Union[str, Pubkey]) -> Optional[SolanaAccount]:
        return self.accounts.get(str(address))

    async def account_exists(self, address: Union[str, Pubkey]) -> bool:
        return str(address) in self.accounts

    async def get_balance(self, address: Union[str, Pubkey]) -> int:
        account = self.accounts.get(str(address))
        return account.lamports if account is not None else 0

    async def get_token_amount(self, token_account: Union[str, Pubkey]) -> int:
        return self.token_amounts.get(str(token_account), 0)

    async def sign_and_send(self, instructions: Sequence[Instruction], signer: Any) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(list(instructions))
        signature = f"sig{next(self._signatures)}"
        logger.debug(f"Fake submission {signature}: {len(instructions)} instruction(s)")
        return signature


class FakeEvmClient:
    """Records contract calls and answers view calls from local maps."""

    def __init__(self, eth_usd_price: int = 2000 * 10**8):
        self.sent: List[ContractCall] = []
        self.handles: Dict[str, bytes] = {}
        self.balances: Dict[str, int] = {}
        self.eth_usd_price = eth_usd_price
        self.fail_with: Optional[Exception] = None
        self._hashes = itertools.count(1)

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    async def send_call(self, call: ContractCall, signer: Any) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(call)
        return "0x" + format(next(self._hashes), "064x")

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        return {"transactionHash": tx_hash, "status": 1}

    async def call(
        self, call: ContractCall, output_types: Sequence[str], sender: Optional[str] = None
    ) -> List[Any]:
        if call.function_name == "balanceOf":
            return [self.handles.get(call.address.lower(), bytes(32))]
        if call.function_name == "getEthUsdPrice":
            return [self.eth_usd_price]
        raise NotImplementedError(f"No fake answer for {call.signature}")


class FakeRelay(BridgeRelay):
    """Relay that completes, fails or drops transfers on request."""

    def __init__(
        self,
        source_tx: Optional[str] = "0xsource",
        destination_tx: Optional[str] = "0xdestination",
        completed: bool = True,
        error: Optional[str] = None,
        submit_error: Optional[Exception] = None,
    ):
        self.source_tx = source_tx
        self.destination_tx = destination_tx
        self.completed = completed
        self.error = error
        self.submit_error = submit_error
        self.submitted: List[Dict[str, Any]] = []

    async def submit(
        self,
        operation: BridgeOperation,
        quote: BridgeQuote,
        encrypted: Optional[EncryptedAmount] = None,
    ) -> Optional[str]:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(
            {"operation": operation, "quote": quote, "encrypted": encrypted}
        )
        return self.source_tx

    async def track(self, source_tx: str) -> RelayStatus:
        return RelayStatus(
            completed=self.completed,
            source_tx=source_tx,
            destination_tx=self.destination_tx if self.completed else None,
            confirmations=12 if self.completed else 0,
            error=self.error,
        )
