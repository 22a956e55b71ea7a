"""
Base ledger adapter.

Both ledger variants expose the same two seams: operations that build a
:class:`LedgerTransaction` from validated inputs, and :meth:`execute`, which
submits it and waits for confirmation. The operation engine selects one
adapter per operation and never branches on chain type beyond that.
"""

from abc import ABC, abstractmethod

from ...errors import ValidationError
from ...logging import get_logger
from ..bridge_types import (
    ChainKind,
    LedgerTransaction,
    SessionState,
    TransactionReceipt,
)

logger = get_logger(__name__)


class LedgerAdapter(ABC):
    """Builds and submits transactions for one ledger."""

    chain: ChainKind

    def __init__(self, session: SessionState):
        self.session = session

    def require_identity(self) -> str:
        """Connected identity for this adapter's chain, or ``NotConnected``."""
        return self.session.identity(self.chain)

    def new_transaction(self, steps: list, action: str) -> LedgerTransaction:
        transaction = LedgerTransaction(chain=self.chain, steps=steps, action=action)
        logger.debug(f"Built {action} transaction with {len(steps)} step(s) on {self.chain.value}")
        return transaction

    def check_chain(self, transaction: LedgerTransaction) -> None:
        if transaction.chain != self.chain:
            raise ValidationError(
                f"Transaction for {transaction.chain.value} submitted to {self.chain.value}",
                field="chain",
                value=transaction.chain.value,
                expected=self.chain.value,
            )

    @abstractmethod
    async def execute(self, transaction: LedgerTransaction) -> TransactionReceipt:
        """Sign, submit and confirm ``transaction``."""
