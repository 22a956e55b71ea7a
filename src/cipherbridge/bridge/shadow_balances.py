"""
Shadow balance ledger.

On-chain confidential balances cannot be read without a gateway decryption,
so the engine keeps a local display cache per (wallet, token). Entries are
written only after a ledger confirmation and are never reconciled against
the ledger. Values are stored as display strings such as ``"1.5000 cSOL"``;
an empty balance is stored as ``"0"``.

Concurrent operations on the same entry are not serialized: the last
write wins.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Dict, Mapping, Optional, Union

from ..errors import InsufficientShadowBalance, ValidationError
from ..logging import get_logger
from ..storage import KeyValueStore
from .bridge_types import AmountLike, TokenConfig, parse_amount
from .config import default_tokens

logger = get_logger(__name__)

ZERO_DISPLAY = "0"

TokenRef = Union[str, TokenConfig]


def balance_key(wallet: str, symbol: str) -> str:
    """Storage key, namespaced by wallet."""
    return f"{symbol}_balance_{wallet}"


class ShadowBalanceLedger:
    """Per-(wallet, token) optimistic balance cache."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        precisions: Optional[Mapping[str, int]] = None,
    ):
        self.store = store or KeyValueStore()
        if precisions is None:
            precisions = {
                token.symbol: token.display_precision for token in default_tokens()
            }
        self.precisions: Dict[str, int] = dict(precisions)

    def _symbol(self, token: TokenRef) -> str:
        symbol = token.symbol if isinstance(token, TokenConfig) else token
        if symbol not in self.precisions:
            raise ValidationError(
                f"Unknown token symbol: {symbol}",
                field="token",
                value=symbol,
                expected=sorted(self.precisions),
            )
        return symbol

    def _quantize(self, symbol: str, value: Decimal) -> Decimal:
        step = Decimal(1).scaleb(-self.precisions[symbol])
        return value.quantize(step, rounding=ROUND_DOWN)

    def _format(self, symbol: str, value: Decimal) -> str:
        if value <= 0:
            return ZERO_DISPLAY
        return f"{value} {symbol}"

    @staticmethod
    def _parse(display: str) -> Decimal:
        number = display.split(" ", 1)[0]
        try:
            return Decimal(number)
        except InvalidOperation:
            logger.warning(f"Unreadable cached balance {display!r}, treating as 0")
            return Decimal(0)

    def get(self, wallet: str, token: TokenRef) -> str:
        """Display string for the entry, ``"0"`` if never seen."""
        symbol = self._symbol(token)
        return self.store.get(balance_key(wallet, symbol), ZERO_DISPLAY)

    def amount(self, wallet: str, token: TokenRef) -> Decimal:
        return self._parse(self.get(wallet, token))

    def _write(self, wallet: str, symbol: str, value: Decimal) -> Decimal:
        value = self._quantize(symbol, max(value, Decimal(0)))
        display = self._format(symbol, value)
        self.store.set(balance_key(wallet, symbol), display)
        logger.debug(f"Shadow balance {symbol} for {wallet}: {display}")
        return value if value > 0 else Decimal(0)

    def apply(self, wallet: str, token: TokenRef, delta: AmountLike) -> Decimal:
        """Add ``delta`` (may be negative), clamp at zero, floor, persist."""
        symbol = self._symbol(token)
        try:
            change = delta if isinstance(delta, Decimal) else Decimal(str(delta))
        except InvalidOperation as e:
            raise ValidationError(f"Invalid balance delta: {delta!r}", field="delta") from e
        if not change.is_finite():
            raise ValidationError(f"Invalid balance delta: {delta!r}", field="delta")
        return self._write(wallet, symbol, self.amount(wallet, symbol) + change)

    def set(self, wallet: str, token: TokenRef, value: AmountLike) -> Decimal:
        """Overwrite the entry, as the remote faucet does."""
        symbol = self._symbol(token)
        return self._write(wallet, symbol, parse_amount(value, "balance"))

    def transfer_amount(self, token: TokenRef, value: AmountLike) -> Decimal:
        """``value`` floored to display precision; rejects amounts that floor to zero."""
        symbol = self._symbol(token)
        requested = parse_amount(value)
        moved = self._quantize(symbol, requested)
        if moved <= 0:
            step = Decimal(1).scaleb(-self.precisions[symbol])
            raise ValidationError(
                f"Amount {requested} {symbol} is below display precision",
                field="amount",
                value=str(requested),
                expected=f">= {step}",
            )
        return moved

    def transfer(
        self, sender: str, recipient: str, token: TokenRef, value: AmountLike
    ) -> None:
        """Debit ``sender`` and credit ``recipient`` in one store transaction.

        The amount is floored once, so both sides move by the same value.
        """
        symbol = self._symbol(token)
        moved = self.transfer_amount(symbol, value)
        with self.store.transaction():
            self.apply(sender, symbol, -moved)
            self.apply(recipient, symbol, moved)

    def ensure_sufficient(self, wallet: str, token: TokenRef, value: AmountLike) -> None:
        """Local pre-check before paying fees for an operation."""
        symbol = self._symbol(token)
        requested = parse_amount(value)
        available = self.amount(wallet, symbol)
        if requested > available:
            raise InsufficientShadowBalance(
                f"Insufficient balance. You have {available} {symbol}",
                available=available,
                requested=requested,
            )

    def balances(self, wallet: str) -> Dict[str, str]:
        """All known entries for ``wallet``."""
        return {symbol: self.get(wallet, symbol) for symbol in sorted(self.precisions)}
