"""
Quote engine for CipherBridge.

Pure, deterministic pricing helpers:
- Swap previews between the stable and base assets
- Oracle price scaling
- Bridge fee and time estimates
- Integer destination amounts for the SVM mint leg

Nothing here performs I/O. Invalid swap input yields no quote instead of
raising.
"""

import math
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Optional, Union

from ..errors import ValidationError
from ..logging import get_logger
from .bridge_types import (
    AmountLike,
    BridgeQuote,
    ChainKind,
    SwapDirection,
    TokenSymbol,
    parse_amount,
)

logger = get_logger(__name__)

DEFAULT_FEE_MULTIPLIER = 0.997
PRICE_FEED_DECIMALS = 8
BRIDGE_ESTIMATED_TIME = "~30 seconds"
EVM_BRIDGE_FEE = "0.001 ETH"
SVM_BRIDGE_FEE = "0.005 SOL"

BASE_DECIMALS = 9
STABLE_DECIMALS = 6


def _to_float(value: AmountLike) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, InvalidOperation):
        return None
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return None
    return number


def _direction(direction: Union[SwapDirection, str]) -> SwapDirection:
    if isinstance(direction, SwapDirection):
        return direction
    try:
        return SwapDirection(direction)
    except ValueError as e:
        raise ValidationError(
            f"Unknown swap direction: {direction!r}",
            field="direction",
            value=direction,
            expected=[d.value for d in SwapDirection],
        ) from e


def quote_swap(
    amount_in: AmountLike,
    price: AmountLike,
    direction: Union[SwapDirection, str] = SwapDirection.STABLE_TO_BASE,
    fee_multiplier: float = DEFAULT_FEE_MULTIPLIER,
) -> Optional[float]:
    """Expected output of a swap at ``price`` (stable units per base unit).

    Returns:
        The output amount, or ``None`` when either input is NaN, infinite,
        non-positive or unparseable.
    """
    direction = _direction(direction)
    amount = _to_float(amount_in)
    rate = _to_float(price)
    if amount is None or rate is None:
        return None

    if direction == SwapDirection.STABLE_TO_BASE:
        return (amount / rate) * fee_multiplier
    return (amount * rate) * fee_multiplier


def format_swap_quote(
    amount_out: Optional[float], direction: Union[SwapDirection, str]
) -> Optional[str]:
    """Preview string: 8 places of cETH or 2 places of cUSDC."""
    if amount_out is None:
        return None
    if _direction(direction) == SwapDirection.STABLE_TO_BASE:
        return f"{amount_out:.8f} cETH"
    return f"{amount_out:.2f} cUSDC"


def chainlink_price(raw: int, decimals: int = PRICE_FEED_DECIMALS) -> float:
    """Scale a raw oracle answer to a float price."""
    return raw / 10**decimals


def quote_bridge(
    source: ChainKind,
    destination: ChainKind,
    token: Union[TokenSymbol, str],
    amount: AmountLike,
    private: bool,
) -> BridgeQuote:
    """Fee and time estimate for moving ``amount`` of ``token``."""
    if source == destination:
        raise ValidationError(
            "Source and destination chains must differ",
            field="destination",
            value=destination.value,
        )
    token = token if isinstance(token, TokenSymbol) else TokenSymbol(token)
    parse_amount(amount)

    fee = EVM_BRIDGE_FEE if source == ChainKind.EVM else SVM_BRIDGE_FEE
    quote = BridgeQuote(
        source_chain=source,
        destination_chain=destination,
        token=token,
        amount=str(amount),
        estimated_fee=fee,
        estimated_time=BRIDGE_ESTIMATED_TIME,
        private=private,
    )
    logger.debug(
        f"Bridge quote {source.value} -> {destination.value}: {amount} {token.value}, "
        f"fee {fee}"
    )
    return quote


def swap_leg_amount(
    amount: AmountLike,
    price: AmountLike,
    direction: Union[SwapDirection, str],
) -> int:
    """Destination base units minted by the SVM swap leg.

    Stable to base mints ``floor(amount / price * 10^9)`` lamports; base to
    stable mints ``floor(amount * price * 10^6)`` micro-units.
    """
    direction = _direction(direction)
    value = parse_amount(amount)
    rate = parse_amount(price, "price")

    if direction == SwapDirection.STABLE_TO_BASE:
        out = value / rate * (Decimal(10) ** BASE_DECIMALS)
    else:
        out = value * rate * (Decimal(10) ** STABLE_DECIMALS)
    return int(out.to_integral_value(rounding=ROUND_DOWN))
