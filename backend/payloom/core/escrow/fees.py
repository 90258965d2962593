"""
Fee calculator

Two independent schedules exist and must not be merged:
- seller payout on a completed sale (SELLER_PAYOUT_FEE_PERCENT, 5% by default)
- wallet withdrawal (WITHDRAWAL_FEE_PERCENT, 2% by default, plus the payout
  provider's fee and per-currency clamps)
"""

import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple
import enum

from payloom.core.escrow.errors import AmountTooLowError, ValidationError

TWO_DP = Decimal("0.01")
_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")
_ZERO = Decimal("0.00")


class MethodFeeType(str, enum.Enum):
    """How a payment method charges"""
    FLAT = "FLAT"
    PERCENT = "PERCENT"


@dataclass(frozen=True)
class FeeSchedule:
    """Fees applied to one money movement"""
    platform_percent: Decimal  # e.g. Decimal("0.02") for 2%
    method_fee_type: MethodFeeType = MethodFeeType.FLAT
    method_fee_value: Decimal = _ZERO  # absolute amount for FLAT, fraction for PERCENT
    min_platform_fee: Optional[Decimal] = None
    max_platform_fee: Optional[Decimal] = None


@dataclass(frozen=True)
class FeeBreakdown:
    platform_fee: Decimal
    method_fee: Decimal
    total_fees: Decimal
    net_amount: Decimal


def quantize(value: Decimal) -> Decimal:
    """Round a money value to 2 dp, half up"""
    return value.quantize(TWO_DP, rounding=ROUND_HALF_UP)


def normalize_currency(currency: str) -> str:
    """Upper-case ISO 4217 style code; anything else is a ValidationError"""
    code = str(currency or "").strip().upper()
    if not _CURRENCY_CODE.match(code):
        raise ValidationError(f"Invalid currency code: {currency!r}")
    return code


def _require_positive(amount: Decimal) -> Decimal:
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    return amount


def compute_fees(amount: Decimal, schedule: FeeSchedule) -> FeeBreakdown:
    """
    Compute platform and method fees for ``amount``.

    - platform_fee = round(amount * platform_percent), clamped to the
      schedule's min/max when those are set
    - method_fee = flat value, or round(amount * value) for PERCENT
    - net_amount = amount - total_fees

    Raises:
        ValidationError: amount is not a positive number
        AmountTooLowError: total_fees >= amount (nothing would be left)
    """
    amount = _require_positive(amount)

    platform_fee = quantize(amount * schedule.platform_percent)
    if schedule.min_platform_fee is not None and platform_fee < schedule.min_platform_fee:
        platform_fee = quantize(schedule.min_platform_fee)
    if schedule.max_platform_fee is not None and platform_fee > schedule.max_platform_fee:
        platform_fee = quantize(schedule.max_platform_fee)

    if schedule.method_fee_type == MethodFeeType.PERCENT:
        method_fee = quantize(amount * schedule.method_fee_value)
    else:
        method_fee = quantize(schedule.method_fee_value)

    total_fees = platform_fee + method_fee
    if total_fees >= amount:
        raise AmountTooLowError(f"Amount too low. Minimum fees are {total_fees}")

    return FeeBreakdown(
        platform_fee=platform_fee,
        method_fee=method_fee,
        total_fees=total_fees,
        net_amount=max(_ZERO, amount - total_fees),
    )


def compute_seller_payout(amount: Decimal, platform_percent: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split a completed sale into (platform_fee, seller_payout).

    seller_payout is derived by subtraction so the two always add up to amount.
    """
    amount = quantize(_require_positive(amount))
    platform_fee = quantize(amount * platform_percent)
    return platform_fee, amount - platform_fee
