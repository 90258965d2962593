"""
Fee calculator tests
"""

import pytest
from decimal import Decimal

from payloom.core.escrow.errors import AmountTooLowError, InsufficientFundsError, ValidationError
from payloom.core.escrow.fees import (
    FeeSchedule,
    MethodFeeType,
    compute_fees,
    compute_seller_payout,
    normalize_currency,
    quantize,
)
from payloom.services.wallet_service import build_withdrawal_schedule


def test_platform_and_flat_method_fee():
    schedule = FeeSchedule(platform_percent=Decimal("0.02"), method_fee_value=Decimal("50"))

    breakdown = compute_fees(Decimal("1000"), schedule)

    assert breakdown.platform_fee == Decimal("20.00")
    assert breakdown.method_fee == Decimal("50.00")
    assert breakdown.total_fees == Decimal("70.00")
    assert breakdown.net_amount == Decimal("930.00")


def test_percent_method_fee():
    schedule = FeeSchedule(
        platform_percent=Decimal("0.02"),
        method_fee_type=MethodFeeType.PERCENT,
        method_fee_value=Decimal("0.015"),
    )

    breakdown = compute_fees(Decimal("2000"), schedule)

    assert breakdown.platform_fee == Decimal("40.00")
    assert breakdown.method_fee == Decimal("30.00")
    assert breakdown.net_amount == Decimal("1930.00")


def test_fees_swallowing_amount_are_rejected():
    """10 at 2% + 50 flat: total fees exceed the amount"""
    schedule = FeeSchedule(platform_percent=Decimal("0.02"), method_fee_value=Decimal("50"))

    with pytest.raises(AmountTooLowError):
        compute_fees(Decimal("10"), schedule)


def test_fees_equal_to_amount_are_rejected():
    schedule = FeeSchedule(platform_percent=Decimal("0"), method_fee_value=Decimal("50"))

    with pytest.raises(InsufficientFundsError):
        compute_fees(Decimal("50"), schedule)


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("NaN")])
def test_non_positive_amount_is_invalid(amount):
    schedule = FeeSchedule(platform_percent=Decimal("0.02"))

    with pytest.raises(ValidationError):
        compute_fees(amount, schedule)


def test_platform_fee_clamped_to_min_and_max():
    schedule = FeeSchedule(
        platform_percent=Decimal("0.02"),
        min_platform_fee=Decimal("10"),
        max_platform_fee=Decimal("500"),
    )

    assert compute_fees(Decimal("100"), schedule).platform_fee == Decimal("10.00")
    assert compute_fees(Decimal("100000"), schedule).platform_fee == Decimal("500.00")


def test_rounding_is_half_up():
    assert quantize(Decimal("0.125")) == Decimal("0.13")
    assert quantize(Decimal("0.124")) == Decimal("0.12")


def test_seller_payout_adds_up_to_amount():
    platform_fee, payout = compute_seller_payout(Decimal("999.99"), Decimal("0.05"))

    assert platform_fee == Decimal("50.00")
    assert payout == Decimal("949.99")
    assert platform_fee + payout == Decimal("999.99")


def test_seller_payout_five_percent():
    assert compute_seller_payout(Decimal("1000"), Decimal("0.05")) == (Decimal("50.00"), Decimal("950.00"))


def test_withdrawal_schedule_uses_provider_and_currency_limits():
    schedule = build_withdrawal_schedule("KES", "mpesa")

    assert schedule.platform_percent == Decimal("0.02")
    assert schedule.method_fee_type == MethodFeeType.FLAT
    assert schedule.method_fee_value == Decimal("27")
    assert schedule.min_platform_fee == Decimal("10")
    assert schedule.max_platform_fee == Decimal("500")


def test_withdrawal_schedule_rejects_unknown_provider():
    with pytest.raises(ValidationError):
        build_withdrawal_schedule("KES", "PIGEON")


def test_currency_codes_are_normalized():
    assert normalize_currency(" kes ") == "KES"


@pytest.mark.parametrize("currency", ["KESX", "KE", "K3S", "", None])
def test_malformed_currency_is_invalid(currency):
    with pytest.raises(ValidationError):
        normalize_currency(currency)
