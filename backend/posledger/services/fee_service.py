"""
MDR (Merchant Discount Rate) fee calculator.

Pure function of (payment channel, amount). The merchant-facing rate is the
sum of the payment gateway's fee and the platform's margin:

    channel                  gateway          platform   published
    credit_card              2.9% + 2000      0.5%       3.4% + 2000
    qris                     0.7%             0.5%       1.2%
    ewallet family           2.0%             0.5%       2.5%
    bank transfer / VA       4000 flat        1000 flat  5000 flat
    cash, unknown            0                0          0

No side effects, never raises for an unknown channel.
"""

from __future__ import annotations

from decimal import Decimal
from typing import NamedTuple

from ..money import ZERO, to_money

CHANNEL_CASH = "cash"
CHANNEL_QRIS = "qris"
CHANNEL_CREDIT_CARD = "credit_card"
CHANNEL_EWALLET = "ewallet"
CHANNEL_BANK_TRANSFER = "bank_transfer"

EWALLET_CHANNELS = frozenset({CHANNEL_EWALLET, "gopay", "shopeepay", "dana", "ovo", "linkaja"})
BANK_TRANSFER_CHANNELS = frozenset({
    CHANNEL_BANK_TRANSFER,
    "virtual_account",
    "bca_va",
    "bni_va",
    "bri_va",
    "mandiri_va",
})

PLATFORM_RATE = Decimal("0.005")


class FeeBreakdown(NamedTuple):
    gateway_fee: Decimal
    platform_fee: Decimal
    rate_percent: Decimal
    rate_flat: Decimal

    @property
    def total_fee(self) -> Decimal:
        """Combined fee deducted from the merchant's proceeds."""
        return self.gateway_fee + self.platform_fee


NO_FEE = FeeBreakdown(ZERO, ZERO, ZERO, ZERO)


def normalize_channel(channel: str | None) -> str:
    return (channel or "").strip().lower()


def compute_fee(channel: str | None, amount) -> FeeBreakdown:
    """Split the MDR for a payment channel into gateway and platform fees."""
    method = normalize_channel(channel)
    amount = to_money(amount)

    if method == CHANNEL_CREDIT_CARD:
        return FeeBreakdown(
            gateway_fee=to_money(amount * Decimal("0.029") + Decimal("2000")),
            platform_fee=to_money(amount * PLATFORM_RATE),
            rate_percent=Decimal("3.4"),
            rate_flat=to_money(2000),
        )
    if method == CHANNEL_QRIS:
        return FeeBreakdown(
            gateway_fee=to_money(amount * Decimal("0.007")),
            platform_fee=to_money(amount * PLATFORM_RATE),
            rate_percent=Decimal("1.2"),
            rate_flat=ZERO,
        )
    if method in EWALLET_CHANNELS:
        return FeeBreakdown(
            gateway_fee=to_money(amount * Decimal("0.020")),
            platform_fee=to_money(amount * PLATFORM_RATE),
            rate_percent=Decimal("2.5"),
            rate_flat=ZERO,
        )
    if method in BANK_TRANSFER_CHANNELS:
        return FeeBreakdown(
            gateway_fee=to_money(4000),
            platform_fee=to_money(1000),
            rate_percent=ZERO,
            rate_flat=to_money(5000),
        )

    # cash, whatsapp orders, anything unrecognized: no MDR
    return NO_FEE
