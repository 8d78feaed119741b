# Overview: Pytest coverage for the MDR fee calculator.

from decimal import Decimal

from posledger.services.fee_service import NO_FEE, compute_fee, normalize_channel


class TestFeeTable:
    """Published MDR rates per payment channel."""

    def test_cash_has_no_fee(self):
        fee = compute_fee("cash", Decimal("100000"))
        assert fee == NO_FEE
        assert fee.total_fee == 0

    def test_qris(self):
        fee = compute_fee("qris", Decimal("100000"))
        assert fee.gateway_fee == Decimal("700.00")
        assert fee.platform_fee == Decimal("500.00")
        assert fee.rate_percent == Decimal("1.2")
        assert fee.rate_flat == 0
        assert fee.total_fee == Decimal("1200.00")

    def test_credit_card(self):
        fee = compute_fee("credit_card", Decimal("100000"))
        assert fee.gateway_fee == Decimal("4900.00")
        assert fee.platform_fee == Decimal("500.00")
        assert fee.rate_percent == Decimal("3.4")
        assert fee.rate_flat == Decimal("2000.00")

    def test_bank_transfer_is_flat(self):
        fee = compute_fee("bank_transfer", Decimal("100000"))
        assert fee.gateway_fee == Decimal("4000.00")
        assert fee.platform_fee == Decimal("1000.00")
        assert fee.rate_percent == 0
        assert fee.rate_flat == Decimal("5000.00")

        # Flat fee does not scale with the amount
        assert compute_fee("bank_transfer", Decimal("10")).total_fee == Decimal("5000.00")

    def test_virtual_accounts_use_bank_transfer_rate(self):
        for channel in ("virtual_account", "bca_va", "bni_va", "bri_va", "mandiri_va"):
            assert compute_fee(channel, Decimal("100000")).total_fee == Decimal("5000.00"), channel

    def test_ewallet_family(self):
        for channel in ("ewallet", "gopay", "shopeepay", "dana", "ovo", "linkaja"):
            fee = compute_fee(channel, Decimal("100000"))
            assert fee.gateway_fee == Decimal("2000.00"), channel
            assert fee.platform_fee == Decimal("500.00"), channel
            assert fee.rate_percent == Decimal("2.5"), channel


class TestChannelHandling:
    def test_channel_is_case_and_whitespace_insensitive(self):
        assert normalize_channel("  QRIS ") == "qris"
        assert compute_fee(" QRIS ", Decimal("100000")) == compute_fee("qris", Decimal("100000"))

    def test_unknown_channel_is_fee_free(self):
        assert compute_fee("whatsapp", Decimal("100000")) == NO_FEE
        assert compute_fee(None, Decimal("100000")) == NO_FEE

    def test_fees_round_half_up(self):
        # 0.7% of 250 = 1.75; 0.5% of 250 = 1.25
        fee = compute_fee("qris", Decimal("250"))
        assert fee.gateway_fee == Decimal("1.75")
        assert fee.platform_fee == Decimal("1.25")

        # 0.7% of 0.50 = 0.0035 -> 0.00
        assert compute_fee("qris", Decimal("0.50")).gateway_fee == Decimal("0.00")
        # 0.5% of 1.00 = 0.005 -> 0.01
        assert compute_fee("qris", Decimal("1.00")).platform_fee == Decimal("0.01")

    def test_float_amount_accepted(self):
        assert compute_fee("qris", 100000.0).total_fee == Decimal("1200.00")
