"""
Receipt Pricing and Money Tests
"""

from decimal import Decimal

import pytest


class TestMoney:

    def test_round_half_up(self):
        from core.money import round_money
        assert round_money(Decimal("192.181")) == Decimal("192.18")
        assert round_money(Decimal("0.125")) == Decimal("0.13")
        assert round_money(Decimal("-0.125")) == Decimal("-0.13")

    def test_amounts_match_uses_tolerance(self):
        from core.money import amounts_match
        assert amounts_match(Decimal("382.18"), Decimal("382.17"))
        assert not amounts_match(Decimal("382.18"), Decimal("382.16"))
        assert not amounts_match(None, Decimal("1"))

    def test_format_money(self):
        from core.money import format_money
        assert format_money(Decimal("1234.5")) == "$1,234.50"
        assert format_money(Decimal("-12")) == "-$12.00"
        assert format_money(None) == "-"


class TestFinalWeight:

    def test_tare_and_dock(self):
        from pricing.rates import compute_final_weight
        # net 950, dock 2% = 19
        assert compute_final_weight("1000", "50", "2") == Decimal("931")

    def test_no_dock(self):
        from pricing.rates import compute_final_weight
        assert compute_final_weight(Decimal("184.71"), Decimal("10"), None) == Decimal("174.71")

    def test_tare_above_gross_rejected(self):
        from core.errors import InvalidRequestError
        from pricing.rates import compute_final_weight

        with pytest.raises(InvalidRequestError):
            compute_final_weight("10", "20", "0")

    def test_dock_out_of_range_rejected(self):
        from core.errors import InvalidRequestError
        from pricing.rates import compute_final_weight

        with pytest.raises(InvalidRequestError):
            compute_final_weight("100", "0", "101")


class TestPriceReceipt:

    def test_prices_from_final_rate(self, make_price_table):
        from pricing.rates import price_receipt

        priced = price_receipt(make_price_table(), 1, 1, "184.71", "10")

        assert priced.rate == Decimal("1.10")
        assert priced.final_weight == Decimal("174.71")
        assert priced.amount == Decimal("192.18")

    def test_prices_from_advance_rate(self, make_price_table):
        from models.records import RateType
        from pricing.rates import price_receipt

        priced = price_receipt(make_price_table(), 2, 2, "420", "20", rate_type=RateType.A2)

        assert priced.rate == Decimal("0.60")
        assert priced.amount == Decimal("240.00")

    def test_dock_weight_reported(self, make_price_table):
        from pricing.rates import price_receipt

        priced = price_receipt(make_price_table(), 1, 1, "1000", "50", "2")

        assert priced.net_weight == Decimal("950")
        assert priced.dock_weight == Decimal("19")
        assert priced.amount == Decimal("1024.10")

    def test_invalid_table_refused(self, make_price_table):
        from core.errors import PriceTableRejectedError
        from pricing.rates import price_receipt

        table = make_price_table({(1, 1): ("1.00", "1.10", "1.05", "1.10")})

        with pytest.raises(PriceTableRejectedError) as exc_info:
            price_receipt(table, 2, 2, "100")
        assert exc_info.value.validation.flagged == {"T1G1": ["A3"]}

    def test_lookup_rate(self, make_price_table):
        from models.records import RateType
        from pricing.rates import lookup_rate

        assert lookup_rate(make_price_table(), 3, 2, RateType.A3) == Decimal("0.65")
