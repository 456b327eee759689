"""Tests for loyalty points."""

import pytest

from repairdesk.core.loyalty import LoyaltyLedger, points_for_order
from repairdesk.errors import InvalidInput


class TestPointsForOrder:
    @pytest.mark.parametrize("price,expected", [(1500, 150), (1999, 199), (5, 0), (0, 0)])
    def test_standard_is_tenth_rounded_down(self, price, expected):
        assert points_for_order(price) == expected

    def test_bundle_uses_fixed_points(self):
        assert points_for_order(2500, bundle_points=250) == 250
        assert points_for_order(7000, bundle_points=750) == 750


class TestLoyaltyLedger:
    def test_unknown_user_has_zero(self, ledger):
        assert ledger.balance(42) == 0

    def test_credit_accumulates(self, ledger):
        assert ledger.credit(42, 150, "order") == 150
        assert ledger.credit(42, 250) == 400
        assert ledger.balance(42) == 400

    def test_zero_credit_is_allowed(self, ledger):
        assert ledger.credit(42, 0) == 0

    def test_negative_credit_rejected(self, ledger):
        ledger.credit(42, 100)
        with pytest.raises(InvalidInput):
            ledger.credit(42, -1)
        assert ledger.balance(42) == 100

    def test_balances_snapshot(self, ledger):
        ledger.credit(1, 10)
        ledger.credit(2, 20)
        snapshot = ledger.balances()
        snapshot[1] = 999
        assert ledger.balances() == {1: 10, 2: 20}

    def test_reset(self):
        ledger = LoyaltyLedger()
        ledger.credit(1, 10)
        ledger.reset()
        assert ledger.balance(1) == 0
