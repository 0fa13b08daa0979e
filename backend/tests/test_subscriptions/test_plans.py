"""Tests for the plan catalogue."""

from decimal import Decimal

from milkdrop.subscriptions.plans import PLANS, VALID_PLAN_CODES, find_plan, get_plan


class TestPlans:
    def test_catalogue_codes(self):
        assert VALID_PLAN_CODES == {"500ml-6days", "500ml-15days", "1000ml-6days", "1000ml-15days"}

    def test_get_plan(self):
        plan = get_plan("1000ml-15days")
        assert plan is not None
        assert plan.subscription_type == "1000ml"
        assert plan.price == Decimal("1350.00")

    def test_get_unknown_plan(self):
        assert get_plan("2000ml-6days") is None

    def test_price_minor_units(self):
        assert get_plan("500ml-6days").price_minor == 30000

    def test_effective_days_include_bonus(self):
        assert get_plan("500ml-6days").effective_days == 7
        assert get_plan("500ml-15days").effective_days == 17

    def test_find_plan(self):
        assert find_plan("500ml", "15days") is PLANS["500ml-15days"]
        assert find_plan("500ml", "30days") is None

    def test_every_plan_duration_parses(self):
        for plan in PLANS.values():
            assert plan.nominal_days in (6, 15)
