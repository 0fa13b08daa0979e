"""Plan catalogue: milk product x duration, with prices."""

from dataclasses import dataclass
from decimal import Decimal

from milkdrop.subscriptions.lifecycle import effective_duration_days, parse_duration_days


@dataclass(frozen=True)
class MilkPlan:
    """A purchasable subscription plan."""

    code: str  # e.g. "500ml-6days"
    subscription_type: str  # product, e.g. "500ml"
    duration: str  # duration code, e.g. "6days"
    display_name: str
    price: Decimal  # in rupees

    @property
    def price_minor(self) -> int:
        """Price in the smallest currency unit (paise), as the gateway expects."""
        return int(self.price * 100)

    @property
    def nominal_days(self) -> int:
        return parse_duration_days(self.duration)

    @property
    def effective_days(self) -> int:
        return effective_duration_days(self.nominal_days)


PLANS: dict[str, MilkPlan] = {
    "500ml-6days": MilkPlan(
        code="500ml-6days",
        subscription_type="500ml",
        duration="6days",
        display_name="500 ml daily, 6 days",
        price=Decimal("300.00"),
    ),
    "500ml-15days": MilkPlan(
        code="500ml-15days",
        subscription_type="500ml",
        duration="15days",
        display_name="500 ml daily, 15 days",
        price=Decimal("750.00"),
    ),
    "1000ml-6days": MilkPlan(
        code="1000ml-6days",
        subscription_type="1000ml",
        duration="6days",
        display_name="1 litre daily, 6 days",
        price=Decimal("540.00"),
    ),
    "1000ml-15days": MilkPlan(
        code="1000ml-15days",
        subscription_type="1000ml",
        duration="15days",
        display_name="1 litre daily, 15 days",
        price=Decimal("1350.00"),
    ),
}

VALID_PLAN_CODES: set[str] = set(PLANS.keys())


def get_plan(plan_code: str) -> MilkPlan | None:
    """Get a plan by code. Returns None if unknown."""
    return PLANS.get(plan_code)


def find_plan(subscription_type: str, duration: str) -> MilkPlan | None:
    """Reverse lookup: (product, duration code) -> plan."""
    for plan in PLANS.values():
        if plan.subscription_type == subscription_type and plan.duration == duration:
            return plan
    return None
