"""
Subscription plans and credit arithmetic.

Prices are in euros. A generation limit of -1 means unlimited.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


UNLIMITED = -1


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    monthly_price: int   # EUR
    yearly_price: int    # EUR
    generations_limit: int
    features: List[str] = field(default_factory=list)
    popular: bool = False


PLANS: Dict[str, Plan] = {
    "free": Plan(
        id="free",
        name="Découverte",
        monthly_price=0,
        yearly_price=0,
        generations_limit=5,
        features=["5 generations per month", "Standard quality", "Packshot and social formats"],
    ),
    "early_adopter": Plan(
        id="early_adopter",
        name="Early Adopter",
        monthly_price=29,
        yearly_price=290,
        generations_limit=100,
        features=["100 generations per month", "All formats", "Advanced image editing", "Priority support"],
    ),
    "starter": Plan(
        id="starter",
        name="Starter",
        monthly_price=49,
        yearly_price=470,
        generations_limit=50,
        features=["50 generations per month", "All formats", "Advanced image editing"],
    ),
    "professional": Plan(
        id="professional",
        name="Professional",
        monthly_price=149,
        yearly_price=1430,
        generations_limit=250,
        features=["250 generations per month", "All formats", "Advanced image editing", "Priority support"],
        popular=True,
    ),
    "business": Plan(
        id="business",
        name="Business",
        monthly_price=399,
        yearly_price=3830,
        generations_limit=1000,
        features=["1000 generations per month", "Team access", "Dedicated support"],
    ),
    "enterprise": Plan(
        id="enterprise",
        name="Enterprise",
        monthly_price=999,
        yearly_price=9990,
        generations_limit=UNLIMITED,
        features=["Unlimited generations", "Custom integrations", "Account manager"],
    ),
}

FREE_PLAN_ID = "free"
BILLING_INTERVALS = ("monthly", "yearly")


def get_plan(plan_id: str) -> Optional[Plan]:
    return PLANS.get(plan_id)


def plan_price(plan: Plan, billing_interval: str) -> int:
    if billing_interval not in BILLING_INTERVALS:
        raise ValueError(f"Invalid billing interval: {billing_interval}")
    return plan.monthly_price if billing_interval == "monthly" else plan.yearly_price


def euros_to_cents(amount: float) -> int:
    return int(round(amount * 100))


def calculate_savings_percentage(monthly_price: float, yearly_price: float) -> int:
    """Yearly discount relative to twelve monthly payments, in whole percent."""
    if monthly_price <= 0:
        return 0
    full_year = monthly_price * 12
    return int(round((full_year - yearly_price) / full_year * 100))


def remaining_credits(used: int, limit: int) -> Optional[int]:
    """Credits left this period, or None for unlimited plans."""
    if limit == UNLIMITED:
        return None
    return max(limit - used, 0)


def check_usage_limits(used: int, limit: int, needed: int = 1) -> dict:
    """Evaluate whether ``needed`` more generations fit in the period."""
    remaining = remaining_credits(used, limit)
    if remaining is None:
        return {"allowed": True, "remaining": None, "percentage_used": 0.0, "near_limit": False}
    percentage = (used / limit * 100) if limit > 0 else 100.0
    return {
        "allowed": remaining >= needed,
        "remaining": remaining,
        "percentage_used": round(min(percentage, 100.0), 1),
        "near_limit": percentage >= 80,
    }
