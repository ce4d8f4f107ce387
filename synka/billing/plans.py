"""Plan definitions — the paid and free tiers and their role grants."""

from dataclasses import dataclass

from dateutil.relativedelta import relativedelta


@dataclass(frozen=True)
class Plan:
    """A user-facing plan and the role that grants it."""

    name: str  # value stored in profiles.plan
    role: str  # value stored in user_roles.role


ORANGE = Plan(name="Orange", role="orange")
FREE = Plan(name="Free", role="free")

# Billing cycle length per subscription plan_type
BILLING_CYCLES: dict[str, relativedelta] = {
    "monthly": relativedelta(months=1),
    "annually": relativedelta(years=1),
}


def get_billing_cycle(plan_type: str) -> relativedelta:
    """Cycle length for a plan type. Defaults to monthly if unknown."""
    return BILLING_CYCLES.get(plan_type, BILLING_CYCLES["monthly"])
