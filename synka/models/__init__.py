"""SQLAlchemy models for Synka billing.

All models are imported here so that ``Base.metadata`` knows every table.
If you add a new model, import it in this file.
"""

from synka.models.order import Order
from synka.models.payment import Payment
from synka.models.profile import PlanHistory, Profile, UserRole
from synka.models.subscription import Subscription

__all__ = [
    "Order",
    "Payment",
    "PlanHistory",
    "Profile",
    "Subscription",
    "UserRole",
]
