"""Entitlement models — profile plan, role grants, and plan audit trail."""

import uuid
from datetime import datetime

from sqlalchemy import String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from synka.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Profile(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Public profile of a card owner. Only the plan column matters here."""

    __tablename__ = "profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(unique=True, nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="Free", server_default="Free")

    def __repr__(self) -> str:
        return f"<Profile user_id={self.user_id} plan={self.plan!r}>"


class UserRole(UUIDPrimaryKeyMixin, Base):
    """Role grant; a user holds each role at most once."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),)

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # free, orange, admin, user
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    def __repr__(self) -> str:
        return f"<UserRole user_id={self.user_id} role={self.role!r}>"


class PlanHistory(UUIDPrimaryKeyMixin, Base):
    """Append-only audit of plan changes."""

    __tablename__ = "plan_history"

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    old_plan: Mapped[str] = mapped_column(String(20), nullable=False)
    new_plan: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)  # None = system
    changed_at: Mapped[datetime] = mapped_column(server_default=func.now())
