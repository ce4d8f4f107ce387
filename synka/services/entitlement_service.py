"""Entitlement service — grants and revokes the paid plan.

Every step is idempotent on its own (set plan, delete role, ensure role,
audit only on an actual change), so a sequence interrupted halfway is
completed by the next reconciliation rather than left inconsistent.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from synka.billing.plans import FREE, ORANGE, Plan
from synka.models.profile import PlanHistory, Profile, UserRole

logger = logging.getLogger(__name__)


async def _get_profile(db: AsyncSession, user_id: uuid.UUID) -> Profile | None:
    result = await db.execute(select(Profile).where(Profile.user_id == user_id))
    return result.scalar_one_or_none()


async def _ensure_role(db: AsyncSession, user_id: uuid.UUID, role: str) -> None:
    """Grant ``role`` unless the user already holds it."""
    result = await db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role)
    )
    if result.scalar_one_or_none() is None:
        db.add(UserRole(user_id=user_id, role=role))
        await db.flush()


async def _revoke_role(db: AsyncSession, user_id: uuid.UUID, role: str) -> None:
    await db.execute(
        delete(UserRole).where(UserRole.user_id == user_id, UserRole.role == role)
    )


async def _switch_plan(
    db: AsyncSession, user_id: uuid.UUID, new: Plan, old: Plan
) -> bool:
    """Move a user onto ``new`` from ``old``. Returns True if the profile changed."""
    profile = await _get_profile(db, user_id)
    changed = False

    if profile is None:
        logger.warning("No profile for user %s, skipping plan update", user_id)
    elif profile.plan != new.name:
        previous = profile.plan
        profile.plan = new.name
        db.add(PlanHistory(user_id=user_id, old_plan=previous, new_plan=new.name))
        changed = True

    await _revoke_role(db, user_id, old.role)
    await _ensure_role(db, user_id, new.role)
    await db.flush()
    return changed


async def activate_user_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_type: str,
    end_date: datetime | None,
) -> bool:
    """Put the user on the paid plan for a subscription ending at ``end_date``.

    Safe to call on every activating event; a user already on the paid plan
    gets no new audit row.
    """
    changed = await _switch_plan(db, user_id, new=ORANGE, old=FREE)
    logger.info(
        "Activated %s plan for user %s (plan_type=%s, end_date=%s, changed=%s)",
        ORANGE.name,
        user_id,
        plan_type,
        end_date.isoformat() if end_date else None,
        changed,
    )
    return True


async def downgrade_to_free(db: AsyncSession, user_id: uuid.UUID) -> bool:
    """Revoke the paid plan: plan to Free, drop the paid role, grant free.

    Returns True if the profile plan actually changed.
    """
    changed = await _switch_plan(db, user_id, new=FREE, old=ORANGE)
    logger.info("Downgraded user %s to %s (changed=%s)", user_id, FREE.name, changed)
    return changed
