"""Expire cancelled subscriptions whose paid period has ended.

Razorpay sends no event when a cancelled subscription's grace period runs
out, so this job downgrades those users. Schedule it (e.g., hourly cron):

    python -m scripts.expire_subscriptions
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from synka.billing.expiry import sweep_expired_subscriptions
from synka.config import get_settings
from synka.database import create_engine_from_settings, create_session_factory

logger = logging.getLogger("scripts.expire_subscriptions")


async def run() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_engine_from_settings(settings)
    session_factory = create_session_factory(engine)
    try:
        async with session_factory() as db:
            try:
                result = await sweep_expired_subscriptions(db)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Expiry sweep failed, no changes committed")
                return 1
    finally:
        await engine.dispose()

    print(f"Expired {len(result.expired)} subscription(s), downgraded {result.downgraded} user(s).")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run()))
