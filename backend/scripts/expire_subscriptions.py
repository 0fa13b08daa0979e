"""Mark every overdue active subscription as expired.

Reads normally expire subscriptions lazily; this sweep keeps stored statuses
(and the admin dashboard) current for subscriptions nobody looks at.

Run from cron or inside Docker:
    docker compose exec backend python -m scripts.expire_subscriptions
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from milkdrop.database import async_session_factory, engine
from milkdrop.services.subscription_service import expire_overdue_subscriptions
from milkdrop.subscriptions.lifecycle import utcnow


async def run() -> int:
    """Run one sweep in its own transaction and return the number expired."""
    async with async_session_factory() as db:
        try:
            expired = await expire_overdue_subscriptions(db, utcnow())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    await engine.dispose()
    return expired


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    count = asyncio.run(run())
    print(f"Expired {count} subscription(s).")
