#!/usr/bin/env python3
"""
Seed the default plan catalogue.

Inserts the Free, Basic, Pro and Enterprise plans, or refreshes them in
place when they already exist. Safe to run on every deploy.

Usage:
    python -m scripts.seed_plans                  # Seed plans
    python -m scripts.seed_plans --create-tables  # Create tables first (dev/SQLite)
"""

import asyncio
import argparse
import logging

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from billflow.infrastructure.db.database import close_db, get_db_manager, get_session_context
from billflow.infrastructure.services.subscription_service import SubscriptionService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_plans(create_tables: bool = False) -> int:
    """Seed the catalogue and return how many plans were written."""
    if create_tables:
        await get_db_manager().create_tables()
        logger.info("Tables created")

    async with get_session_context() as session:
        plans = await SubscriptionService(session).seed_default_plans()

    for plan in plans:
        logger.info(f"  {plan.name}: {plan.price} {plan.currency} / {plan.interval}")
    return len(plans)


async def main():
    parser = argparse.ArgumentParser(description="Seed the default plan catalogue")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before seeding (use migrations in production)"
    )
    args = parser.parse_args()

    try:
        count = await seed_plans(create_tables=args.create_tables)
        print(f"\nSeeded {count} plans")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
