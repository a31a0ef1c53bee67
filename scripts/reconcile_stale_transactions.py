#!/usr/bin/env python3
"""
Stale Transaction Sweep

Moves PROCESSING transactions that never reached a terminal state to FAILED
with reason "Payment timed out". Run as a cron job or manually.

Usage:
    python -m scripts.reconcile_stale_transactions               # Use STALE_TRANSACTION_MINUTES
    python -m scripts.reconcile_stale_transactions --minutes 60  # Custom age threshold
"""

import asyncio
import argparse
import logging
from datetime import timedelta

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from billflow.config.settings import settings
from billflow.infrastructure.db.database import close_db, get_session_context
from billflow.infrastructure.services.ledger_service import LedgerService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def expire_stale_transactions(minutes: int) -> int:
    """Fail PROCESSING transactions older than ``minutes``."""
    async with get_session_context() as session:
        expired = await LedgerService(session).expire_stale_transactions(
            timedelta(minutes=minutes)
        )
    logger.info(f"Sweep complete: {expired} transaction(s) expired")
    return expired


async def main():
    parser = argparse.ArgumentParser(description="Expire stale PROCESSING transactions")
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.stale_transaction_minutes,
        help=f"Age threshold in minutes (default: {settings.stale_transaction_minutes})"
    )
    args = parser.parse_args()

    try:
        expired = await expire_stale_transactions(args.minutes)
        print(f"\nExpired: {expired}")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
