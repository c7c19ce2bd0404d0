#!/usr/bin/env python3
"""
Record the monthly rollover event. Meant to run from cron shortly after
midnight UTC on the first day of each month.

Usage:
    python scripts/record_rollover.py
    python scripts/record_rollover.py --triggered-by 42
"""

import asyncio
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fieldforms.database import AsyncSessionLocal, close_db
from fieldforms.core.logging_config import setup_logging
from fieldforms.services.audit_service import build_audit_service
from fieldforms.services.rollover_service import RolloverService


async def main():
    parser = argparse.ArgumentParser(description="Record the monthly form cycle rollover")
    parser.add_argument("--triggered-by", type=int, default=None, help="User id that triggered the run (optional)")
    args = parser.parse_args()

    setup_logging()
    service = RolloverService(audit=build_audit_service(AsyncSessionLocal))
    try:
        async with AsyncSessionLocal() as session:
            event = await service.record_rollover(session, triggered_by=args.triggered_by)
    finally:
        await close_db()

    data = event.event_data
    print(
        f"Rollover recorded (event {event.id}): {data['previous_month']} closed "
        f"with {data['logs_count']} cycle logs, now tracking {data['reset_month']}"
    )


if __name__ == "__main__":
    asyncio.run(main())
