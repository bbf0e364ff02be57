#!/usr/bin/env python3
"""
הרצה ידנית של פקיעת מטבעות: אותה לוגיקה שרצה יומית ב-Celery beat.

הרצה (מתוך תיקיית הפרויקט):
    python scripts/run_expiry_sweep.py
    python scripts/run_expiry_sweep.py --dry-run
    python scripts/run_expiry_sweep.py --as-of 2026-01-31T00:00:00
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# הוספת תיקיית הפרויקט ל-path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from marketplace_wallet.core.logging import setup_logging  # noqa: E402
from marketplace_wallet.db.database import get_task_session, utcnow  # noqa: E402
from marketplace_wallet.domain.services.expiry_service import ExpiryService  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expire coin lots past their expiry date")
    parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="Reference time in UTC (ISO format). Defaults to now.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List expirable lots without writing anything",
    )
    return parser.parse_args(argv)


async def run(as_of: datetime, dry_run: bool) -> int:
    async with get_task_session() as db:
        service = ExpiryService(db)
        if dry_run:
            lots = await service.find_expirable_lots(as_of)
            for credit_id, wallet_id, amount in lots:
                print(f"  credit #{credit_id}  wallet {wallet_id}  {amount} coins")
            print(f"✓ {len(lots)} lots would be expired")
            return 0

        coins_expired = await service.process_expired_coins(now=as_of)
        print(f"✓ Expired {coins_expired} coins")
        return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(level="INFO", json_format=False, app_name="expiry-sweep")

    as_of = args.as_of or utcnow()
    if as_of.tzinfo is not None:
        print("ERROR: --as-of must be a naive UTC timestamp")
        return 1

    print("=" * 50)
    print(f"Coin expiry sweep (as of {as_of.isoformat()})")
    print("=" * 50)

    try:
        return asyncio.run(run(as_of, args.dry_run))
    except Exception as e:
        print(f"ERROR: Expiry sweep failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
