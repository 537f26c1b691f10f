# run_scheduler.py
"""
Poll for due appraisal work: scheduled period initiations, reminders and closing.

  python scripts/run_scheduler.py --once
  python scripts/run_scheduler.py --interval 300
"""
import argparse
import logging
import time
from datetime import date

from perfhub.core.config import settings
from perfhub.core.logging import setup_logging
from perfhub.db.session import SessionLocal
from perfhub.services.scheduler import run_due_tasks

logger = logging.getLogger("perfhub.scheduler")


def run_once(run_date: date | None = None) -> dict:
    db = SessionLocal()
    try:
        return run_due_tasks(db, run_date).as_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Run the appraisal scheduler")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.SCHEDULER_INTERVAL_SECONDS,
        help="seconds between passes (default: SCHEDULER_INTERVAL_SECONDS)",
    )
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="pretend today is YYYY-MM-DD")
    args = parser.parse_args()

    setup_logging()

    if args.once:
        summary = run_once(args.date)
        print(summary)
        return

    logger.info("Scheduler started", extra={"interval_seconds": args.interval})
    while True:
        try:
            run_once(args.date)
        except Exception:
            logger.exception("Scheduler pass failed")
        time.sleep(args.interval)


if __name__ == "__main__":
    main()
