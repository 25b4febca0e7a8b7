"""
Re-dispatch notifications whose delivery failed.

Updates left in `failed` after their bounded retries are picked up again, as
long as their total attempts are below --max-total-attempts. Meant to run from
cron or by hand after a channel outage.

Usage:
    python scripts/retry_failed_notifications.py
    python scripts/retry_failed_notifications.py --max-total-attempts 12
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path so we can import from services
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import build_container
from config import get_settings


def main() -> int:
    parser = argparse.ArgumentParser(description="Retry failed notification deliveries")
    parser.add_argument(
        "--max-total-attempts",
        type=int,
        default=None,
        help="Skip updates that already used this many attempts (default: 3x NOTIFICATION_MAX_ATTEMPTS)",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    container = build_container(settings)
    dispatcher = container.notifications
    try:
        scheduled = dispatcher.retry_failed(args.max_total_attempts)
        dispatcher.flush()
    finally:
        dispatcher.shutdown(wait=True)

    print(f"Re-dispatched {scheduled} failed notification(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
