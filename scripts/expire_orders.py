"""Run one expiry sweep against the orders database.

Same transition the orders service runs periodically; useful from cron or
after an outage of the service itself.
"""

import argparse
from datetime import datetime, timezone

from roompay.common.db import SessionLocal
from roompay.common.logging import configure_logging
from roompay.services.orders.service import OrderService


def main() -> None:
    """CLI entrypoint for a one-shot sweep."""

    parser = argparse.ArgumentParser(description="Expire pending orders past their payment window.")
    parser.add_argument("--limit", type=int, default=500)
    parser.add_argument("--as-of", default=None, help="ISO timestamp to sweep as of (default: now)")
    args = parser.parse_args()

    configure_logging()
    now = datetime.fromisoformat(args.as_of) if args.as_of else datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    expired = OrderService(SessionLocal).expire_overdue(now=now, limit=args.limit)
    print(f"expired={expired}")


if __name__ == "__main__":
    main()
