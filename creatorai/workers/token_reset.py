"""
Scheduled token reset job.

Restores tokens_remaining to tokens_monthly_limit for every subscription
whose billing-cycle boundary (tokens_reset_at) has passed, and advances the
boundary by TOKEN_RESET_CYCLE_DAYS. Meant to run from cron or a scheduler.
"""
from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from creatorai.core.config import settings
from creatorai.core.logging import configure_logging
from creatorai.features.tokens.ledger import TokenLedger


logger = logging.getLogger("creatorai.workers.token_reset")


def run_token_reset_job(
    now: Optional[datetime] = None,
    dry_run: bool = False,
    ledger: Optional[TokenLedger] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    ledger = ledger or TokenLedger()

    due = ledger.count_due(now)
    reset = 0 if dry_run else ledger.reset_due(now)

    logger.info(
        "[token_reset] job finished",
        extra={"event_type": "token_reset.run", "amount": reset},
    )
    return {
        "checked_at": now.isoformat(),
        "due": due,
        "reset": reset,
        "dry_run": dry_run,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset token balances whose billing cycle has ended.")
    parser.add_argument("--dry-run", action="store_true", help="Count due subscriptions without writing.")
    args = parser.parse_args()

    configure_logging(settings.ENV)
    report = run_token_reset_job(dry_run=args.dry_run)
    print(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
