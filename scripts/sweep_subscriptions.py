"""
Periodic ledger maintenance.

- expires active subscriptions whose window closed and clears entitlements
- fails pending checkouts older than PENDING_TTL_HOURS
- optionally re-verifies every remaining pending checkout with Paystack

Run: python -m scripts.sweep_subscriptions [--reconcile-pending]
"""
import argparse
import logging
import sys

from hkup.core import config
from hkup.core.logging_config import setup_logging
from hkup.db.session import SessionLocal
from hkup.services.paystack_service import PaystackGateway
from hkup.services.subscription_service import (
    ReconcileOutcome,
    expire_lapsed_subscriptions,
    fail_stale_pending,
    reconcile_pending,
)

logger = logging.getLogger(__name__)


def run_sweep(db, gateway=None) -> dict:
    """Run all sweeps once; returns counters for the log line."""
    summary = {}
    if gateway is not None:
        outcomes = reconcile_pending(db, gateway)
        summary["reconciled"] = len(outcomes)
        summary["activated"] = sum(1 for outcome in outcomes.values() if outcome == ReconcileOutcome.ACTIVATED)

    expired = expire_lapsed_subscriptions(db)
    summary["expired"] = expired.subscriptions
    summary["entitlements_cleared"] = expired.users
    summary["stale_failed"] = fail_stale_pending(db)
    return summary


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Subscription ledger sweep")
    parser.add_argument(
        "--reconcile-pending",
        action="store_true",
        help="verify pending checkouts with Paystack before failing stale ones",
    )
    args = parser.parse_args(argv)

    setup_logging(config.LOG_LEVEL)
    db = SessionLocal()
    gateway = PaystackGateway() if args.reconcile_pending else None
    try:
        summary = run_sweep(db, gateway)
    except Exception:
        logger.exception("Subscription sweep failed")
        return 1
    finally:
        db.close()
        if gateway is not None:
            gateway.close()

    logger.info(f"Subscription sweep complete: {summary}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
