"""
One-shot trade sweep for cron / container schedulers.

    python -m app.jobs.trade_sweep

Closes every open bid whose deadline has passed, prints the result as
JSON and exits non-zero if the pass itself failed.
"""
import json
import logging
import sys

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.sweep_service import TradeSweepService
from app.services.winner_service import WinnerService

logger = logging.getLogger("app.jobs.trade_sweep")


def build_sweep(session_factory, settings) -> TradeSweepService:
    notifications = NotificationService(settings.notification_fanout_limit)
    return TradeSweepService(
        session_factory,
        commodities=settings.trade_commodities,
        winner=WinnerService(notifications),
        audit=AuditService(session_factory),
        batch_limit=settings.trade_sweep_batch_limit,
    )


def main() -> int:
    settings = get_settings()
    configure_logging(settings)

    from app.db.session import SessionLocal

    try:
        result = build_sweep(SessionLocal, settings).run_once()
    except Exception:
        logger.exception("trade_sweep_job_failed")
        print(json.dumps({"ok": False, "message": "Trade sweep failed"}))
        return 1

    print(json.dumps(result.to_dict()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
