from contextlib import asynccontextmanager
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException

from app.api.v1.router import v1_router
from app.core.config import Settings, get_settings
from app.core.errors import TradeError
from app.core.logging import configure_logging
from app.core.middleware import RequestIdMiddleware, TradeAuditMiddleware
from app.core.rate_limit import build_offer_rate_limiter
from app.services.audit_service import AuditService
from app.services.eligibility_service import EligibilityService
from app.services.notification_service import NotificationService
from app.services.offers_service import OfferService
from app.services.snapshot_service import SnapshotService
from app.services.sweep_service import TradeSweepScheduler, TradeSweepService
from app.services.trade_bids_service import TradeBidService
from app.services.winner_service import WinnerService

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "message": message},
        headers=headers,
    )


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TradeError)
    async def trade_error_handler(request: Request, exc: TradeError):
        return _error(exc.status_code, exc.message, exc.headers())

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request")
        return _error(400, f"{where}: {message}" if where else message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path})
        return _error(500, "Internal Server Error")


def _session_factory_from_db() -> Callable[[], Session]:
    from app.db.session import SessionLocal

    return SessionLocal


def create_app(
    session_factory: Optional[Callable[[], Session]] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    session_factory = session_factory or _session_factory_from_db()

    notifications = NotificationService(settings.notification_fanout_limit)
    winner = WinnerService(notifications)
    audit = AuditService(session_factory)
    sweep = TradeSweepService(
        session_factory,
        commodities=settings.trade_commodities,
        winner=winner,
        audit=audit,
        batch_limit=settings.trade_sweep_batch_limit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if settings.trade_sweep_enabled:
            scheduler = TradeSweepScheduler(sweep, settings.trade_sweep_interval_seconds)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler:
                scheduler.stop()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.audit_service = audit
    app.state.sweep = sweep
    app.state.bid_service = TradeBidService(
        commodities=settings.trade_commodities,
        currency=settings.trade_currency,
        open_query_limit=settings.open_bids_query_limit,
        winner=winner,
        notifications=notifications,
    )
    app.state.offer_service = OfferService(
        build_offer_rate_limiter(settings),
        SnapshotService(),
        notifications,
    )
    app.state.eligibility_service = EligibilityService()

    _install_exception_handlers(app)

    # added last runs first: request id must exist before the audit write
    app.add_middleware(TradeAuditMiddleware)
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
