import uuid
from typing import Callable, Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Ensures every request has a request-id, placed into response headers.
    Uses configured header name (default X-Request-Id).
    """

    def __init__(self, app, header_name: str = "X-Request-Id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[self.header_name] = rid
        return response


def set_audit_context(request: Request, action: str, **ids: Optional[str]) -> None:
    """
    Route handlers record what they are doing; TradeAuditMiddleware
    reads it back once the response (or failure) is known.
    """
    ctx = dict(getattr(request.state, "audit", None) or {})
    ctx["action"] = action
    ctx.update({k: v for k, v in ids.items() if v is not None})
    request.state.audit = ctx


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class TradeAuditMiddleware(BaseHTTPMiddleware):
    """
    One audit record per /trade request, whatever the outcome.
    Writes through app.state.audit_service, which never raises.
    """

    def __init__(self, app, path_marker: str = "/trade"):
        super().__init__(app)
        self.path_marker = path_marker

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.path_marker not in request.url.path:
            return await call_next(request)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            # audit_service commits synchronously
            await run_in_threadpool(self._write, request, status_code)

    def _write(self, request: Request, status_code: int) -> None:
        audit_service = getattr(request.app.state, "audit_service", None)
        if audit_service is None:
            return
        ctx = getattr(request.state, "audit", None) or {}
        principal = getattr(request.state, "principal", None)
        audit_service.write(
            request_id=getattr(request.state, "request_id", None),
            actor_uid=principal.uid if principal else None,
            actor_role=principal.role.value if principal else None,
            action=ctx.get("action", "trade.unknown"),
            org_id=ctx.get("org_id"),
            bid_id=ctx.get("bid_id"),
            offer_id=ctx.get("offer_id"),
            status_code=status_code,
            ip=_client_ip(request),
        )
