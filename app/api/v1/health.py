from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    settings = getattr(request.app.state, "settings", None)
    return {
        "status": "ok",
        "environment": settings.environment if settings else None,
        "sweep_enabled": bool(settings and settings.trade_sweep_enabled),
        "request_id": getattr(request.state, "request_id", None),
    }
