from fastapi import APIRouter

from app.api.v1.health import router as health_router
from app.api.v1.trade_market import router as trade_market_router
from app.api.v1.trade_org import router as trade_org_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# TRADE
# ------------------------------------------------------------------
v1_router.include_router(trade_org_router, tags=["trade-org"])
v1_router.include_router(trade_market_router, tags=["trade-market"])
