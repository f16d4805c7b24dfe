from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from backend import config
from backend.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return JSONResponse(rate_limit_health_info(request))

@router.get("/wiring")
def health_wiring():
    """Adaptateurs actifs (stockage, passerelle), sans secret."""
    return {
        "store": config.STORE_BACKEND,
        "gateway": config.PAYMENT_GATEWAY,
        "supabase_configured": bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_KEY),
        "stripe_configured": bool(config.STRIPE_SECRET_KEY),
    }
