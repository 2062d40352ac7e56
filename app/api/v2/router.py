"""
Router principal para API v2.
Agrupa todos os endpoints v2 em um único router.
"""
from fastapi import APIRouter
from app.api.v2 import linkedin

# Criar router principal
router = APIRouter()

# Endpoint de health check e documentação
@router.get("/")
async def v2_root():
    """Endpoint raiz da API v2 - lista endpoints disponíveis"""
    return {
        "version": "v2",
        "status": "ok",
        "endpoints": {
            "discover": "POST /v2/linkedin/discover",
            "discover_batch": "POST /v2/linkedin/discover/batch",
            "status": "GET /v2/linkedin/status",
            "metrics": "POST /v2/linkedin/metrics",
            "analytics": "GET /v2/linkedin/analytics",
            "validate_url": "POST /v2/linkedin/validate-url",
            "cache_invalidate": "DELETE /v2/linkedin/cache/{term}",
            "cache_cleanup": "POST /v2/linkedin/cache/cleanup",
            "cache_status": "GET /v2/linkedin/cache/status",
            "health": "GET /v2/linkedin/health"
        },
        "docs": "/docs"
    }

# Incluir todos os routers v2
router.include_router(linkedin.router, tags=["v2-linkedin"])

__all__ = ["router"]
