import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from app.api.v2.router import router as v2_router
from app.core.constants import VERSION
from app.core.database import close_pool, is_database_configured
from app.core.logging_utils import setup_logging
from app.services.database_service import get_db_service
from app.services.discovery.discovery_service import get_discovery_service
from app.services.discovery.exceptions import DiscoveryError

# Configurar Logging (JSON Structured)
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="LinkedIn Discovery", version=VERSION)
app.include_router(v2_router, prefix="/v2")


@app.on_event("startup")
async def startup_event():
    """Executado quando a aplicação inicia"""
    if is_database_configured():
        await get_db_service().ensure_schema()
    else:
        logger.warning("⚠️ DATABASE_URL não definida: cache e métricas em memória")
    await get_discovery_service().start()
    logger.info("🚀 Aplicação inicializada com sucesso")


@app.on_event("shutdown")
async def shutdown_event():
    """Executado quando a aplicação é encerrada"""
    await get_discovery_service().stop()
    await close_pool()
    logger.info("🔌 Aplicação encerrada")


# --- Global Exception Handlers ---

@app.exception_handler(DiscoveryError)
async def discovery_exception_handler(request: Request, exc: DiscoveryError):
    logger.error(f"Discovery Error não tratado: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "discovery_error", "message": str(exc), "manual_entry": True}
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global Error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error", "error": str(exc)}
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.get("/")
async def root():
    return {"status": "ok", "service": "LinkedIn Discovery", "version": VERSION}
