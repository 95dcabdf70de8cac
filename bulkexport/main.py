# bulkexport/main.py
import time

from fastapi import FastAPI, Request

from bulkexport import __version__
from bulkexport.core.settings import settings
from bulkexport.core.logging_config import setup_logging, logger
from bulkexport.observability.metrics import router as metrics_router
from bulkexport.routers.exports import router as exports_router


# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title="bulkexport", version=__version__)

setup_logging()
logger.info("startup", service="bulkexport-api", env=settings.app_env)

app.include_router(exports_router)
if settings.metrics_enabled:
    app.include_router(metrics_router)


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        ms=round((time.time() - start) * 1000, 1),
    )
    return response
