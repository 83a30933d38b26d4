# photodrop/main.py
import time
import uuid

import structlog
from fastapi import FastAPI, Request

from photodrop import __version__
from photodrop.config import settings
from photodrop.core.logging_config import logger, setup_logging
from photodrop.db import Base, engine
from photodrop import models  # noqa: F401  (registers SQLAlchemy models)
from photodrop.errors import register_exception_handlers
from photodrop.observability.metrics import router as metrics_router
from photodrop.routers import buckets, gallery, guest

# ----------------------------------------------------
# App init
# ----------------------------------------------------
setup_logging(settings.log_level)

app = FastAPI(title="PhotoDrop", version=__version__)
register_exception_handlers(app)
logger.info("startup", service="photodrop-api", env=settings.app_env)


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

    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    client_ip = request.client.host if request.client else "unknown"

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    bound_logger = logger.bind(
        ip=client_ip,
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    latency_ms = round((time.time() - start) * 1000, 2)

    response.headers["X-Request-ID"] = request_id
    bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
        "request_finished"
    )
    return response


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(buckets.router)
app.include_router(gallery.router)
app.include_router(guest.router)
if settings.metrics_enabled:
    app.include_router(metrics_router)  # /metrics


# ----------------------------------------------------
# Startup
# ----------------------------------------------------
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
