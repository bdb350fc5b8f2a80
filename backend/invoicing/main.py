"""
Contractor Invoicing API v1.0
FastAPI service exposing the invoice financial calculation engine:
line item derivation, category tax, discounts, deposits, change orders,
progress billing and document snapshots.
"""
import os
import time
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from invoicing.config import load_business_config
from invoicing.services.exceptions import InvoiceCalculationError
from invoicing.services.logging_config import setup_logging
from invoicing.services.middleware import RequestTimingMiddleware
from invoicing.services.perf_monitor import tracker as perf_tracker

# Load .env file automatically in dev (no-op if the file is missing)
load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("invoicing-api")

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Business defaults are read once; a bad env value stops start-up here
    try:
        app.state.business_config = load_business_config()
    except InvoiceCalculationError as exc:
        logger.error(
            "invalid business configuration",
            extra={"code": exc.code, "field": exc.field},
        )
        raise
    logger.info("business config loaded")
    yield


app = FastAPI(
    title="Contractor Invoicing API",
    version="1.0.0",
    description="Deterministic invoice and quote calculations for contractors",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Calculation errors → 422
# ---------------------------------------------------------------------------
@app.exception_handler(InvoiceCalculationError)
async def calculation_error_handler(request: Request, exc: InvoiceCalculationError):
    logger.warning(
        "calculation rejected",
        extra={
            "code": exc.code,
            "field": exc.field,
            "request_id": getattr(request.state, "request_id", None),
        },
    )
    return JSONResponse(status_code=422, content=exc.to_dict())


# ---------------------------------------------------------------------------
# CORS: restricted to allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:5173"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Request-ID"],
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from invoicing.api.invoice_routes import router as invoice_router  # noqa: E402

app.include_router(invoice_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": app.version,
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }


@app.get("/metrics")
async def metrics():
    """Call counts and average durations of the timed engine functions."""
    return perf_tracker.get_metrics()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("invoicing.main:app", host="0.0.0.0", port=8000, reload=True)
