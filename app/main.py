"""
Off-ramp Engine: stablecoin -> fiat settlement API.

Quotes token -> fiat conversions with fee breakdowns, validates and submits
payout orders to the settlement provider, and tracks order status with an
immutable audit trail.

Start the server:
    uvicorn app.main:app --reload

Every response carries {"success": true, ...} or
{"success": false, "error": "..."} with 400 (invalid input), 404 (not found)
or 500 (upstream/internal failure).
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.catalog import router as catalog_router
from app.api.deps import close_provider
from app.api.health import router as health_router
from app.api.orders import router as orders_router
from app.api.rates import router as rates_router
from app.config import settings
from app.database import close_db, init_db
from app.engine.errors import InvalidInput, OfframpError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger("offramp.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup; release connections on shutdown."""
    await init_db()
    yield
    await close_provider()
    await close_db()


app = FastAPI(
    title="Off-ramp Engine",
    description=(
        "Stablecoin to fiat settlement API. Quotes conversions with fee breakdowns, "
        "submits payout orders to the settlement provider, and tracks their status "
        "with an immutable audit trail."
    ),
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(OfframpError)
async def offramp_error_handler(request: Request, exc: OfframpError):
    body = {"success": False, "error": exc.message}
    if isinstance(exc, InvalidInput):
        body["errors"] = exc.errors
    if exc.detail:
        body["detail"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "errors": errors},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc.detail)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


app.include_router(health_router)
app.include_router(rates_router, prefix="/api")
app.include_router(catalog_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
