"""
ONDC WooCommerce Adapter - FastAPI Backend
Seller-side (BPP) ONDC adapter in front of a WooCommerce store
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ondc_adapter.config import settings, get_provider_info
from ondc_adapter.commerce.factory import get_commerce_backend
from ondc_adapter.core.errors import StructuralError
from ondc_adapter.protocol.acks import nack
from ondc_adapter.protocol.schemas import ACTIONS
from ondc_adapter.api.ondc import router as ondc_router, webhook_router
from ondc_adapter.api.products import router as products_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the commerce platform once at startup; the adapter still starts if it is down"""
    resolve_backend = app.dependency_overrides.get(get_commerce_backend, get_commerce_backend)
    app.state.platform_connected = await resolve_backend().test_connection()
    if app.state.platform_connected:
        logger.info(f"Commerce platform {settings.COMMERCE_PROVIDER.value} reachable")
    else:
        logger.warning(f"Commerce platform {settings.COMMERCE_PROVIDER.value} unreachable at startup")
    yield


app = FastAPI(
    title="ONDC WooCommerce Adapter",
    description="ONDC seller app (BPP) adapter with asynchronous on_<action> callbacks",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(ondc_router)
app.include_router(webhook_router)
app.include_router(products_router)


@app.exception_handler(RequestValidationError)
async def request_validation_nack(request: Request, exc: RequestValidationError):
    """Malformed protocol bodies are rejected with a NACK and never processed"""
    errors = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    logger.warning(f"NACK {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content=nack(errors))


@app.exception_handler(StructuralError)
async def structural_error_nack(request: Request, exc: StructuralError):
    logger.warning(f"NACK {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=nack(str(exc), exc.error_type, exc.code))


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "app": settings.APP_NAME,
        "version": "1.0.0",
        "status": "ready",
        "actions": list(ACTIONS),
        "provider": get_provider_info(),
    }


@app.get("/health")
async def health_check():
    """Health check endpoint - simple and fast"""
    return {
        "status": "healthy",
        "commerce_provider": settings.COMMERCE_PROVIDER.value,
        "bpp_id": settings.BPP_ID,
        "platform_connected": getattr(app.state, "platform_connected", None),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
