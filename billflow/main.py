"""
Billflow - FastAPI Application

Main entry point for the billing API.
Provides endpoints for payments, subscriptions, billing history and
gateway webhooks.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billflow.config.settings import settings
from billflow.infrastructure.exceptions import (
    AuthError,
    BillflowError,
    GatewayError,
    NotFoundError,
    SignatureError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"Billflow starting in {settings.environment} mode...")
    if settings.gateway_mock_mode:
        logger.warning("Razorpay API keys not configured; gateway client in mock mode")

    from billflow.infrastructure.db.database import init_db, close_db
    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.warning(f"Database initialization failed: {e}")

    yield

    # Shutdown
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.warning(f"Database shutdown error: {e}")

    logger.info("Billflow shutting down...")


app = FastAPI(
    title="Billflow",
    description="Billing, subscription and payment-transaction service",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Surface the first schema error in the same shape as ValidationError."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    error = ValidationError(
        first.get("msg", "Invalid request"),
        details={
            "errors": [
                {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
                for err in errors
            ]
        },
    )
    return JSONResponse(status_code=400, content=error.to_dict())


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(SignatureError)
async def signature_error_handler(request: Request, exc: SignatureError):
    """Handle gateway signature mismatches."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    """Handle missing or invalid credentials."""
    return JSONResponse(
        status_code=401,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    """Handle payment gateway failures."""
    return JSONResponse(
        status_code=502,
        content=exc.to_dict(),
    )


@app.exception_handler(BillflowError)
async def general_error_handler(request: Request, exc: BillflowError):
    """Handle all other application errors; internals stay in the log."""
    logger.error(
        f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message} {exc.details}",
        exc_info=exc.original_error,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "InternalServerError", "message": "Internal server error", "details": {}},
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "billflow"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Billflow API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from billflow.api.routes import billing, payments, webhooks  # noqa: E402

app.include_router(billing.router, prefix="/api", tags=["Billing"])
app.include_router(payments.router, prefix="/api", tags=["Payments"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
