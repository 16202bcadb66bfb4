"""
FastAPI Application Entry Point

Integrates:
  - WhatsApp webhook (provider replies and delivery statuses)
  - Internal order API (providers, orders, notification dispatch)
  - Health checks
  - Middleware for logging & error handling

Run: uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from api.orders import router as orders_router
from config import Config
from infra import InfraBootstrap, bootstrap_infrastructure
from transport.whatsapp.webhook import router as whatsapp_router

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: startup and shutdown handlers.
    """
    # Startup
    infra = bootstrap_infrastructure()
    logger.info("=" * 60)
    logger.info("Order confirmation service starting up...")
    logger.info(f"Environment: {Config.ENVIRONMENT}")
    logger.info(f"Infrastructure: {infra}")
    logger.info(f"Order template: {Config.ORDER_TEMPLATE_NAME} ({Config.ORDER_TEMPLATE_LANGUAGE})")
    logger.info("=" * 60)
    Config.validate()

    yield

    # Shutdown
    logger.info("Order confirmation service shutting down...")
    InfraBootstrap.reset()


# Create FastAPI app
app = FastAPI(
    title="Order Confirmation API",
    description="Provider order confirmation over WhatsApp",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Middleware for logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.debug(f"{request.method} {request.url.path}")
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"Request error: {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# Include routers
app.include_router(whatsapp_router)
app.include_router(orders_router)


# Health check endpoints
@app.get("/health/live")
async def health_live():
    """Live health check (Kubernetes liveness probe)."""
    return {"status": "alive"}


@app.get("/health/ready")
async def health_ready():
    """Readiness health check (Kubernetes readiness probe)."""
    missing = Config.missing()
    if missing:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "missing": missing},
        )
    return {"status": "ready"}


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Order Confirmation API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "whatsapp_webhook": "POST /webhook/whatsapp",
            "whatsapp_challenge": "GET /webhook/whatsapp",
            "providers": "POST /providers",
            "orders": "POST /orders",
            "notify": "POST /orders/{order_id}/notify",
            "paid": "POST /orders/{order_id}/paid",
            "pending_orders": "GET /pending-orders",
            "messages": "GET /messages",
            "health_live": "GET /health/live",
            "health_ready": "GET /health/ready",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=Config.APP_PORT,
        reload=Config.ENVIRONMENT == "development",
    )
