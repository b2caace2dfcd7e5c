from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from stockpulse.core.config import get_settings
from stockpulse.core.exceptions import StockPulseError
from stockpulse.core.log_config import configure_logging
from stockpulse.routers.anomalies import router as anomalies_router
from stockpulse.routers.forecast import router as forecast_router
from stockpulse.routers.health import router as health_router
from stockpulse.routers.inventory import router as inventory_router
from stockpulse.services.recommendations import RecommendationClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    app.state.recommender = RecommendationClient.from_settings(settings)
    logger.info(
        "%s started (recommendations %s)",
        settings.APP_NAME, "enabled" if app.state.recommender.enabled else "disabled",
    )
    yield


app = FastAPI(
    title="StockPulse API",
    description="Inventory analytics for restaurants - usage forecasts, anomaly alerts, par levels and waste risk.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(StockPulseError)
async def stockpulse_exception_handler(request: Request, exc: StockPulseError):
    """Map engine errors to structured 4xx/5xx responses."""
    if exc.status_code >= 500:
        logger.warning("%s: %s", exc.error_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "request_id": request.headers.get("X-Request-ID"),
        }
    )


# Global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected server errors with structured response."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID"),
        }
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(anomalies_router, prefix="/api")
app.include_router(forecast_router, prefix="/api")
app.include_router(inventory_router, prefix="/api")


@app.get("/")
def read_root():
    return {
        "message": "Welcome to StockPulse API",
        "docs": "/docs",
        "health": "/health"
    }
