"""FastAPI application factory with lifespan hook."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from config.settings import ConfigurationError
from fastapi_app.routes import get_state, router
from helpers.constants import APP_LOGGER


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the configuration on startup; serve /reload to retry if it fails."""
    try:
        get_state().reload()
    except ConfigurationError as exc:
        APP_LOGGER.error(msg=f"Configuration not loaded at startup: {exc}")
    yield


app = FastAPI(
    title="CloudWatch Exporter",
    description="Prometheus exporter for AWS CloudWatch metrics",
    version="1.0.0",
    lifespan=lifespan,
)
app.include_router(router)


@app.get("/")
@app.get("/health")
def health():
    """Lightweight liveness probe."""
    return {"status": "healthy", "service": "cloudwatch-exporter"}
