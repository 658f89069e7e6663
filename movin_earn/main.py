import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from dotenv import load_dotenv

# Load env from the working directory's .env
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from movin_earn.core.config import settings, validate_config
from movin_earn.core.logging import configure_logging
from movin_earn.core.middleware.request_id import RequestIdMiddleware
from movin_earn.core.middleware.metrics import MetricsMiddleware
from movin_earn.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from movin_earn.api import earn, health, metrics
from movin_earn.features.engine.service import get_earn_engine

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("movin_earn")
    logger.info("Starting MOVIN Earn service...")
    app.state.startup_time = time.time()
    # Build the engine (and load persisted state) before the first request
    get_earn_engine()
    try:
        yield
    finally:
        logger.info("Stopping MOVIN Earn service...")


app = FastAPI(title="MOVIN Earn", lifespan=lifespan)

# Middlewares
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(earn.router)
app.include_router(health.router)
app.include_router(metrics.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("movin_earn.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
