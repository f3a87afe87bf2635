import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from backend/.env before settings are read
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(backend_dir, ".env"))

from backend.core.config import settings, validate_config, cors_origins  # noqa: E402
from backend.core.database import create_all_tables  # noqa: E402
from backend.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from backend.core.logging import configure_logging  # noqa: E402
from backend.core.middleware.metrics import MetricsMiddleware  # noqa: E402
from backend.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from backend.core.validation import validate_env  # noqa: E402
from backend.api import admin, avatar, health, metrics, payments, subscriptions, users, voices, webhooks  # noqa: E402

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("vidify")
    logger.info("Starting Vidify backend...")
    app.state.startup_time = time.time()
    if settings.DATABASE_URL or os.getenv("TEST_DATABASE_URL"):
        create_all_tables()
    else:
        logger.warning("DATABASE_URL not set; skipping table creation")
    try:
        yield
    finally:
        logger.info("Stopping Vidify backend...")


app = FastAPI(title="Vidify API", version="1.0.0", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(avatar.router)
app.include_router(subscriptions.router)
app.include_router(voices.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(payments.router)
app.include_router(webhooks.router)
