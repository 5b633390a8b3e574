import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

# Load env from backend/.env
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(backend_dir, ".env"))

# Import after dotenv is loaded
from backend.core.config import settings, validate_config
from backend.core.database import create_all_tables
from backend.core.logging import configure_logging
from backend.core.middleware.request_id import RequestIdMiddleware
from backend.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_error_handler,
    unhandled_exception_handler,
)
from backend.core.tracing import setup_tracing
from backend.api import health, hooks, usage
from backend.features.hooks.backend_client import GroqHookBackend

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))
setup_tracing(enabled=settings.OTEL_ENABLED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("hooksmith")
    logger.info("Starting hooksmith backend...")
    app.state.startup_time = time.time()

    try:
        create_all_tables()
    except Exception as e:
        logger.error(f"[startup] could not create tables: {e}")

    owned_backend = None
    if getattr(app.state, "hook_backend", None) is None:
        if settings.GROQ_API_KEY:
            owned_backend = GroqHookBackend.from_settings(settings)
            app.state.hook_backend = owned_backend
        else:
            logger.warning("[startup] GROQ_API_KEY not set; generation endpoint disabled")
            app.state.hook_backend = None
    try:
        yield
    finally:
        if owned_backend is not None:
            await owned_backend.aclose()
        logger.info("Stopping hooksmith backend...")


app = FastAPI(title="Hooksmith - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router, tags=["health"])
app.include_router(hooks.router, tags=["hooks"])
app.include_router(usage.router, tags=["usage"])
app.include_router(usage.profile_router, tags=["profile"])
