import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

# Import after dotenv is loaded
from creatorai.core.config import settings, validate_config
from creatorai.core.database import create_all_tables
from creatorai.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from creatorai.core.logging import configure_logging
from creatorai.core.middleware.request_id import RequestIdMiddleware
from creatorai.features.policy.table import seed_token_costs
from creatorai.api import admin, ai, billing, brand, content, features, health, subscription, tokens

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("creatorai")
    logger.info("Starting CreatorAI backend...")
    app.state.startup_time = time.time()
    create_all_tables()
    seeded = seed_token_costs()
    if seeded:
        logger.info(f"[startup] seeded {seeded} feature token costs")
    try:
        yield
    finally:
        logger.info("Stopping CreatorAI backend...")


app = FastAPI(title="CreatorAI - Backend", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(subscription.router)
app.include_router(features.router)
app.include_router(tokens.router)
app.include_router(ai.router)
app.include_router(brand.router)
app.include_router(content.router)
app.include_router(billing.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("creatorai.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
