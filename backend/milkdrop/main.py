"""MilkDrop — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from milkdrop.api.v1.admin import router as admin_router
from milkdrop.api.v1.auth import router as auth_router
from milkdrop.api.v1.profile import router as profile_router
from milkdrop.api.v1.subscriptions import router as subscriptions_router
from milkdrop.api.v1.webhooks import router as webhooks_router
from milkdrop.config import settings

# Configure root logger so all milkdrop.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    yield
    # Shutdown: close the shared OTP store and dispose engine connections
    from milkdrop.auth.otp import RedisOTPStore, get_otp_store
    from milkdrop.database import engine

    store = get_otp_store()
    if isinstance(store, RedisOTPStore):
        await store.close()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Milk delivery subscriptions: plans, payments, pause and resume.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(subscriptions_router)
app.include_router(admin_router)
app.include_router(webhooks_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
