"""
PolicyBot Backend - Main Application Entry Point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from policybot.core.config import settings
from policybot.core.langfuse_handler import flush_langfuse
from policybot.core.logging import logger
from policybot.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from policybot.api.routes import chat
from policybot.services.chat import get_oracle


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    # Startup: build the oracle client now so provider misconfiguration fails fast
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")
    get_oracle()
    yield
    # Shutdown
    flush_langfuse()
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.APP_NAME,
    description="Conversational vehicle insurance advisor",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# Include API Routers
app.include_router(chat.router, prefix="/chat", tags=["Chat"])


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "env": settings.APP_ENV,
    }
