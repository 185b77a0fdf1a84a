"""
FastAPI application entry point.

Run with: uvicorn superhuman.main:app
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from superhuman.config import get_settings
from superhuman.routes import ai, auth, health, mail, user
from superhuman.services.ai_service import ImportanceCache
from superhuman.services.session_cache import SessionCache, SessionSweeper
from superhuman.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the idle-session sweep for the lifetime of the server."""
    sweeper = SessionSweeper(app.state.session_cache)
    sweeper.start()
    try:
        yield
    finally:
        await sweeper.stop()
        logger.info("Session sweeper stopped")


def create_app(session_cache: SessionCache = None) -> FastAPI:
    """
    Build the application.

    Args:
        session_cache: Gmail client cache to use; a fresh one by default
    """
    settings = get_settings()

    app = FastAPI(
        title="Superhuman++",
        description="AI-assisted Gmail client backend",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.session_cache = session_cache if session_cache is not None else SessionCache()
    app.state.importance_cache = ImportanceCache()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
    app.include_router(user.router, prefix="/api", tags=["User"])
    app.include_router(mail.router, prefix="/api/mail", tags=["Mail"])
    app.include_router(ai.router, prefix="/api/ai", tags=["AI"])

    @app.get("/")
    async def root():
        """Root endpoint - points at the docs."""
        return {
            "message": "Superhuman++ API",
            "docs": "/docs",
            "health": "/api/health",
        }

    return app


setup_logging()
app = create_app()
