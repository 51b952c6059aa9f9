"""
Campus Handbook Backend - FastAPI Application Entry Point.

Feature-based modular architecture:
  Each feature in app/features/ has its own router, service, and schemas.
  Long-running work (handbook extraction, lease reclaim, campus content
  generation) runs in app/background/.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings

# ── Feature Routers ──────────────────────────────────────
from app.features.academic.router import router as academic_router
from app.features.handbooks.router import router as handbooks_router
from app.features.campus.router import router as campus_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup & shutdown."""
    settings = get_settings()
    print(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} starting...")
    print(f"🤖 LLM Provider: {settings.LLM_PROVIDER} ({settings.LLM_MODEL})")
    print(f"🔗 Supabase: {settings.SUPABASE_URL[:40]}...")

    if settings.BACKGROUND_JOBS_ENABLED:
        from app.background.scheduler import init_scheduler, shutdown_scheduler

        print(f"⚙️ Starting {settings.EXTRACTION_WORKER_COUNT} extraction worker(s)")
        init_scheduler()
        yield
        shutdown_scheduler()
    else:
        yield
    print("👋 Shutting down...")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Academic handbook extraction and campus content API",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Register Feature Routers ─────────────────────────
    app.include_router(academic_router, prefix="/api/academic", tags=["Academic"])
    app.include_router(handbooks_router, prefix="/api/handbooks", tags=["Handbooks"])
    app.include_router(campus_router, prefix="/api/campus", tags=["Campus"])

    # ── Health Check ─────────────────────────────────────
    @app.get("/health", tags=["System"])
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    return app


app = create_app()
