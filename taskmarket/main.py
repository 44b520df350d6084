import os
import subprocess
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskmarket.api.admin.router import router as admin_router
from taskmarket.config.logger import app_logger
from taskmarket.config.settings import Settings, settings
from taskmarket.db.db import Database
from taskmarket.middleware.request_logging import RequestLoggingMiddleware
from taskmarket.services.admin_service import SupabaseAdminService
from taskmarket.services.registry import ServiceContext
from taskmarket.utils.audit import AuditWriter, SQLAuditStore
from taskmarket.utils.errors import register_exception_handlers


_git_sha_cache: Optional[str] = None


def get_git_sha() -> str:
    """Get the current Git commit SHA (cached to avoid blocking)."""
    global _git_sha_cache
    if _git_sha_cache is not None:
        return _git_sha_cache

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0
        )
        _git_sha_cache = result.stdout.strip()[:8]
        return _git_sha_cache
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        _git_sha_cache = "local-dev"
        return _git_sha_cache


def build_services(config: Settings = settings) -> ServiceContext:
    """Register the default services in dependency order."""
    services = ServiceContext()

    audit_store = None
    if config.AUDIT_PERSISTENCE == "database":
        audit_store = services.register("audit_store", SQLAuditStore(Database(config.effective_database_url)))

    services.register(
        "audit",
        AuditWriter(
            store=audit_store,
            max_queue_size=config.AUDIT_QUEUE_SIZE,
            shutdown_timeout=config.AUDIT_SHUTDOWN_TIMEOUT,
        ),
    )
    services.register("admin", SupabaseAdminService())
    return services


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the registered services and tear them down on shutdown."""
    app_logger.info(f"{settings.APP_NAME} starting up")
    app_logger.info(f"Audit persistence: {settings.AUDIT_PERSISTENCE}")

    await app.state.services.initialize()
    app_logger.info("Application initialized successfully")

    yield

    app_logger.info(f"{settings.APP_NAME} shutting down")
    await app.state.services.cleanup()
    app_logger.info("Application shutdown complete")


def create_app(services: Optional[ServiceContext] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        servers=[
            {
                "url": "http://localhost:8000",
                "description": "Development server",
            },
        ],
        lifespan=lifespan,
    )
    app.state.services = services if services is not None else build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added last so it wraps CORS and sees every request first
    app.add_middleware(
        RequestLoggingMiddleware,
        trust_request_id_header=settings.TRUST_REQUEST_ID_HEADER,
        exclude_paths=settings.LOG_EXCLUDE_PATHS,
    )

    register_exception_handlers(app)

    @app.get("/", tags=["health"])
    async def root():
        """Root endpoint with basic API information."""
        app_logger.info("Root endpoint accessed")
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "status": "operational",
            "docs": "/docs",
            "redoc": "/redoc"
        }

    @app.get("/status", tags=["health"])
    async def status():
        """Status endpoint with build information for CI/CD monitoring."""
        app_logger.info("Status endpoint accessed")

        # Get build information from environment variables (CI-injected)
        build_number = os.getenv("BUILD_NUMBER", "local-dev")
        git_sha = os.getenv("GIT_SHA", os.getenv("GITHUB_SHA", get_git_sha()))
        environment = os.getenv("ENVIRONMENT", os.getenv("ENV", "development"))

        return {
            "status": "ok",
            "build": build_number,
            "sha": git_sha,
            "env": environment
        }

    @app.get("/health/services", tags=["health"])
    async def health_services():
        """Health of every registered service; 503 when any of them is down."""
        report = await app.state.services.health_check()
        if not all(report.values()):
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "services": report}
            )
        return {"status": "ok", "services": report}

    app.include_router(admin_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    app_logger.info(f"Starting {settings.APP_NAME} server")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_config=None  # Use our custom logger
    )
