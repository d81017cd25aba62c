from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ctpga_manager.activities.router import router as activities_router
from ctpga_manager.auth.router import router as auth_router, users_router
from ctpga_manager.base_service import base_service
from ctpga_manager.database import create_tables, get_engine
from ctpga_manager.errors import register_exception_handlers
from ctpga_manager.feedback.router import router as feedback_router

API_NAME = "CTPGA Manager API"
API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Creates missing tables on startup and disposes the engine on shutdown.
    """
    base_service.log_event("service.startup", {"service": "main"})
    try:
        await create_tables()
    except Exception as e:
        base_service.log_error(e, context="Table creation on startup")
        raise
    yield
    base_service.log_event("service.shutdown", {"service": "main"})
    await get_engine().dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_NAME,
        description="Activities, feedback, users and role-based access for CTPGA",
        version=API_VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(activities_router)
    app.include_router(feedback_router)

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint returning API information."""
        return {
            "name": API_NAME,
            "version": API_VERSION,
            "services": ["auth", "users", "activities", "feedback"]
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Overall system health check."""
        return {
            "status": "ok",
            "services": {
                "auth": "online",
                "users": "online",
                "activities": "online",
                "feedback": "online"
            }
        }

    return app


app = create_app()

# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("ctpga_manager.main:app", host="0.0.0.0", port=8000, reload=True)
