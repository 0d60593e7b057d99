import logging
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tidesk.api.access_profiles import router as access_profiles_router
from tidesk.api.auth import router as auth_router
from tidesk.api.forms import router as forms_router
from tidesk.api.tickets import router as tickets_router
from tidesk.core.config import get_settings
from tidesk.core.database import check_database_ready, initialize_database
from tidesk.core.exceptions import BusinessLogicError
from tidesk.core.jobs import PeriodicJob
from tidesk.core.logging import setup_logging
from tidesk.core.permissions import permission_resolver
from tidesk.services.ticket import run_closed_ticket_sweep

logger = logging.getLogger(__name__)
settings = get_settings()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    setup_logging(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO), log_file=settings.LOG_FILE)

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
        ## TIDESK - Helpdesk API

        ### Authentication
        Endpoints require a JWT bearer token (or the `access_token` cookie). Use
        `/api/auth/login` to obtain one.

        ### Authorization
        Access is granted per `resource:action` through access profiles. Users with
        the `admin` role hold every permission.

        ### Ticket identifiers
        Tickets are addressed by their composite identifier `YYYYMMDDNNN` (civil
        creation date plus daily number) or by their internal id.
        """,
        version="2.0.0",
        openapi_tags=[
            {"name": "auth", "description": "Registration, login and current user"},
            {"name": "access-profiles", "description": "Access profiles, grants and membership"},
            {"name": "tickets", "description": "Tickets and their lifecycle"},
            {"name": "forms", "description": "Forms and public submissions"},
            {"name": "infra", "description": "Health check endpoints"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS or ["http://localhost:3333"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(access_profiles_router)
    app.include_router(tickets_router)
    app.include_router(forms_router)

    @app.get("/api/health", tags=["infra"])
    async def health():
        return {"status": "ok", "env": settings.ENV}

    @app.get("/api/health/db", tags=["infra"])
    async def health_db():
        ready = await check_database_ready()
        return JSONResponse(status_code=200 if ready else 503, content={"ready": ready})

    @app.exception_handler(BusinessLogicError)
    async def business_exception_handler(request: Request, exc: BusinessLogicError):
        if exc.status_code >= 500:
            logger.error("%s at %s %s: %s", exc.error_type, request.method, request.url.path, exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": {"message": exc.message, "type": exc.error_type, **exc.details}},
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            logger.error("HTTP %s at %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "path": request.url.path},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception", extra={"method": request.method, "path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "path": request.url.path},
        )

    # Startup initializers (migrations, seed, background jobs)
    @app.on_event("startup")
    async def startup_event():
        await initialize_database()
        app.state.jobs = [
            PeriodicJob(
                "permission-cache-sweep",
                settings.PERMISSION_CACHE_SWEEP_SECONDS,
                permission_resolver.sweep_expired,
            ),
            PeriodicJob(
                "closed-ticket-sweep",
                settings.CLOSED_TICKET_SWEEP_SECONDS,
                run_closed_ticket_sweep,
                run_immediately=True,
            ),
        ]
        for job in app.state.jobs:
            job.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        for job in getattr(app.state, "jobs", []):
            await job.stop()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("tidesk.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=True)
