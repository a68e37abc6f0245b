import os

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from .config import settings
from .db import Base, engine, get_db
from .errors import SchedulingError
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  (registers tables on Base.metadata)
from .routes.schedule import router as schedule_router
from .routes.resources import router as resources_router
from .routes.organization import router as organization_router

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                status=exc.status_code,
                error_type=type(exc).__name__,
                error=exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Routers
    app.include_router(schedule_router)
    app.include_router(resources_router)
    app.include_router(organization_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        db.execute(text("SELECT 1"))
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", app=settings.app_name, environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                logger.info("creating_tables", tables=sorted(missing))
                Base.metadata.create_all(bind=engine)

    return app


app = create_app()


def run() -> None:
    uvicorn.run("crewplan.main:app", host=settings.host, port=settings.port)
