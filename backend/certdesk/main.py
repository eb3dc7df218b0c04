"""certdesk — FastAPI application factory.

Run with:  uvicorn certdesk.main:create_app --factory
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from certdesk.config import Settings, settings as default_settings
from certdesk.database import build_engine, build_session_factory, init_db
from certdesk.errors import ServiceError, validation_error
from certdesk.middleware.rate_limit import limiter
from certdesk.routers import audit, auth, users
from certdesk.routers.lookups import certificates_lookup_router, students_lookup_router
from certdesk.routers.records import certificates_router, schools_router, students_router
from certdesk.services.audit_service import AuditRecorder
from certdesk.services.user_service import ensure_super_user

logger = logging.getLogger("certdesk")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.error.http_status, content=jsonable_encoder(exc.error.to_dict()))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in e["loc"] if p != "body"), "message": e["msg"]}
        for e in exc.errors()
    ]
    error = validation_error(errors)
    return JSONResponse(status_code=error.http_status, content=jsonable_encoder(error.to_dict()))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    session_factory = build_session_factory(engine)

    app = FastAPI(
        title="certdesk",
        description="Back-office API for school leaving certificates.",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.recorder = AuditRecorder(session_factory)

    # Rate limiting
    limiter.enabled = settings.RATE_LIMIT_ENABLED
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # CORS
    cors_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(schools_router)
    app.include_router(students_lookup_router)
    app.include_router(students_router)
    app.include_router(certificates_lookup_router)
    app.include_router(certificates_router)
    app.include_router(audit.router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    if ensure_super_user(session_factory, settings.BOOTSTRAP_SUPER_USERNAME, settings.BOOTSTRAP_SUPER_PASSWORD):
        logger.info("Bootstrap super account %s is available", settings.BOOTSTRAP_SUPER_USERNAME)

    logger.info("certdesk started (database: %s)", engine.url.render_as_string(hide_password=True))
    return app
