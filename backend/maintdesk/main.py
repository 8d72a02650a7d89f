import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from maintdesk.core.config import settings
from maintdesk.core.errors import DomainError
from maintdesk.logging_config import configure_logging
from maintdesk.middleware.request_id import get_request_id, RequestIDMiddleware
import maintdesk.models  # noqa: F401  # force model registration

from maintdesk.api.v1.auth import router as auth_router
from maintdesk.api.v1.invitations import router as invitations_router
from maintdesk.api.v1.requests import router as requests_router
from maintdesk.api.v1.staff import managers_router, tenants_router, workers_router
from maintdesk.api.v1.properties import router as properties_router, units_router
from maintdesk.api.v1.organizations import router as organizations_router
from maintdesk.api.v1.subscription import router as subscription_router
from maintdesk.api.v1.notifications import router as notifications_router

log = logging.getLogger(__name__)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("internal error: %s", exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    rid = getattr(request.state, "request_id", None) or get_request_id()
    log.exception("unhandled error (request_id=%s)", rid, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "detail": {
                "error": "INTERNAL",
                "message": "Something went wrong",
                "request_id": rid,
            }
        },
    )


def create_application() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Maintdesk API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "maintdesk"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(invitations_router, prefix="/api/v1")
    app.include_router(requests_router, prefix="/api/v1")
    app.include_router(managers_router, prefix="/api/v1")
    app.include_router(workers_router, prefix="/api/v1")
    app.include_router(tenants_router, prefix="/api/v1")
    app.include_router(properties_router, prefix="/api/v1")
    app.include_router(units_router, prefix="/api/v1")
    app.include_router(organizations_router, prefix="/api/v1")
    app.include_router(subscription_router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    return app


app = create_application()
