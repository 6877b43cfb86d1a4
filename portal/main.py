# portal/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from portal.api.v1.ai import router as ai_router
from portal.api.v1.auth import router as auth_router
from portal.api.v1.billing import router as billing_router
from portal.api.v1.companies import router as companies_router
from portal.api.v1.questions import router as questions_router
from portal.api.v1.scheduler import router as scheduler_router
from portal.api.v1.settings import router as settings_router
from portal.api.v1.tests import router as tests_router
from portal.api.v1.users import router as users_router
from portal.core.config import settings
from portal.core.errors import InternalError, PortalError, field_errors
from portal.core.logging_config import configure_logging
from portal.core.responses import error_response, success_response
from portal.db.mongo import close_db, init_db
from portal.services.uploads import UploadSweeper

logger = logging.getLogger(__name__)

app = FastAPI(title="Assessment Portal API")

for router in (auth_router, users_router, companies_router, questions_router, tests_router, billing_router,
               ai_router, scheduler_router, settings_router):
    app.include_router(router, prefix="/api/v1")

sweeper = UploadSweeper()


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_response(exc.message, exc.errors))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_response("Validation failed", field_errors(exc.errors())))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=error_response(message), headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    err = InternalError()
    return JSONResponse(status_code=err.status_code, content=error_response(err.message))


@app.get("/health")
async def health():
    return success_response("OK", {"status": "ok", "env": settings.APP_ENV})


@app.on_event("startup")
async def startup_event():
    configure_logging()
    await init_db()
    sweeper.start()


@app.on_event("shutdown")
async def shutdown_event():
    await sweeper.stop()
    close_db()
