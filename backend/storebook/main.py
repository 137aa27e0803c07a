import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import http_exception_handler as default_http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .database import create_tables
from .routers import constraints, reservations
from .utils.request_id import REQUEST_ID_HEADER, resolve_request_id, set_request_id

settings = get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    if settings.auto_create_tables:
        await create_tables()
    yield


app = FastAPI(title="Store Reservation API", lifespan=lifespan)


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def flatten_http_exception(request: Request, exc: StarletteHTTPException) -> Response:
    """Serve ``{"error": ..., "message": ...}`` details as the response body itself."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return await default_http_exception_handler(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "missing_fields", "message": "request is missing or has malformed fields", "fields": fields},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "an unexpected error occurred"},
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.middleware("http")(request_id_middleware)
app.add_exception_handler(StarletteHTTPException, flatten_http_exception)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)
app.include_router(reservations.router)
app.include_router(constraints.router)
