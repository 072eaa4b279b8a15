import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Mount

from formflow.config import get_settings
from formflow.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageUnavailableError,
)
from formflow.mcp_server import mcp
from formflow.models.common import ErrorResponse
from formflow.routers.forms import router as forms_router
from formflow.routers.responses import router as responses_router

logger = logging.getLogger(__name__)


class LocalhostOnlyMiddleware(BaseHTTPMiddleware):
    """The MCP tools act for whoever holds a token, so they are only served to local agents."""

    async def dispatch(self, request: Request, call_next):
        client_host = request.client.host if request.client else None
        if client_host not in ("127.0.0.1", "::1", "localhost"):
            return JSONResponse(
                status_code=403,
                content=ErrorResponse(error_code="forbidden", message="Localhost access only").model_dump(),
            )
        return await call_next(request)


# --- FastAPI app ---

api = FastAPI(title="Formflow", version="0.1.0")
api.include_router(forms_router)
api.include_router(responses_router)


@api.get("/api/status")
def api_status() -> dict:
    settings = get_settings()
    return {"status": "ok", "analytics_cache": settings.analytics_cache}


# --- Exception handlers ---

@api.exception_handler(AuthenticationError)
async def auth_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content=ErrorResponse(error_code="auth_error", message=str(exc)).model_dump())


@api.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    return JSONResponse(status_code=403, content=ErrorResponse(error_code="access_denied", message=str(exc)).model_dump())


@api.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content=ErrorResponse(error_code="not_found", message=str(exc)).model_dump())


@api.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content=ErrorResponse(error_code="conflict", message=str(exc)).model_dump())


@api.exception_handler(StorageUnavailableError)
async def storage_error_handler(request: Request, exc: StorageUnavailableError):
    logger.error("Storage unavailable while handling %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content=ErrorResponse(error_code="storage_unavailable", message=str(exc)).model_dump())


# --- Starlette root app ---

mcp_app = mcp.http_app(path="/", stateless_http=True)

app = Starlette(
    routes=[
        Mount("/mcp", app=mcp_app, middleware=[Middleware(LocalhostOnlyMiddleware)]),
        Mount("/", app=api),
    ],
    lifespan=mcp_app.lifespan,
)


def run():
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "formflow.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
