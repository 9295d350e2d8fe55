"""FastAPI application exposing the Jobnick agent control surface."""

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from jobnick_agent import __version__
from jobnick_agent.api import routes as routes_module
from jobnick_agent.api.models import ErrorResponse
from jobnick_agent.api.routes import all_routers
from jobnick_agent.config import settings
from jobnick_agent.core.agent import JobnickAgent, create_jobnick_agent
from jobnick_agent.core.errors import JobnickError
from jobnick_agent.utils.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app_state: Dict[str, Any] = {}

AgentFactory = Callable[[], JobnickAgent]


def _lifespan(agent_factory: AgentFactory):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Jobnick Agent API", version=__version__)
        try:
            agent = agent_factory()
        except Exception as e:
            logger.error("Could not create agent", error=str(e))
            raise

        app_state["agent"] = agent
        routes_module.agent = agent
        try:
            yield
        finally:
            logger.info("Stopping Jobnick Agent API")
            try:
                await agent.shutdown()
            except JobnickError as e:
                logger.error("Agent shutdown failed", error=str(e))
            app_state.pop("agent", None)
            routes_module.agent = None

    return lifespan


def create_app(agent_factory: Optional[AgentFactory] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        agent_factory: Called once at startup; defaults to the Playwright and
            LangChain backed agent. Tests pass a factory returning a fake-backed agent.
    """
    app = FastAPI(
        title="Jobnick Agent API",
        description="Autonomous job search agent: plan, extract, screen and apply",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=_lifespan(agent_factory or create_jobnick_agent),
    )

    setup_middleware(app)
    setup_exception_handlers(app)

    for router in all_routers:
        app.include_router(router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "name": "Jobnick Agent API",
            "version": __version__,
            "status": "running",
            "docs": "/docs" if settings.debug else "disabled",
        }

    return app


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        started = time.perf_counter()
        log = logger.bind(request_id=request_id, method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            log.error("Request failed", error=str(e), duration_ms=round((time.perf_counter() - started) * 1000))
            raise

        response.headers["x-request-id"] = request_id
        log.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000),
        )
        return response


def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail, path=request.url.path)
    return _error_response(exc.status_code, "HTTPException", str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"loc": list(err.get("loc", [])), "msg": err.get("msg")} for err in exc.errors()]
    logger.warning("Validation error", errors=errors, path=request.url.path)
    return _error_response(422, "ValidationError", "Request validation failed", {"validation_errors": errors})


async def agent_exception_handler(request: Request, exc: JobnickError) -> JSONResponse:
    # Surface and completion failures are upstream problems, not client errors
    logger.error("Agent error", error=str(exc), error_type=type(exc).__name__, path=request.url.path)
    return _error_response(502, type(exc).__name__, str(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", error=str(exc), error_type=type(exc).__name__, path=request.url.path)
    details = {"error_type": type(exc).__name__} if settings.debug else None
    return _error_response(500, "InternalServerError", "An unexpected error occurred", details)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(JobnickError, agent_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jobnick_agent.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_config=None,
    )
