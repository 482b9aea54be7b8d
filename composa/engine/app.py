import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.routing import APIRouter
from loguru import logger

from composa.engine.db.engine import create_engine, create_session_factory
from composa.engine.errors import EngineError, ErrorKind
from composa.engine.log import request_context, setup_logging
from composa.engine.services import build_engine
from composa.engine.settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Composa starting (host={}, port={}, store={})", settings.host, settings.port, settings.store)

    _app.state.db_engine = None
    _app.state.engine = None

    # -- Database --------------------------------------------------------------
    session_factory = None
    if settings.store == "sql":
        db_engine = create_engine(settings)
        _app.state.db_engine = db_engine
        session_factory = create_session_factory(db_engine)
        logger.info(
            "PostgreSQL: connected (pool_size={}, max_overflow={})", settings.db_pool_size, settings.db_max_overflow
        )

    _app.state.engine = build_engine(settings, session_factory)
    logger.info("Engine: initialised")

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("Composa shutting down")
    if _app.state.db_engine is not None:
        await _app.state.db_engine.dispose()
        logger.info("PostgreSQL: disposed")


app = FastAPI(title="Composa", lifespan=lifespan)


@app.exception_handler(EngineError)
async def engine_error_handler(_request: Request, exc: EngineError) -> JSONResponse:
    if exc.kind == ErrorKind.DB_ERROR:
        logger.error("Request failed: {}", exc.message)
    return JSONResponse(status_code=exc.status_code, content={"code": exc.kind.value, "message": exc.message})


@app.middleware("http")
async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind request id and principal to every log record of the request; echo the id back."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    with request_context(request_id, request.headers.get("X-Principal-Id")):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("{} {} -> {} ({:.1f} ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from composa.engine.routers.modules import router as modules_router  # noqa: E402
from composa.engine.routers.object_types import router as object_types_router  # noqa: E402
from composa.engine.routers.objects import router as objects_router  # noqa: E402
from composa.engine.routers.reports import router as reports_router  # noqa: E402
from composa.engine.routers.views import router as views_router  # noqa: E402

api.include_router(modules_router)
api.include_router(object_types_router)
api.include_router(objects_router)
api.include_router(views_router)
api.include_router(reports_router)

app.include_router(api)
