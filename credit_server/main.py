import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from credit_server import __version__
from credit_server.api import create_api_router
from credit_server.core.container import ApplicationContainer, get_container
from credit_server.core.exceptions import CreditEngineError, PersistenceError, UpstreamUnavailable
from credit_server.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container: ApplicationContainer = app.state.container
    configure_logging(container.settings)
    await container.init_infrastructure()
    if container.settings.scheduler.enabled:
        container.scheduler.start()
    yield
    await container.close()


async def credit_engine_error_handler(request: Request, exc: CreditEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("%s %s write rejected by the database: %s", request.method, request.url.path, exc.orig, exc_info=exc)
    error = PersistenceError("database rejected the write", path=request.url.path)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # 锁等待超时、连接池耗尽或连接断开，可重试
    cause = getattr(exc, "orig", None) or exc
    logger.error("%s %s database unavailable: %s", request.method, request.url.path, cause, exc_info=exc)
    error = UpstreamUnavailable("database unavailable", path=request.url.path)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "detail": "invalid request", "errors": jsonable_encoder(exc.errors())},
    )


def create_app(container: Optional[ApplicationContainer] = None) -> FastAPI:
    container = container or get_container()
    settings = container.settings
    app = FastAPI(
        title=settings.project_name,
        description="碳积分累计与结算服务",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CreditEngineError, credit_engine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(DBAPIError, database_error_handler)
    app.add_exception_handler(PoolTimeoutError, database_error_handler)

    app.include_router(create_api_router(settings.api_prefix))
    return app


def run() -> None:
    import uvicorn

    settings = get_container().settings
    uvicorn.run(
        "credit_server.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.server.reload,
    )


if __name__ == "__main__":
    run()
