"""FastAPI application for schemax."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.deps import get_storage, registry, set_config, set_db_path
from api.routes import router
from db.storage import StorageError

logger = logging.getLogger(__name__)


def create_app(db_path: str, config: dict[str, Any] | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Path to the SQLite database.
        config: Full schemax config dict. Supplies the default database
                type and the editor quiet window.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await get_storage().migrate()
        yield
        registry.clear()

    set_db_path(db_path)
    set_config(config)

    app = FastAPI(title="schemax", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": f"Storage error: {exc}"})

    app.include_router(router)

    return app
