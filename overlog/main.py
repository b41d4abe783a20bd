"""
overlog HTTP service.

`create_app` builds the FastAPI application; `app` is the instance uvicorn
serves (`overlog serve` or `uvicorn overlog.main:app`).
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from overlog import config
from overlog.api.series import folder_router, parse_router, router as series_router
from overlog.services.repository import get_repository, init_repository


logger = logging.getLogger(__name__)


VERSION = "0.1.0"


def _lifespan(data_folder: Optional[Path]):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config.configure_logging()
        logger.info(f"Starting overlog {VERSION}")

        if get_repository().data_folder is None:
            folder = data_folder or config.data_folder()
            if folder.is_dir():
                init_repository(folder)
            else:
                logger.info(f"No telemetry folder at {folder}; set one with POST /folder")

        yield

        logger.info("overlog stopped")

    return lifespan


def create_app(data_folder: Optional[Path] = None) -> FastAPI:
    """
    Build the service.

    The repository is pointed at `data_folder` (or $OVERLOG_DATA_FOLDER) on
    startup unless a folder is already set.
    """
    app = FastAPI(
        title="overlog",
        description="Normalizes GPX/CSV/JSON telemetry and samples it per video frame.",
        version=VERSION,
        lifespan=_lifespan(data_folder),
    )

    # Local tooling calls the service from any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(series_router)
    app.include_router(parse_router)
    app.include_router(folder_router)

    @app.get("/")
    async def root():
        return {"name": "overlog", "version": VERSION, "status": "running"}

    @app.get("/health")
    async def health_check():
        repo = get_repository()
        return {
            "status": "healthy",
            "data_folder": str(repo.data_folder) if repo.data_folder else None,
            "series_count": repo.series_count,
        }

    return app


app = create_app()
