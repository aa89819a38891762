"""
FastAPI entrypoint for the Short Video Maker API.

Jobs are accepted here and rendered by a single background worker. The CLI
in app.pipelines.cli drives the same queue without the HTTP layer.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes_videos import router as videos_router
from app.core.config import settings
from app.core.logging_config import get_logger, setup_logging
from app.services.job_queue import JobQueue
from app.services.music_library import MusicLibrary

# Setup logging
setup_logging(log_level=settings.log_level, log_file=settings.log_file)
logger = get_logger(__name__)


def create_app(job_queue: Optional[JobQueue] = None, music_library: Optional[MusicLibrary] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        job_queue: Queue to serve (default: created on startup from settings)
        music_library: Music library for the tags endpoint (default: from settings)

    Returns:
        FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        logger.info("=" * 60)
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Debug mode: {settings.debug}")
        logger.info(f"Data directory: {settings.data_dir_path}")
        logger.info("=" * 60)
        if app.state.job_queue is None:
            app.state.job_queue = JobQueue(settings, get_logger("app.services.job_queue"))
        if app.state.music_library is None:
            app.state.music_library = MusicLibrary(settings, get_logger("app.services.music_library"))
        yield
        # Shutdown
        logger.info("Shutting down application")
        app.state.job_queue.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Short Video Maker - renders narrated, captioned short videos from scene lists",
        lifespan=lifespan,
    )
    app.state.job_queue = job_queue
    app.state.music_library = music_library

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify allowed origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(videos_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "endpoints": {
                "create_video": "/api/short-video",
                "video_status": "/api/short-video/{videoId}/status",
                "download_video": "/api/short-video/{videoId}",
                "list_videos": "/api/short-videos",
                "music_tags": "/api/music-tags",
                "docs": "/docs",
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
