"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from gallevr_sync.api.admin import router as admin_router
from gallevr_sync.app_logging import configure_logging
from gallevr_sync.containers import AppContainer
from gallevr_sync.domain.photos import PhotoRecord
from gallevr_sync.services.events import describe_event


def create_app(container: AppContainer, start_pipeline: bool = True) -> FastAPI:
    """Create a FastAPI app that runs the photo pipeline during its lifespan."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        if start_pipeline:
            try:
                await state_container.pipeline.start()
            except Exception:
                logger.exception("Failed to start photo pipeline")
        yield
        await state_container.pipeline.stop()
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/status")
    async def pipeline_status(request: Request) -> dict[str, object]:
        """Current session context and pipeline state."""
        state_container: AppContainer = request.app.state.container
        correlator = state_container.correlator
        snapshot = correlator.snapshot()
        log_file = correlator.current_log_file
        return {
            "pipeline_running": state_container.pipeline.running,
            "log_state": correlator.state.value,
            "log_file": str(log_file) if log_file else None,
            "world": snapshot.world.to_payload() if snapshot.world else None,
            "players": [player.to_payload() for player in snapshot.players],
            "pending_uploads": state_container.upload_queue.pending_count,
            "upload_enabled": state_container.settings.upload_enabled,
        }

    @app.get("/photos")
    async def list_photos(request: Request, limit: int = 50) -> dict[str, object]:
        """Most recent photos in the local library."""
        state_container: AppContainer = request.app.state.container
        records = state_container.library_service.recent(limit)
        return {"photos": [_photo_summary(record) for record in records]}

    @app.get("/uploads")
    async def list_uploads(request: Request) -> dict[str, object]:
        """Queued, in-flight and recently finished uploads."""
        state_container: AppContainer = request.app.state.container
        tasks = state_container.upload_queue.tasks()
        return {"uploads": [task.to_summary() for task in tasks]}

    @app.get("/events")
    async def recent_events(request: Request, limit: int = 50) -> dict[str, object]:
        state_container: AppContainer = request.app.state.container
        events = state_container.event_bus.recent(limit)
        return {"events": [describe_event(event) for event in events]}

    return app


def _photo_summary(record: PhotoRecord) -> dict[str, object]:
    summary = record.to_payload()
    summary["file_path"] = str(record.file_path)
    summary["gallery_url"] = record.gallery_url
    return summary
