"""Command-line entrypoint: run the pipeline behind the local monitor API."""

import logging

import uvicorn

from gallevr_sync.api.app import create_app
from gallevr_sync.app_logging import configure_logging
from gallevr_sync.config import Settings
from gallevr_sync.containers import build_container


def main() -> None:
    configure_logging()
    settings = Settings()
    container = build_container(settings)
    logging.getLogger(__name__).info(
        "GalleVR sync watching %s", container.photos_directory
    )
    uvicorn.run(
        create_app(container),
        host=settings.monitor_host,
        port=settings.monitor_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
