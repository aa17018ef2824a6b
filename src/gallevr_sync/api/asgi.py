"""ASGI entrypoint for the monitor API."""

from gallevr_sync.api.app import create_app
from gallevr_sync.containers import build_container

app = create_app(build_container())
