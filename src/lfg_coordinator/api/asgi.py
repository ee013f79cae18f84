"""ASGI entrypoint for the LFG coordinator API."""

from lfg_coordinator.api.app import create_app
from lfg_coordinator.containers import build_container

app = create_app(build_container())
