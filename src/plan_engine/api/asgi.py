"""ASGI entrypoint for the plan engine API."""

from plan_engine.api.app import create_app
from plan_engine.containers import build_container

app = create_app(build_container())
