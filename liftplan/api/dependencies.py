"""Request-scoped dependencies shared by the API routes."""

from fastapi import Request

from liftplan.config import EngineConfig


def get_engine_config(request: Request) -> EngineConfig:
    """The engine configuration the running app was built with."""
    return request.app.state.engine_config
