from fastapi import Request

from .core.config import Settings, settings
from .storage import MediaStorage


def get_storage(request: Request) -> MediaStorage:
    """FastAPI dependency returning the storage created at startup."""
    return request.app.state.storage


def get_settings() -> Settings:
    return settings
