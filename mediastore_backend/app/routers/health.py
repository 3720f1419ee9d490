# mediastore_backend/app/routers/health.py
from __future__ import annotations

import os

from fastapi import APIRouter, Depends

from ..core.config import Settings
from ..deps import get_settings, get_storage
from ..storage import MediaStorage

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/")
def health(
    storage: MediaStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
):
    status = {
        "storage": "unknown",
        "storage_root": str(storage.root),
        "max_audio_upload_mb": app_settings.MAX_AUDIO_UPLOAD_MB,
        "max_image_upload_mb": app_settings.MAX_IMAGE_UPLOAD_MB,
    }

    root = storage.root
    if not root.is_dir():
        status["storage"] = "error: storage root is missing"
    elif not os.access(root, os.W_OK | os.X_OK):
        status["storage"] = "error: storage root is not writable"
    else:
        status["storage"] = "ok"

    return status
