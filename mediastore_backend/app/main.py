# mediastore_backend/app/main.py
from __future__ import annotations

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .routers import files as files_router
from .routers import health as health_router
from .storage import MediaStorage

logger = logging.getLogger("mediastore.main")
logger.setLevel(logging.INFO)

app = FastAPI(title="Media Storage API", version="0.1.0")

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- basic alive probe that does NOT touch the storage root ---
@app.get("/health/bootcheck")
def bootcheck():
    return {"status": "starting-ok"}

# include routers
app.include_router(files_router.router)
app.include_router(health_router.router)

# lifecycle hooks
@app.on_event("startup")
async def on_startup():
    logger.info(">>>> FASTAPI STARTUP BEGIN")
    # a storage root we cannot create is fatal: the exception aborts startup
    app.state.storage = MediaStorage(settings.UPLOAD_DIR)
    logger.info(">>>> FASTAPI STARTUP COMPLETE (storage root %s)", app.state.storage.root)

@app.on_event("shutdown")
async def on_shutdown():
    logger.info(">>>> FASTAPI SHUTDOWN")
