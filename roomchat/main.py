import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from roomchat.core.config import settings
from roomchat.core.error_handler import (
    custom_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from roomchat.core.exceptions import BaseAPIException
from roomchat.core.log_config import logger, setup_logging

from roomchat.api.auth import router as auth_router
from roomchat.api.rooms import router as room_router
from roomchat.api.messages import router as message_router
from roomchat.api.users import router as user_router
from roomchat.api.websocket import router as websocket_router
from roomchat.globals import websocket_manager
from roomchat.database.postgres import async_session, initialize_db
from roomchat.services.room_service import RoomService
from roomchat.utils.file_storage import UPLOAD_URL_PREFIX
from roomchat.utils.timing_middleware import TimingMiddleware

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await initialize_db()
    async with async_session() as db:
        await RoomService(db).ensure_general_room()
    await websocket_manager.init_redis()
    logger.info(f"roomchat {settings.app_version} started ({settings.environment})")
    yield
    await websocket_manager.close()

app = FastAPI(title="roomchat", version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(BaseAPIException, custom_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)
app.add_middleware(TimingMiddleware)

os.makedirs(settings.upload_dir, exist_ok=True)
app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=settings.upload_dir), name="uploads")

app.include_router(auth_router)
app.include_router(room_router)
app.include_router(message_router)
app.include_router(user_router)
app.include_router(websocket_router)


@app.get("/health", tags=["meta"])
async def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "environment": settings.environment,
        "version": settings.app_version,
    }


@app.get("/api/status", tags=["meta"])
async def api_status():
    return {
        "message": "Chat API is running",
        "version": settings.app_version,
        "endpoints": {
            "auth": "/api/auth",
            "rooms": "/api/rooms",
            "messages": "/api/messages",
            "users": "/api/users",
            "websocket": "/ws",
        },
    }
