# backend/main.py

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from core.config import Settings, settings as default_settings
from core.errors import register_error_handlers
from core.logging import setup_logging, get_logger
from core.state import ChatState
from services.store import Store
from services import auth_service
from api.routes import root, health, rooms, uploads
from api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> FastAPI:
    """
    Build the application with its own state.

    Args:
        settings: Configuration (defaults to the environment-driven settings)
        store: Persistence backend (defaults to the one named by STORE_BACKEND)
    """
    settings = settings or default_settings

    app = FastAPI(title="Realtime Group Chat")
    app.state.chat = ChatState(settings, store=store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS + [settings.CLIENT_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(auth_service.router)
    app.include_router(rooms.router)
    app.include_router(uploads.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    # Uploaded images
    app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

    @app.on_event("startup")
    async def startup_event():
        logger.info("🚀 Application starting - store backend: %s", settings.STORE_BACKEND)
        await app.state.chat.startup()

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.chat.shutdown()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
