# backend/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Realtime Group Chat",
        "version": "1.0",
        "features": ["rooms", "presence", "typing_indicators", "image_messages"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/api/rooms",
            "upload": "/api/upload",
            "auth": "/auth/google",
            "health": "/health",
        },
    }
