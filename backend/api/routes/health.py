# backend/api/routes/health.py

from fastapi import APIRouter, Depends

from core.state import ChatState, get_state

router = APIRouter()

@router.get("/health")
async def health(chat: ChatState = Depends(get_state)):
    """
    Health check endpoint.

    Returns current system status, connection counts and how many rooms
    have live subscribers. Reports "degraded" while the store is still
    being connected.

    Returns:
        dict: Status, store readiness, connection count, online users, active rooms
    """
    return {
        "status": "healthy" if chat.store_ready else "degraded",
        "store_ready": chat.store_ready,
        "connections": len(chat.connection_manager.connections),
        "online_users": len(chat.presence.online_users()),
        "active_rooms_with_subscribers": len(chat.connection_manager.rooms),
    }
