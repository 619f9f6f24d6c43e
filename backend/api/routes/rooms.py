# backend/api/routes/rooms.py

from fastapi import APIRouter, Depends, HTTPException

from core.state import ChatState, get_state
from models.models import CreateRoomRequest, User
from services.auth_service import get_current_user

router = APIRouter(prefix="/api/rooms", tags=["Rooms"])

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.get("")
async def list_rooms(
    current_user: User = Depends(get_current_user),
    chat: ChatState = Depends(get_state),
):
    """
    List all active rooms, newest first.

    Returns:
        list: Room objects with member ids and member counts
    """
    return [room.to_wire() for room in await chat.room_manager.list_rooms()]


@router.post("")
async def create_room(
    request: CreateRoomRequest,
    current_user: User = Depends(get_current_user),
    chat: ChatState = Depends(get_state),
):
    """
    Create a new chatroom. The creator becomes its first member.

    Raises:
        HTTPException: 400 if name is empty
    """
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="Room name required")

    room = await chat.room_manager.create_room(
        name=request.name.strip(),
        description=request.description or "",
        created_by=current_user.id,
    )
    return room.to_wire()


@router.get("/{room_id}")
async def get_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    chat: ChatState = Depends(get_state),
):
    """Get details of a specific room. 404 if it does not exist."""
    room = await chat.room_manager.get_room(room_id)
    return room.to_wire()


@router.get("/{room_id}/messages")
async def list_messages(
    room_id: str,
    current_user: User = Depends(get_current_user),
    chat: ChatState = Depends(get_state),
):
    """
    Most recent messages of a room (up to MESSAGE_HISTORY_LIMIT), oldest first.

    Raises:
        404 if the room does not exist, 403 if the caller is not a member
    """
    messages = await chat.messages.history(room_id, current_user.id)
    return [message.to_wire() for message in messages]


@router.post("/{room_id}/join")
async def join_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    chat: ChatState = Depends(get_state),
):
    """Join a room. Joining a room twice is harmless."""
    room = await chat.room_manager.join(room_id, current_user.id)
    return {"message": "Joined room successfully", "room": room.to_wire()}


@router.post("/{room_id}/leave")
async def leave_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    chat: ChatState = Depends(get_state),
):
    """
    Leave a room.

    Side Effects:
        A non-default room left with no members is deleted together with
        all of its messages; ``roomDeleted`` reports whether that happened.
    """
    deleted = await chat.room_manager.leave(room_id, current_user.id)
    if deleted:
        return {
            "message": "Left room successfully and room was deleted (empty)",
            "roomDeleted": True,
            "room": None,
        }

    room = await chat.store.get_room(room_id)
    return {
        "message": "Left room successfully",
        "roomDeleted": False,
        "room": room.to_wire() if room else None,
    }
