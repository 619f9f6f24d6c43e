# backend/api/websocket.py

from __future__ import annotations

import json

import pydantic
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.logging import get_logger
from core.state import ChatState, get_ws_state
from models.models import StopTypingPayload, TypingPayload
from services.connection_manager import Connection

logger = get_logger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time chat events.

    Protocol:
    =========
    Every frame is a JSON object {"event": "<name>", "data": <payload>}.

    Client -> Server Events:
    ------------------------
    user-connected   data: "<userId>"
    join-room        data: "<roomId>"
    leave-room       data: "<roomId>"
    send-message     data: {"content": "...", "roomId": "...", "userId": "...", "image": {...}?}
    typing           data: {"roomId": "...", "userId": "...", "username": "..."}
    stop-typing      data: {"roomId": "...", "userId": "..."}

    Server -> Client Events:
    ------------------------
    new-message          the persisted message with its author's name and avatar
    user-status-changed  {"userId": "...", "isOnline": true|false}
    user-typing          {"userId": "...", "username": "..."}
    user-stop-typing     {"userId": "..."}
    message-error        {"error": "..."}   (sender only)
    error                {"message": "..."} (invalid JSON / unknown event, sender only)

    Lifecycle:
    ==========
    1. Connection accepted and registered under a fresh connection id
    2. Client identifies itself with "user-connected" (presence goes online)
    3. Client subscribes to the rooms it wants to receive with "join-room"
    4. On disconnect: presence goes offline and all subscriptions are dropped

    Frames from one connection are handled one at a time, in arrival order.
    """
    chat = get_ws_state(websocket)
    await websocket.accept()
    connection = Connection(websocket)
    chat.connection_manager.register(connection)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                await connection.send("error", {"message": "Invalid JSON"})
                continue

            if not isinstance(frame, dict):
                await connection.send("error", {"message": "Invalid frame"})
                continue

            await dispatch(chat, connection, frame.get("event"), frame.get("data"))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection.id, e)
    finally:
        chat.connection_manager.unregister(connection.id)
        await chat.presence.on_disconnect(connection.id)


async def dispatch(chat: ChatState, connection: Connection, event, data) -> None:
    """Route one inbound event to the component that owns it."""
    logger.debug("Websocket input on %s: event=%s", connection.id, event)

    if event == "user-connected":
        if isinstance(data, str) and data:
            await chat.presence.on_connect(connection.id, data)
        else:
            await connection.send("error", {"message": "user-connected requires a user id"})

    elif event == "join-room":
        if isinstance(data, str) and data:
            chat.connection_manager.subscribe(connection.id, data)

    elif event == "leave-room":
        if isinstance(data, str) and data:
            chat.connection_manager.unsubscribe(connection.id, data)

    elif event == "send-message":
        await chat.messages.ingest(connection.id, data)

    elif event == "typing":
        try:
            await chat.typing.typing(connection.id, TypingPayload.model_validate(data))
        except pydantic.ValidationError:
            await connection.send("error", {"message": "Invalid typing payload"})

    elif event == "stop-typing":
        try:
            await chat.typing.stop_typing(connection.id, StopTypingPayload.model_validate(data))
        except pydantic.ValidationError:
            await connection.send("error", {"message": "Invalid stop-typing payload"})

    else:
        await connection.send("error", {"message": f"Unknown event: {event}"})
