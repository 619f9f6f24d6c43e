# backend/services/message_service.py

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

import pydantic

from core.errors import ChatError, NotFound, NotMember, PersistenceError, ValidationError
from core.logging import get_logger
from models.models import (
    Message,
    MessageOut,
    MessageType,
    SendMessagePayload,
    User,
    utcnow,
)
from services.connection_manager import ConnectionManager
from services.room_manager import RoomManager
from services.store import Store

logger = get_logger(__name__)

ROOM_NOT_FOUND = "Room not found"
NOT_A_MEMBER = "You must join the room to send messages"
INVALID_PAYLOAD = "Invalid message payload"
EMPTY_MESSAGE = "Message must have content or an image"
SEND_FAILED = "Failed to send message"


class MessageState(str, Enum):
    RECEIVED = "received"
    AUTHORIZED = "authorized"
    PERSISTED = "persisted"
    BROADCAST = "broadcast"
    REJECTED = "rejected"


class MessageRejected(ChatError):
    """Raised inside the pipeline; carries the reason sent back to the author."""


# ============================================================================
# MESSAGE INGEST PIPELINE
# ============================================================================

class MessageService:
    """
    Validates, persists and fans out chat messages.

    Flow:
        Received -> Authorized -> Persisted -> Broadcast
        Any failing step ends in Rejected, and the reason is sent to the
        originating connection only as ``message-error``.

    The server assigns ``created_at`` when the message is persisted, so
    ordering inside a room follows the server clock, not the client's.
    The ``new-message`` broadcast includes the sender's own connection.
    """

    def __init__(
        self,
        store: Store,
        room_manager: RoomManager,
        connection_manager: ConnectionManager,
        history_limit: int = 100,
    ) -> None:
        self.store = store
        self.room_manager = room_manager
        self.connection_manager = connection_manager
        self.history_limit = history_limit

    async def ingest(self, connection_id: str, raw: Any) -> Optional[MessageOut]:
        """
        Run one inbound ``send-message`` payload through the pipeline.

        Returns:
            The broadcast message, or None if it was rejected
        """
        state = MessageState.RECEIVED
        try:
            payload = self._parse(raw)

            await self._authorize(payload)
            state = self._advance(state, MessageState.AUTHORIZED, payload)

            message = await self._persist(payload)
            state = self._advance(state, MessageState.PERSISTED, payload)

            outgoing = await self._resolve_author(message)
            await self.connection_manager.broadcast(message.room, "new-message", outgoing.to_wire())
            self._advance(state, MessageState.BROADCAST, payload)
            return outgoing
        except MessageRejected as e:
            logger.info("✗ Message rejected in %s state: %s", state.value, e.message)
            await self.connection_manager.send(connection_id, "message-error", {"error": e.message})
            return None

    async def history(self, room_id: str, user_id: str, limit: Optional[int] = None) -> List[MessageOut]:
        """Most recent messages of a room, oldest first. Members only."""
        if not await self.room_manager.is_member(room_id, user_id):
            raise NotMember("You must join the room to view messages")

        messages = await self.store.list_messages(room_id, limit or self.history_limit)
        authors: dict[str, Optional[User]] = {}
        for message in messages:
            if message.user not in authors:
                authors[message.user] = await self.store.get_user(message.user)
        return [MessageOut.from_message(message, authors[message.user]) for message in messages]

    # -- pipeline steps -------------------------------------------------------

    @staticmethod
    def _advance(current: MessageState, new: MessageState, payload: SendMessagePayload) -> MessageState:
        logger.debug("Message from %s in %s: %s -> %s", payload.user_id, payload.room_id, current.value, new.value)
        return new

    @staticmethod
    def _parse(raw: Any) -> SendMessagePayload:
        try:
            return SendMessagePayload.model_validate(raw)
        except pydantic.ValidationError:
            raise MessageRejected(INVALID_PAYLOAD)

    async def _authorize(self, payload: SendMessagePayload) -> None:
        try:
            is_member = await self.room_manager.is_member(payload.room_id, payload.user_id)
        except NotFound:
            raise MessageRejected(ROOM_NOT_FOUND)
        except PersistenceError as e:
            logger.error("Error checking membership: %s", e)
            raise MessageRejected(SEND_FAILED)
        if not is_member:
            raise MessageRejected(NOT_A_MEMBER)

    async def _persist(self, payload: SendMessagePayload) -> Message:
        try:
            message = build_message(payload)
        except ValidationError as e:
            raise MessageRejected(e.message)

        try:
            return await self.store.add_message(message)
        except PersistenceError as e:
            logger.error("Error saving message: %s", e)
            raise MessageRejected(SEND_FAILED)

    async def _resolve_author(self, message: Message) -> MessageOut:
        try:
            author = await self.store.get_user(message.user)
        except PersistenceError as e:
            # The message is already stored; send it without display fields.
            logger.warning("Could not resolve author %s: %s", message.user, e)
            author = None
        return MessageOut.from_message(message, author)


def build_message(payload: SendMessagePayload) -> Message:
    """
    Construct a message with a server timestamp.

    Raises:
        ValidationError: when the message has neither content nor an image
    """
    now = utcnow()
    try:
        return Message(
            content=payload.content,
            user=payload.user_id,
            room=payload.room_id,
            image=payload.image,
            message_type=MessageType.IMAGE if payload.image else MessageType.TEXT,
            created_at=now,
            updated_at=now,
        )
    except pydantic.ValidationError:
        raise ValidationError(EMPTY_MESSAGE)
