# backend/models/models.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class WireModel(BaseModel):
    """Base for everything that crosses the wire: camelCase out, either case in."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# PERSISTED DOCUMENTS
# ============================================================================

class User(WireModel):
    id: str = Field(default_factory=new_id)
    google_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    avatar: Optional[str] = None
    is_online: bool = False
    last_seen: datetime = Field(default_factory=utcnow)


class Room(WireModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    is_default: bool = False
    is_active: bool = True
    created_by: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _dedupe_members(self) -> "Room":
        # Membership is a set; keep first-seen order for stable output.
        self.members = list(dict.fromkeys(self.members))
        return self

    @property
    def member_count(self) -> int:
        return len(self.members)

    def has_member(self, user_id: str) -> bool:
        return user_id in self.members

    def to_wire(self) -> dict:
        data = super().to_wire()
        data["memberCount"] = self.member_count
        return data


class ImageDescriptor(WireModel):
    filename: str
    original_name: str
    mimetype: str
    size: int
    url: str


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class Message(WireModel):
    id: str = Field(default_factory=new_id)
    content: Optional[str] = None
    user: str
    room: str
    image: Optional[ImageDescriptor] = None
    message_type: MessageType = MessageType.TEXT
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _content_or_image(self) -> "Message":
        if not self.content and self.image is None:
            raise ValueError("Message must have content or an image")
        return self


class Author(WireModel):
    id: str
    name: Optional[str] = None
    avatar: Optional[str] = None


class MessageOut(WireModel):
    """A message with its author resolved to display fields."""

    id: str
    content: Optional[str] = None
    user: Author
    room: str
    image: Optional[ImageDescriptor] = None
    message_type: MessageType
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_message(cls, message: Message, author: Optional[User]) -> "MessageOut":
        if author is None:
            resolved = Author(id=message.user)
        else:
            resolved = Author(id=author.id, name=author.name, avatar=author.avatar)
        data = message.model_dump(exclude={"user"})
        return cls(user=resolved, **data)


# ============================================================================
# INBOUND SOCKET PAYLOADS
# ============================================================================

class SendMessagePayload(WireModel):
    content: Optional[str] = None
    room_id: str
    user_id: str
    image: Optional[ImageDescriptor] = None


class TypingPayload(WireModel):
    room_id: str
    user_id: str
    username: Optional[str] = None


class StopTypingPayload(WireModel):
    room_id: str
    user_id: str


# ============================================================================
# HTTP REQUEST BODIES
# ============================================================================

class CreateRoomRequest(BaseModel):
    name: str
    description: Optional[str] = ""
