"""Data models for the message store layer.

These models describe records as the remote store owns them,
independent of the backend that persists them.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Create an opaque record identifier."""
    return f"{prefix}_{uuid4().hex[:12]}"


class Reaction(str, Enum):
    """Reaction a user can leave on a character message."""

    LIKE = "like"
    DISLIKE = "dislike"


class Message(BaseModel):
    """A single chat message as stored remotely.

    An empty ``text`` means the reply is still being generated; it is
    never a legitimate empty message.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("msg"))
    chat_id: str
    character_id: str | None = Field(
        default=None,
        description="Authoring character; None means the human user wrote it"
    )
    text: str = ""
    translation: str | None = None
    reaction: Reaction | None = None
    speech_url: str | None = None
    order: int = Field(ge=0, description="Creation order key, monotonic within a chat")
    revision: int = Field(default=0, ge=0, description="Bumped on every change to the record")
    created_at: datetime = Field(default_factory=utcnow)
    correlation_id: str | None = Field(
        default=None,
        description="Last client correlation id applied to this record"
    )
    deleted: bool = Field(default=False, description="Tombstone for removed rows")

    @property
    def is_from_user(self) -> bool:
        return self.character_id is None

    @property
    def is_generating(self) -> bool:
        return self.text == "" and not self.deleted

    @property
    def speech_text(self) -> str:
        """Text that speech synthesis should read out."""
        return self.translation or self.text

    @field_serializer("created_at")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime to ISO format."""
        return value.isoformat()


class Chat(BaseModel):
    """A conversation between one user and one character."""

    id: str = Field(default_factory=lambda: new_id("chat"))
    user_id: str
    character_id: str
    is_public: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Character(BaseModel):
    """An AI companion users can chat with."""

    id: str = Field(default_factory=lambda: new_id("char"))
    name: str
    description: str = ""
    greetings: list[str] = Field(default_factory=list)
    model: str = Field(default="default", description="Model that voices the character")
    voice_id: str = "alloy"
    card_image_url: str | None = None
    num_chats: int = Field(default=0, ge=0)
    score: float = 0.0


class Story(BaseModel):
    """A shareable snapshot of part of a chat."""

    id: str = Field(default_factory=lambda: new_id("story"))
    character_id: str
    user_id: str
    message_ids: list[str]
    created_at: datetime = Field(default_factory=utcnow)


class Page(BaseModel):
    """One page of messages, ascending by ``order``."""

    messages: list[Message] = Field(default_factory=list)
    next_cursor: str | None = Field(
        default=None,
        description="Opaque token for the next older page"
    )
    has_more: bool = False


class Confirmation(BaseModel):
    """Result of a successful mutation."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str
    message: Message
