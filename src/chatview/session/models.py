"""Data models for the chat session view-model.

Hides the representation of in-flight local state: optimistic entries,
the displayed feed and playback.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from itertools import count
from typing import Literal

from ..store.models import Message, utcnow

_submission_counter = count()


class PendingKind(str, Enum):
    """Kind of a local, not yet confirmed mutation."""

    SEND = "pending-send"
    REGENERATE = "pending-regenerate"
    REACTION = "pending-reaction"
    TRANSLATE = "pending-translate"
    SPEECH = "pending-speech"


# At most one outstanding entry of these kinds per message
EXCLUSIVE_KINDS = frozenset({PendingKind.REGENERATE, PendingKind.TRANSLATE, PendingKind.SPEECH})


class EntryState(str, Enum):
    """Lifecycle of an optimistic entry: pending -> confirmed | rejected."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass
class OptimisticEntry:
    """A mutation the user issued that the store has not confirmed yet.

    ``preview`` is the provisional record shown in the feed for sends and
    the overlay applied to ``target_id`` for per-message kinds.
    """

    correlation_id: str
    kind: PendingKind
    chat_id: str
    target_id: str | None = None
    preview: Message | None = None
    state: EntryState = EntryState.PENDING
    sequence: int = field(default_factory=lambda: next(_submission_counter))
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return self.state is EntryState.PENDING


@dataclass(frozen=True)
class FeedItem:
    """One row of the displayed feed."""

    message: Message
    optimistic: bool = False
    pending: frozenset[PendingKind] = frozenset()

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def is_generating(self) -> bool:
        return self.message.is_generating

    @property
    def is_translating(self) -> bool:
        return PendingKind.TRANSLATE in self.pending

    @property
    def is_regenerating(self) -> bool:
        return PendingKind.REGENERATE in self.pending

    @property
    def is_synthesizing(self) -> bool:
        return PendingKind.SPEECH in self.pending


@dataclass(frozen=True)
class FeedSnapshot:
    """Immutable view of the feed handed to the rendering layer."""

    items: tuple[FeedItem, ...]
    version: int
    scroll_to_bottom: bool = False
    has_more: bool = False
    loading_older: bool = False

    def __len__(self) -> int:
        return len(self.items)

    @property
    def ids(self) -> list[str]:
        return [item.id for item in self.items]

    @property
    def is_generating(self) -> bool:
        return any(item.is_generating for item in self.items)


@dataclass(frozen=True)
class PlaybackState:
    """The single active audio stream of a chat."""

    chat_id: str
    message_id: str
    url: str


Severity = Literal["information", "warning", "error"]


@dataclass(frozen=True)
class Notification:
    """A transient message for the user, shown as a toast by the UI."""

    message: str
    severity: Severity = "information"
    timeout: float = 3.0
