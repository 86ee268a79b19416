"""
chatview: a live, paginated, optimistically-updated chat session view-model
for AI character companions.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .config import SessionConfig
from .errors import (
    AlreadyInProgress,
    ChatViewError,
    RemoteRejected,
    RemoteUnavailable,
    SessionClosed,
    StoreError,
    TeardownRace,
)
from .session import ChatSession, FeedSnapshot, SessionListener
from .store import Character, Chat, Message, MessageStore, create_message_store

__all__ = [
    "AlreadyInProgress",
    "Character",
    "Chat",
    "ChatSession",
    "ChatViewError",
    "FeedSnapshot",
    "Message",
    "MessageStore",
    "RemoteRejected",
    "RemoteUnavailable",
    "SessionClosed",
    "SessionConfig",
    "SessionListener",
    "StoreError",
    "TeardownRace",
    "create_message_store",
]
