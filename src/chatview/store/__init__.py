"""Message store adapter for chatview.

Hides where chat records live and how they change remotely.
"""

from .base import MessageStore
from .factory import create_message_store
from .local import LocalMessageStore, Subscription
from .models import Character, Chat, Confirmation, Message, Page, Reaction, Story
from .responder import Responder, ScriptedResponder

__all__ = [
    "Character",
    "Chat",
    "Confirmation",
    "LocalMessageStore",
    "Message",
    "MessageStore",
    "Page",
    "Reaction",
    "Responder",
    "ScriptedResponder",
    "Story",
    "Subscription",
    "create_message_store",
]
