"""Abstract base class for message stores.

This module defines the capability interface the chat session depends on.
The abstraction hides:
- Where messages live (remote service, SQLite, memory)
- How new messages are pushed to subscribers
- How replies, translations and speech are produced
- How in-app currency is charged

Implementations never retry. Failures surface as ``RemoteRejected`` or
``RemoteUnavailable`` exactly as they happened.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from .models import Character, Chat, Confirmation, Message, Page, Reaction


class MessageStore(ABC):
    """Abstract message store.

    Supports async context manager protocol:
        async with store:
            page = await store.load_older_page(chat_id, None, 5)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release connections and stop background work."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    async def load_older_page(
        self,
        chat_id: str,
        cursor: str | None,
        limit: int
    ) -> Page:
        """Load messages older than ``cursor``.

        Args:
            chat_id: Chat to read
            cursor: Boundary returned by a previous page, None for the newest page
            limit: Maximum number of messages

        Returns:
            Page with messages ascending by order

        Raises:
            RemoteRejected: If the chat does not exist
            RemoteUnavailable: If the store cannot be reached
        """

    @abstractmethod
    def subscribe_new(self, chat_id: str) -> AsyncIterator[Message]:
        """Subscribe to new and updated messages of a chat.

        The returned iterator is lazy and never ends on its own. Records
        are delivered in arrival order. Closing the iterator (or cancelling
        the task that drives it) releases the subscription; calling this
        again starts a fresh one.
        """

    @abstractmethod
    async def get_chat(self, chat_id: str) -> Chat | None:
        """Get a chat by id."""

    @abstractmethod
    async def get_or_create_chat(
        self,
        user_id: str,
        character_id: str,
        is_public: bool = False
    ) -> Chat:
        """Return the user's chat with a character, creating it on first visit."""

    @abstractmethod
    async def get_character(self, character_id: str) -> Character | None:
        """Get a character by id."""

    @abstractmethod
    async def upsert_character(self, character: Character) -> Character:
        """Create or replace a character."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> int:
        """Current crystal balance of a user."""

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @abstractmethod
    async def send_message(
        self,
        chat_id: str,
        character_id: str,
        text: str,
        correlation_id: str
    ) -> Confirmation:
        """Append a user message and start the character's reply."""

    @abstractmethod
    async def react(
        self,
        message_id: str,
        reaction: Reaction,
        correlation_id: str
    ) -> Confirmation:
        """Set the reaction on a character message."""

    @abstractmethod
    async def regenerate(
        self,
        chat_id: str,
        character_id: str,
        message_id: str,
        correlation_id: str
    ) -> Confirmation:
        """Discard a character reply and generate it again."""

    @abstractmethod
    async def translate(
        self,
        message_id: str,
        target_language: str,
        correlation_id: str
    ) -> Confirmation:
        """Translate a message into ``target_language``.

        Raises:
            RemoteRejected: If the message already has a translation or the
                user cannot pay for it
        """

    @abstractmethod
    async def request_speech(
        self,
        message_id: str,
        character_id: str,
        text: str,
        correlation_id: str
    ) -> Confirmation:
        """Synthesize speech for a message and attach the audio url."""

    @abstractmethod
    async def create_story(self, character_id: str, message_ids: list[str]) -> str:
        """Publish the given messages as a story and return its id."""

    @abstractmethod
    async def remove_chat(self, chat_id: str) -> None:
        """Delete a chat and all its messages."""

    @abstractmethod
    async def autopilot(self, chat_id: str, character_id: str) -> Confirmation:
        """Let the character continue the conversation on its own."""

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @abstractmethod
    async def score_characters(self) -> int:
        """Recompute every character's score. Returns the number scored."""

    @abstractmethod
    async def remove_old_messages(self, before: datetime) -> int:
        """Delete messages created before ``before``. Returns the count."""

    @abstractmethod
    async def remove_old_stories(self, before: datetime) -> int:
        """Delete stories created before ``before``. Returns the count."""

    @abstractmethod
    async def remove_old_chats(self, before: datetime) -> int:
        """Delete chats idle since before ``before`` that have no messages left."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "MessageStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
