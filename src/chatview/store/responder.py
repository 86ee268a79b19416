"""Content generation used by the local store backends.

Hides how character replies, translations and speech assets are produced.
A hosted backend runs models for this; the local backends take any
``Responder`` and ship with a deterministic one.
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod

from .models import Character, Message


class Responder(ABC):
    """Produces the content a character chat needs."""

    @abstractmethod
    async def reply(self, character: Character, history: list[Message]) -> str:
        """Generate the character's next reply.

        Args:
            character: The speaking character
            history: Conversation so far, ascending, excluding the placeholder

        Returns:
            Non-empty reply text
        """

    @abstractmethod
    async def follow_up(self, character: Character, history: list[Message]) -> str:
        """Generate an unprompted continuation from the character."""

    @abstractmethod
    async def translate(self, text: str, target_language: str) -> str:
        """Translate text into the target language."""

    @abstractmethod
    async def synthesize(self, text: str, voice_id: str) -> str:
        """Synthesize speech and return the url of the audio asset."""


class ScriptedResponder(Responder):
    """Deterministic responder for local use and tests.

    Replies quote the last user message, translations are tagged with the
    language, and speech urls are derived from a hash of the text.
    """

    def __init__(self, delay: float = 0.0, asset_base_url: str = "file:///tmp/chatview-speech"):
        self._delay = delay
        self._asset_base_url = asset_base_url.rstrip("/")

    async def _pause(self) -> None:
        if self._delay > 0:
            await asyncio.sleep(self._delay)

    async def reply(self, character: Character, history: list[Message]) -> str:
        await self._pause()
        last_user = next((m for m in reversed(history) if m.is_from_user), None)
        if last_user is None:
            return f"{character.name} smiles at you."
        return f'{character.name} thinks about "{last_user.text}" for a moment.'

    async def follow_up(self, character: Character, history: list[Message]) -> str:
        await self._pause()
        return f"{character.name} goes on with the story."

    async def translate(self, text: str, target_language: str) -> str:
        await self._pause()
        return f"[{target_language}] {text}"

    async def synthesize(self, text: str, voice_id: str) -> str:
        await self._pause()
        digest = hashlib.sha1(f"{voice_id}:{text}".encode("utf-8")).hexdigest()[:16]
        return f"{self._asset_base_url}/{voice_id}-{digest}.mp3"
