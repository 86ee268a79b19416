"""Playback coordinator.

Hides the speech side effects of a chat: which message is speaking,
when synthesis is needed and how streams exclude each other. At most one
message of a chat plays at a time.
"""

import logging
from collections.abc import Awaitable, Callable

from ..store.models import Message
from .audio import AudioPlayer, SilentAudioPlayer
from .models import PlaybackState

logger = logging.getLogger(__name__)


class PlaybackCoordinator:
    """Per-chat speech playback.

    Args:
        chat_id: The chat whose messages are played
        synthesize: Requests a speech asset and returns the updated record
        player: Audio backend
        on_change: Called whenever any speaking flag changes
    """

    def __init__(
        self,
        chat_id: str,
        synthesize: Callable[[Message], Awaitable[Message]],
        player: AudioPlayer | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.chat_id = chat_id
        self._synthesize = synthesize
        self._player = player or SilentAudioPlayer()
        self._on_change = on_change
        self._speaking: set[str] = set()
        self._active: PlaybackState | None = None
        self._closed = False

    @property
    def active(self) -> PlaybackState | None:
        return self._active

    @property
    def player(self) -> AudioPlayer:
        return self._player

    def is_speaking(self, message_id: str) -> bool:
        return message_id in self._speaking

    async def toggle(self, message: Message) -> bool:
        """Flip the speaking flag of a message.

        Turning it on synthesizes speech when the message has no asset,
        then plays it after stopping any other stream.

        Returns:
            The new speaking flag

        Raises:
            StoreError: If synthesis failed; the flag is back to off
        """
        if self._closed:
            return False
        if self.is_speaking(message.id):
            await self.stop(message.id)
            return False

        self._speaking.add(message.id)
        self._changed()

        url = message.speech_url
        if url is None:
            try:
                updated = await self._synthesize(message)
            except Exception:
                self._speaking.discard(message.id)
                self._changed()
                raise
            url = updated.speech_url
            if self._closed or not self.is_speaking(message.id) or url is None:
                # Toggled off or torn down while synthesizing
                self._speaking.discard(message.id)
                return False

        await self._start(message.id, url)
        return True

    async def _start(self, message_id: str, url: str) -> None:
        previous = self._active
        if previous is not None and previous.message_id != message_id:
            self._speaking.discard(previous.message_id)
            logger.debug("Stopping %s to play %s", previous.message_id, message_id)
        self._active = PlaybackState(chat_id=self.chat_id, message_id=message_id, url=url)
        await self._player.play(url, on_ended=lambda: self._ended(message_id))
        self._changed()

    def _ended(self, message_id: str) -> None:
        if self._active is None or self._active.message_id != message_id:
            return
        self._active = None
        self._speaking.discard(message_id)
        self._changed()

    async def stop(self, message_id: str | None = None) -> None:
        """Stop a message, or whatever is playing when no id is given."""
        if message_id is None:
            message_id = self._active.message_id if self._active else None
        if message_id is None:
            return
        self._speaking.discard(message_id)
        if self._active is not None and self._active.message_id == message_id:
            self._active = None
            await self._player.stop()
        self._changed()

    async def close(self) -> None:
        """Stop playback and ignore every later request."""
        self._closed = True
        self._on_change = None
        self._speaking.clear()
        self._active = None
        await self._player.close()

    def _changed(self) -> None:
        if self._on_change is not None and not self._closed:
            self._on_change()
