"""Audio output backends.

Hides how a speech asset is actually played. The playback coordinator
only starts and stops streams; it never knows whether sound came out of
a subprocess or nowhere at all.
"""

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_COMMANDS = (
    ("mpg123", "-q"),
    ("ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"),
)


class AudioPlayer(ABC):
    """Plays one audio url at a time."""

    @abstractmethod
    async def play(self, url: str, on_ended: Callable[[], None]) -> None:
        """Start playing a url, replacing whatever is playing.

        Returns once playback has started. ``on_ended`` is called when the
        audio finishes on its own, never after ``stop``.
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop the current stream, if any."""

    @property
    @abstractmethod
    def is_playing(self) -> bool: ...

    async def close(self) -> None:
        await self.stop()


class SilentAudioPlayer(AudioPlayer):
    """Player that produces no sound.

    Playback "ends" after ``duration`` seconds, or never when ``duration``
    is None. Used where no audio device exists and in tests.
    """

    def __init__(self, duration: float | None = None) -> None:
        self._duration = duration
        self._current: str | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.played: list[str] = []

    @property
    def is_playing(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> str | None:
        return self._current

    async def play(self, url: str, on_ended: Callable[[], None]) -> None:
        await self.stop()
        self._current = url
        self.played.append(url)
        if self._duration is not None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._duration, self._finish, on_ended)

    def _finish(self, on_ended: Callable[[], None]) -> None:
        self._current = None
        self._timer = None
        on_ended()

    async def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._current = None


class CommandAudioPlayer(AudioPlayer):
    """Plays urls through an external command such as mpg123 or ffplay.

    Args:
        command: Program and arguments; the url is appended
    """

    def __init__(self, command: tuple[str, ...] | list[str]) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self._command = tuple(command)
        self._process: asyncio.subprocess.Process | None = None
        self._waiter: asyncio.Task | None = None

    @classmethod
    def detect(cls) -> "AudioPlayer":
        """Use the first player found on PATH, or a silent one."""
        for command in DEFAULT_PLAYER_COMMANDS:
            if shutil.which(command[0]):
                return cls(command)
        logger.info("No audio player found on PATH, speech will be silent")
        return SilentAudioPlayer()

    @property
    def is_playing(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def play(self, url: str, on_ended: Callable[[], None]) -> None:
        await self.stop()
        self._process = await asyncio.create_subprocess_exec(
            *self._command,
            url,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        self._waiter = asyncio.create_task(self._wait(self._process, on_ended))

    async def _wait(self, process: asyncio.subprocess.Process, on_ended: Callable[[], None]) -> None:
        returncode = await process.wait()
        if returncode != 0:
            logger.warning("%s exited with code %s", self._command[0], returncode)
        if process is self._process:
            self._process = None
            on_ended()

    async def stop(self) -> None:
        process, self._process = self._process, None
        if self._waiter is not None:
            self._waiter.cancel()
            self._waiter = None
        if process is not None and process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
