"""Unit tests for speech playback."""
import asyncio

import pytest

from chatview.errors import RemoteRejected
from chatview.session import PlaybackCoordinator, SilentAudioPlayer
from chatview.session.audio import CommandAudioPlayer
from chatview.store import Message


def message(message_id, speech_url=None):
    return Message(
        id=message_id,
        chat_id="chat_1",
        character_id="char_luna",
        text=f"text of {message_id}",
        order=0,
        speech_url=speech_url,
    )


class FakeSynthesizer:
    """Attaches a url, optionally failing or waiting for a gate."""

    def __init__(self, error=None, gate=None):
        self.calls = []
        self.error = error
        self.gate = gate

    async def __call__(self, msg):
        self.calls.append(msg.id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return msg.model_copy(update={"speech_url": f"file:///{msg.id}.mp3"})


def make_coordinator(**kwargs):
    changes = []
    synthesize = FakeSynthesizer(**kwargs)
    player = SilentAudioPlayer()
    coordinator = PlaybackCoordinator(
        "chat_1", synthesize, player=player, on_change=lambda: changes.append(1)
    )
    return coordinator, synthesize, player, changes


class TestToggle:
    """Tests for toggling speech on and off."""

    @pytest.mark.asyncio
    async def test_plays_existing_asset_without_synthesis(self):
        """Test that a message with a url plays immediately."""
        coordinator, synthesize, player, _ = make_coordinator()

        assert await coordinator.toggle(message("a", "file:///a.mp3")) is True

        assert synthesize.calls == []
        assert player.played == ["file:///a.mp3"]
        assert coordinator.is_speaking("a")
        assert coordinator.active.message_id == "a"

    @pytest.mark.asyncio
    async def test_synthesizes_missing_asset(self):
        """Test that speech is requested when the message has none."""
        coordinator, synthesize, player, _ = make_coordinator()

        assert await coordinator.toggle(message("a")) is True

        assert synthesize.calls == ["a"]
        assert player.current == "file:///a.mp3"

    @pytest.mark.asyncio
    async def test_second_toggle_stops(self):
        """Test that toggling the speaking message stops it."""
        coordinator, _, player, _ = make_coordinator()
        target = message("a", "file:///a.mp3")
        await coordinator.toggle(target)

        assert await coordinator.toggle(target) is False

        assert not coordinator.is_speaking("a")
        assert coordinator.active is None
        assert not player.is_playing

    @pytest.mark.asyncio
    async def test_one_stream_at_a_time(self):
        """Test that starting another message stops the current one."""
        coordinator, _, player, _ = make_coordinator()
        await coordinator.toggle(message("a", "file:///a.mp3"))
        await coordinator.toggle(message("b", "file:///b.mp3"))

        assert not coordinator.is_speaking("a")
        assert coordinator.is_speaking("b")
        assert player.played == ["file:///a.mp3", "file:///b.mp3"]
        assert player.current == "file:///b.mp3"

    @pytest.mark.asyncio
    async def test_synthesis_failure_reverts_flag(self):
        """Test that a failed synthesis leaves the message silent."""
        error = RemoteRejected("Not enough crystals.", code="insufficient_crystals")
        coordinator, _, player, changes = make_coordinator(error=error)

        with pytest.raises(RemoteRejected):
            await coordinator.toggle(message("a"))

        assert not coordinator.is_speaking("a")
        assert player.played == []
        assert len(changes) == 2

    @pytest.mark.asyncio
    async def test_toggle_off_during_synthesis(self):
        """Test that stopping before the asset arrives skips playback."""
        gate = asyncio.Event()
        coordinator, _, player, _ = make_coordinator(gate=gate)
        target = message("a")

        pending = asyncio.create_task(coordinator.toggle(target))
        await asyncio.sleep(0)
        assert coordinator.is_speaking("a")
        assert await coordinator.toggle(target) is False

        gate.set()
        assert await pending is False
        assert player.played == []


class TestLifecycle:
    """Tests for natural ends and teardown."""

    @pytest.mark.asyncio
    async def test_natural_end_clears_flag(self):
        """Test that audio ending on its own resets the speaking flag."""
        player = SilentAudioPlayer(duration=0.01)
        coordinator = PlaybackCoordinator("chat_1", FakeSynthesizer(), player=player)
        await coordinator.toggle(message("a", "file:///a.mp3"))

        await asyncio.sleep(0.05)

        assert not coordinator.is_speaking("a")
        assert coordinator.active is None

    @pytest.mark.asyncio
    async def test_close_stops_and_ignores_requests(self):
        """Test that a closed coordinator never plays again."""
        coordinator, _, player, changes = make_coordinator()
        await coordinator.toggle(message("a", "file:///a.mp3"))
        seen = len(changes)

        await coordinator.close()

        assert not player.is_playing
        assert await coordinator.toggle(message("b", "file:///b.mp3")) is False
        assert player.played == ["file:///a.mp3"]
        assert len(changes) == seen

    @pytest.mark.asyncio
    async def test_close_during_synthesis_skips_playback(self):
        """Test that an asset arriving after close is not played."""
        gate = asyncio.Event()
        coordinator, _, player, _ = make_coordinator(gate=gate)

        pending = asyncio.create_task(coordinator.toggle(message("a")))
        await asyncio.sleep(0)
        await coordinator.close()
        gate.set()

        assert await pending is False
        assert player.played == []


class TestCommandAudioPlayer:
    """Tests for the subprocess audio backend."""

    def test_empty_command_rejected(self):
        """Test that a player needs a program to run."""
        with pytest.raises(ValueError):
            CommandAudioPlayer(())

    def test_detect_falls_back_to_silent(self, monkeypatch):
        """Test that detection without players on PATH is silent."""
        monkeypatch.setattr("chatview.session.audio.shutil.which", lambda name: None)
        assert isinstance(CommandAudioPlayer.detect(), SilentAudioPlayer)

    def test_detect_prefers_first_command(self, monkeypatch):
        """Test that the first available program is used."""
        monkeypatch.setattr("chatview.session.audio.shutil.which", lambda name: f"/usr/bin/{name}")
        player = CommandAudioPlayer.detect()
        assert isinstance(player, CommandAudioPlayer)
        assert not player.is_playing
