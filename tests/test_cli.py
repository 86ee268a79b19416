"""Tests for the command line interface."""
import asyncio

import pytest
from typer.testing import CliRunner

from chatview.cli.app import app
from chatview.cli.providers import get_session_config, get_store
from chatview.store.sqlite import SQLiteMessageStore

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the CLI at a temporary SQLite database."""
    path = tmp_path / "cli.db"
    monkeypatch.setenv("CHATVIEW_BACKEND", "sqlite")
    monkeypatch.setenv("CHATVIEW_DB_PATH", str(path))
    monkeypatch.delenv("CHATVIEW_USER_ID", raising=False)
    monkeypatch.delenv("CHATVIEW_USERNAME", raising=False)
    return path


@pytest.fixture
def seeded(db_path):
    """Database with the demo character."""
    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0, result.output
    return db_path


def find_chat_id(path, user_id="local-user", character_id="char_demo"):
    async def _find():
        async with SQLiteMessageStore(path=path) as store:
            return (await store.get_or_create_chat(user_id, character_id)).id

    return asyncio.run(_find())


class TestProviders:
    """Tests for environment-driven providers."""

    def test_memory_backend(self, monkeypatch):
        """Test that the backend comes from CHATVIEW_BACKEND."""
        monkeypatch.setenv("CHATVIEW_BACKEND", "memory")
        assert get_store().backend_type == "memory"

    def test_unknown_backend_exits(self, monkeypatch):
        """Test that a bad backend ends the command."""
        import typer

        monkeypatch.setenv("CHATVIEW_BACKEND", "postgres")
        with pytest.raises(typer.Exit):
            get_store()

    def test_session_config_from_env(self, monkeypatch):
        """Test that user settings come from the environment."""
        monkeypatch.setenv("CHATVIEW_USER_ID", "user_env")
        monkeypatch.setenv("CHATVIEW_USERNAME", "Ada")
        monkeypatch.setenv("CHATVIEW_LANGUAGE", "German")

        config = get_session_config()

        assert config.user_id == "user_env"
        assert config.username == "Ada"
        assert config.target_language == "German"


class TestCommands:
    """Tests for CLI commands."""

    def test_seed(self, db_path):
        """Test creating the demo character."""
        result = runner.invoke(app, ["seed", "--name", "Nova", "--id", "char_nova"])
        assert result.exit_code == 0
        assert "Nova (char_nova)" in result.output

    def test_say_prints_reply(self, seeded):
        """Test that say sends a message and prints the reply."""
        result = runner.invoke(app, ["say", "char_demo", "hello"])

        assert result.exit_code == 0, result.output
        assert "hello" in result.output
        assert "Luna thinks about" in result.output

    def test_say_unknown_character(self, db_path):
        """Test that an unknown character is an error."""
        result = runner.invoke(app, ["say", "char_missing", "hello"])
        assert result.exit_code == 1
        assert "Character not found" in result.output

    def test_history(self, seeded):
        """Test printing a chat's newest messages."""
        runner.invoke(app, ["say", "char_demo", "tell me a story"])
        chat_id = find_chat_id(seeded)

        result = runner.invoke(app, ["history", chat_id, "--limit", "5"])

        assert result.exit_code == 0, result.output
        assert "Luna" in result.output
        assert "tell me a story" in result.output
        assert "Hi You!" in result.output

    def test_history_unknown_chat(self, db_path):
        """Test that an unknown chat is an error."""
        result = runner.invoke(app, ["history", "chat_missing"])
        assert result.exit_code == 1
        assert "Chat not found" in result.output

    def test_balance(self, seeded):
        """Test that replies are paid for."""
        assert "Crystals: 100" in runner.invoke(app, ["balance"]).output
        runner.invoke(app, ["say", "char_demo", "hello"])
        assert "Crystals: 99" in runner.invoke(app, ["balance"]).output

    def test_maintenance_forced(self, seeded):
        """Test running every job regardless of schedule."""
        result = runner.invoke(app, ["maintenance", "--force"])

        assert result.exit_code == 0, result.output
        assert "score characters" in result.output
        assert "remove chats" in result.output

    def test_maintenance_unknown_job(self, db_path):
        """Test that an unknown job name is an error."""
        result = runner.invoke(app, ["maintenance", "--job", "vacuum"])
        assert result.exit_code == 1
        assert "Unknown job" in result.output

    def test_chat_unknown_character(self, db_path):
        """Test that the chat view needs an existing character."""
        result = runner.invoke(app, ["chat", "char_missing", "--no-audio"])
        assert result.exit_code == 1
        assert "Character not found" in result.output
