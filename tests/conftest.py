"""Pytest configuration and shared fixtures."""
import pytest

from chatview.config import SessionConfig
from chatview.store import Character
from chatview.store.in_memory import InMemoryMessageStore
from chatview.store.sqlite import SQLiteMessageStore

from .helpers import USER_ID, RecordingListener


@pytest.fixture
def character():
    """Return a character with a greeting."""
    return Character(
        id="char_luna",
        name="Luna",
        description="A calm night owl.",
        greetings=["Hello {{user}}, I'm Luna."],
    )


@pytest.fixture
def silent_character():
    """Return a character without greetings, so new chats start empty."""
    return Character(id="char_quiet", name="Quiet")


@pytest.fixture
def session_config():
    """Return session settings with a fast thinking ticker."""
    return SessionConfig(user_id=USER_ID, username="Ada", thinking_tick_seconds=0.01)


@pytest.fixture
async def memory_store(character, silent_character):
    """Connected in-memory store with both characters."""
    store = InMemoryMessageStore()
    await store.connect()
    await store.upsert_character(character)
    await store.upsert_character(silent_character)
    yield store
    await store.disconnect()


@pytest.fixture
async def quiet_store(character, silent_character):
    """Connected in-memory store that never replies on its own."""
    store = InMemoryMessageStore(auto_reply=False)
    await store.connect()
    await store.upsert_character(character)
    await store.upsert_character(silent_character)
    yield store
    await store.disconnect()


@pytest.fixture
async def sqlite_store(tmp_path, character, silent_character):
    """Connected SQLite store in a temporary directory."""
    store = SQLiteMessageStore(path=tmp_path / "chatview.db")
    await store.connect()
    await store.upsert_character(character)
    await store.upsert_character(silent_character)
    yield store
    await store.disconnect()


@pytest.fixture(params=["memory", "sqlite"])
async def any_store(request, tmp_path, character, silent_character):
    """Connected store of each backend."""
    if request.param == "memory":
        store = InMemoryMessageStore()
    else:
        store = SQLiteMessageStore(path=tmp_path / "chatview.db")
    await store.connect()
    await store.upsert_character(character)
    await store.upsert_character(silent_character)
    yield store
    await store.disconnect()


@pytest.fixture
def listener():
    """Return a listener that records session output."""
    return RecordingListener()
