"""SQLite message store backend.

Provides persistent chat storage using a SQLite database file.
Uses aiosqlite for async access.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..errors import RemoteUnavailable
from .local import LocalMessageStore
from .models import Character, Chat, Message, Reaction, Story

_MESSAGE_COLUMNS = (
    "id, chat_id, character_id, text, translation, reaction, "
    "speech_url, ord, revision, created_at, correlation_id"
)


def _row_to_message(row: Any) -> Message:
    (message_id, chat_id, character_id, text, translation,
     reaction, speech_url, order, revision, created_at, correlation_id) = row
    return Message(
        id=message_id,
        chat_id=chat_id,
        character_id=character_id,
        text=text,
        translation=translation,
        reaction=Reaction(reaction) if reaction else None,
        speech_url=speech_url,
        order=order,
        revision=revision,
        created_at=datetime.fromisoformat(created_at),
        correlation_id=correlation_id,
    )


def _row_to_chat(row: Any) -> Chat:
    chat_id, user_id, character_id, is_public, created_at, updated_at = row
    return Chat(
        id=chat_id,
        user_id=user_id,
        character_id=character_id,
        is_public=bool(is_public),
        created_at=datetime.fromisoformat(created_at),
        updated_at=datetime.fromisoformat(updated_at),
    )


def _row_to_character(row: Any) -> Character:
    (character_id, name, description, greetings, model,
     voice_id, card_image_url, num_chats, score) = row
    return Character(
        id=character_id,
        name=name,
        description=description,
        greetings=json.loads(greetings),
        model=model,
        voice_id=voice_id,
        card_image_url=card_image_url,
        num_chats=num_chats,
        score=score,
    )


class SQLiteMessageStore(LocalMessageStore):
    """SQLite-backed message store.

    Stores chats, messages, characters, balances and stories in one
    database file. Database errors surface as ``RemoteUnavailable``.
    """

    def __init__(self, path: str | Path = "./chatview.db", **kwargs) -> None:
        super().__init__(**kwargs)
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database and create the schema."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path)
            await self._connection.execute("PRAGMA foreign_keys = ON")
            await self._create_schema()
        except (OSError, sqlite3.Error) as e:
            raise RemoteUnavailable(f"cannot open {self._db_path}: {e}") from e
        await super().connect()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS characters (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                greetings TEXT NOT NULL DEFAULT '[]',
                model TEXT NOT NULL,
                voice_id TEXT NOT NULL,
                card_image_url TEXT,
                num_chats INTEGER NOT NULL DEFAULT 0,
                score REAL NOT NULL DEFAULT 0
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                character_id TEXT NOT NULL,
                is_public INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                chat_id TEXT NOT NULL,
                character_id TEXT,
                text TEXT NOT NULL DEFAULT '',
                translation TEXT,
                reaction TEXT,
                speech_url TEXT,
                ord INTEGER NOT NULL,
                revision INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                correlation_id TEXT,
                FOREIGN KEY (chat_id) REFERENCES chats(id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_chat_ord
            ON messages(chat_id, ord)
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS balances (
                user_id TEXT PRIMARY KEY,
                amount INTEGER NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS stories (
                id TEXT PRIMARY KEY,
                character_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                message_ids TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Stop background work and close the database connection."""
        await super().disconnect()
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _write(self, sql: str, params: tuple = ()) -> int:
        """Execute a statement, commit, and return the affected row count."""
        if self._connection is None:
            raise RemoteUnavailable("sqlite store is not connected")
        try:
            cursor = await self._connection.execute(sql, params)
            await self._connection.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            raise RemoteUnavailable(str(e)) from e

    async def _read(self, sql: str, params: tuple = ()) -> list[Any]:
        if self._connection is None:
            raise RemoteUnavailable("sqlite store is not connected")
        try:
            async with self._connection.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except sqlite3.Error as e:
            raise RemoteUnavailable(str(e)) from e

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def _get_message(self, message_id: str) -> Message | None:
        rows = await self._read(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?",
            (message_id,)
        )
        return _row_to_message(rows[0]) if rows else None

    async def _put_message(self, message: Message) -> None:
        await self._write(f"""
            INSERT OR REPLACE INTO messages ({_MESSAGE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            message.id,
            message.chat_id,
            message.character_id,
            message.text,
            message.translation,
            message.reaction.value if message.reaction else None,
            message.speech_url,
            message.order,
            message.revision,
            message.created_at.isoformat(),
            message.correlation_id,
        ))

    async def _list_messages(self, chat_id: str) -> list[Message]:
        rows = await self._read(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE chat_id = ? ORDER BY ord ASC",
            (chat_id,)
        )
        return [_row_to_message(row) for row in rows]

    async def _page_before(
        self,
        chat_id: str,
        before_order: int | None,
        limit: int
    ) -> list[Message]:
        if before_order is None:
            rows = await self._read(f"""
                SELECT {_MESSAGE_COLUMNS} FROM messages
                WHERE chat_id = ?
                ORDER BY ord DESC LIMIT ?
            """, (chat_id, limit))
        else:
            rows = await self._read(f"""
                SELECT {_MESSAGE_COLUMNS} FROM messages
                WHERE chat_id = ? AND ord < ?
                ORDER BY ord DESC LIMIT ?
            """, (chat_id, before_order, limit))
        # newest first -> reverse for chronological order
        return [_row_to_message(row) for row in reversed(rows)]

    async def _max_order(self, chat_id: str) -> int:
        rows = await self._read(
            "SELECT COALESCE(MAX(ord), -1) FROM messages WHERE chat_id = ?",
            (chat_id,)
        )
        return rows[0][0]

    async def _delete_messages_before(self, before: datetime) -> list[Message]:
        rows = await self._read(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE created_at < ?",
            (before.isoformat(),)
        )
        await self._write("DELETE FROM messages WHERE created_at < ?", (before.isoformat(),))
        return [_row_to_message(row) for row in rows]

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def _get_chat(self, chat_id: str) -> Chat | None:
        rows = await self._read(
            "SELECT id, user_id, character_id, is_public, created_at, updated_at "
            "FROM chats WHERE id = ?",
            (chat_id,)
        )
        return _row_to_chat(rows[0]) if rows else None

    async def _find_chat(self, user_id: str, character_id: str) -> Chat | None:
        rows = await self._read(
            "SELECT id, user_id, character_id, is_public, created_at, updated_at "
            "FROM chats WHERE user_id = ? AND character_id = ? "
            "ORDER BY updated_at DESC LIMIT 1",
            (user_id, character_id)
        )
        return _row_to_chat(rows[0]) if rows else None

    async def _put_chat(self, chat: Chat) -> None:
        await self._write("""
            INSERT INTO chats (id, user_id, character_id, is_public, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                is_public = excluded.is_public,
                updated_at = excluded.updated_at
        """, (
            chat.id,
            chat.user_id,
            chat.character_id,
            int(chat.is_public),
            chat.created_at.isoformat(),
            chat.updated_at.isoformat(),
        ))

    async def _delete_chat(self, chat_id: str) -> list[Message]:
        removed = await self._list_messages(chat_id)
        await self._write("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
        await self._write("DELETE FROM chats WHERE id = ?", (chat_id,))
        return removed

    async def _count_chats(self, character_id: str) -> int:
        rows = await self._read(
            "SELECT COUNT(*) FROM chats WHERE character_id = ?",
            (character_id,)
        )
        return rows[0][0]

    async def _delete_idle_chats(self, before: datetime) -> int:
        return await self._write("""
            DELETE FROM chats
            WHERE updated_at < ?
              AND NOT EXISTS (SELECT 1 FROM messages WHERE messages.chat_id = chats.id)
        """, (before.isoformat(),))

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    async def _get_character(self, character_id: str) -> Character | None:
        rows = await self._read(
            "SELECT id, name, description, greetings, model, voice_id, "
            "card_image_url, num_chats, score FROM characters WHERE id = ?",
            (character_id,)
        )
        return _row_to_character(rows[0]) if rows else None

    async def _put_character(self, character: Character) -> None:
        await self._write("""
            INSERT OR REPLACE INTO characters
            (id, name, description, greetings, model, voice_id, card_image_url, num_chats, score)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            character.id,
            character.name,
            character.description,
            json.dumps(character.greetings),
            character.model,
            character.voice_id,
            character.card_image_url,
            character.num_chats,
            character.score,
        ))

    async def _list_characters(self) -> list[Character]:
        rows = await self._read(
            "SELECT id, name, description, greetings, model, voice_id, "
            "card_image_url, num_chats, score FROM characters ORDER BY name"
        )
        return [_row_to_character(row) for row in rows]

    async def _reaction_counts(self, character_id: str) -> tuple[int, int]:
        rows = await self._read("""
            SELECT
                COALESCE(SUM(CASE WHEN reaction = 'like' THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN reaction = 'dislike' THEN 1 ELSE 0 END), 0)
            FROM messages WHERE character_id = ?
        """, (character_id,))
        likes, dislikes = rows[0]
        return likes, dislikes

    # ------------------------------------------------------------------
    # Balances and stories
    # ------------------------------------------------------------------

    async def _get_balance(self, user_id: str) -> int | None:
        rows = await self._read("SELECT amount FROM balances WHERE user_id = ?", (user_id,))
        return rows[0][0] if rows else None

    async def _set_balance(self, user_id: str, amount: int) -> None:
        await self._write("""
            INSERT INTO balances (user_id, amount) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET amount = excluded.amount
        """, (user_id, amount))

    async def _get_story(self, story_id: str) -> Story | None:
        rows = await self._read(
            "SELECT id, character_id, user_id, message_ids, created_at FROM stories WHERE id = ?",
            (story_id,)
        )
        if not rows:
            return None
        sid, character_id, user_id, message_ids, created_at = rows[0]
        return Story(
            id=sid,
            character_id=character_id,
            user_id=user_id,
            message_ids=json.loads(message_ids),
            created_at=datetime.fromisoformat(created_at),
        )

    async def _put_story(self, story: Story) -> None:
        await self._write("""
            INSERT INTO stories (id, character_id, user_id, message_ids, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            story.id,
            story.character_id,
            story.user_id,
            json.dumps(story.message_ids),
            story.created_at.isoformat(),
        ))

    async def _delete_stories_before(self, before: datetime) -> int:
        return await self._write(
            "DELETE FROM stories WHERE created_at < ?",
            (before.isoformat(),)
        )

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
