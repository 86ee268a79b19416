"""Business rules shared by the local store backends.

``LocalMessageStore`` implements the whole ``MessageStore`` contract on top
of a small set of row-level primitives. Subclasses decide where rows live
(process memory, SQLite); this module decides what the rows mean:
- Chats open with the character's first greeting
- Replies are generated in the background into an empty placeholder
- Replies, translations and speech cost crystals
- Subscribers receive every new or changed record, tombstones included
"""

import asyncio
import logging
from abc import abstractmethod
from collections.abc import Coroutine
from datetime import datetime
from typing import Any

from ..config import (
    NOT_ENOUGH_CRYSTALS,
    SPEECH_COST,
    STARTING_CRYSTALS,
    TRANSLATE_COST,
    model_cost,
)
from ..errors import RemoteRejected, RemoteUnavailable
from .base import MessageStore
from .models import (
    Character,
    Chat,
    Confirmation,
    Message,
    Page,
    Reaction,
    Story,
    new_id,
    utcnow,
)
from .responder import Responder, ScriptedResponder

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Live feed of new and updated messages for one chat.

    Acts as an async iterator. Registration happens on construction, so no
    record published after ``subscribe_new`` returns can be missed.
    """

    def __init__(self, chat_id: str, on_close: Any) -> None:
        self.chat_id = chat_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, message: Message) -> None:
        """Deliver a record (called by the store)."""
        if not self._closed:
            self._queue.put_nowait(message)

    def close(self) -> None:
        """Release the subscription. Pending readers stop iterating."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        self._on_close(self)

    async def aclose(self) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Message:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class LocalMessageStore(MessageStore):
    """Message store whose rules run in-process.

    Subclasses provide persistence through the ``_``-prefixed primitives.
    All writes are serialized by a single lock so order keys stay monotonic.
    """

    def __init__(
        self,
        responder: Responder | None = None,
        starting_crystals: int = STARTING_CRYSTALS,
        auto_reply: bool = True,
    ) -> None:
        self._responder = responder or ScriptedResponder()
        self._starting_crystals = starting_crystals
        self._auto_reply = auto_reply
        self._subscriptions: dict[str, set[Subscription]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._connected = False

    # ------------------------------------------------------------------
    # Persistence primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _get_message(self, message_id: str) -> Message | None: ...

    @abstractmethod
    async def _put_message(self, message: Message) -> None: ...

    @abstractmethod
    async def _list_messages(self, chat_id: str) -> list[Message]:
        """All live messages of a chat, ascending by order."""

    @abstractmethod
    async def _page_before(
        self,
        chat_id: str,
        before_order: int | None,
        limit: int
    ) -> list[Message]:
        """The ``limit`` newest messages older than ``before_order``, ascending."""

    @abstractmethod
    async def _max_order(self, chat_id: str) -> int:
        """Highest order key in a chat, -1 when empty."""

    @abstractmethod
    async def _get_chat(self, chat_id: str) -> Chat | None: ...

    @abstractmethod
    async def _find_chat(self, user_id: str, character_id: str) -> Chat | None: ...

    @abstractmethod
    async def _put_chat(self, chat: Chat) -> None: ...

    @abstractmethod
    async def _delete_chat(self, chat_id: str) -> list[Message]:
        """Delete a chat and return the messages removed with it."""

    @abstractmethod
    async def _get_character(self, character_id: str) -> Character | None: ...

    @abstractmethod
    async def _put_character(self, character: Character) -> None: ...

    @abstractmethod
    async def _list_characters(self) -> list[Character]: ...

    @abstractmethod
    async def _count_chats(self, character_id: str) -> int: ...

    @abstractmethod
    async def _reaction_counts(self, character_id: str) -> tuple[int, int]:
        """Return (likes, dislikes) over a character's messages."""

    @abstractmethod
    async def _get_balance(self, user_id: str) -> int | None: ...

    @abstractmethod
    async def _set_balance(self, user_id: str, amount: int) -> None: ...

    @abstractmethod
    async def _get_story(self, story_id: str) -> Story | None: ...

    @abstractmethod
    async def _put_story(self, story: Story) -> None: ...

    @abstractmethod
    async def _delete_stories_before(self, before: datetime) -> int: ...

    @abstractmethod
    async def _delete_messages_before(self, before: datetime) -> list[Message]: ...

    @abstractmethod
    async def _delete_idle_chats(self, before: datetime) -> int: ...

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        """Stop background generation and release every subscription."""
        self._connected = False
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                sub.close()
        self._subscriptions.clear()

    async def drain(self) -> None:
        """Wait until all background generation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise RemoteUnavailable(f"{self.backend_type} store is not connected")

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_new(self, chat_id: str) -> Subscription:
        self._ensure_connected()
        sub = Subscription(chat_id, self._release)
        self._subscriptions.setdefault(chat_id, set()).add(sub)
        logger.debug("Subscribed to chat %s", chat_id)
        return sub

    def _release(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.chat_id)
        if subs is not None:
            subs.discard(sub)
            if not subs:
                del self._subscriptions[sub.chat_id]

    def _publish(self, message: Message) -> None:
        for sub in list(self._subscriptions.get(message.chat_id, ())):
            sub.push(message)

    def subscriber_count(self, chat_id: str) -> int:
        return len(self._subscriptions.get(chat_id, ()))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _require_chat(self, chat_id: str) -> Chat:
        chat = await self._get_chat(chat_id)
        if chat is None:
            raise RemoteRejected(f"Chat not found: {chat_id}", code="not_found")
        return chat

    async def _require_character(self, character_id: str) -> Character:
        character = await self._get_character(character_id)
        if character is None:
            raise RemoteRejected(f"Character not found: {character_id}", code="not_found")
        return character

    async def _require_message(self, message_id: str) -> Message:
        message = await self._get_message(message_id)
        if message is None or message.deleted:
            raise RemoteRejected(f"Message not found: {message_id}", code="not_found")
        return message

    async def load_older_page(self, chat_id: str, cursor: str | None, limit: int) -> Page:
        self._ensure_connected()
        if limit < 1:
            raise RemoteRejected("Page size must be positive", code="invalid_argument")
        await self._require_chat(chat_id)

        before_order = None
        if cursor is not None:
            try:
                before_order = int(cursor)
            except ValueError:
                raise RemoteRejected(f"Invalid cursor: {cursor!r}", code="invalid_argument") from None

        rows = await self._page_before(chat_id, before_order, limit + 1)
        has_more = len(rows) > limit
        messages = rows[-limit:] if has_more else rows
        next_cursor = str(messages[0].order) if has_more and messages else None
        return Page(messages=messages, next_cursor=next_cursor, has_more=has_more)

    async def get_chat(self, chat_id: str) -> Chat | None:
        self._ensure_connected()
        return await self._get_chat(chat_id)

    async def get_or_create_chat(
        self,
        user_id: str,
        character_id: str,
        is_public: bool = False
    ) -> Chat:
        self._ensure_connected()
        async with self._write_lock:
            existing = await self._find_chat(user_id, character_id)
            if existing is not None:
                return existing

            character = await self._require_character(character_id)
            chat = Chat(user_id=user_id, character_id=character_id, is_public=is_public)
            await self._put_chat(chat)
            await self._put_character(
                character.model_copy(update={"num_chats": character.num_chats + 1})
            )
            if character.greetings:
                await self._put_message(Message(
                    chat_id=chat.id,
                    character_id=character_id,
                    text=character.greetings[0],
                    order=0,
                ))
        logger.info("Created chat %s for user %s with %s", chat.id, user_id, character.name)
        return chat

    async def get_character(self, character_id: str) -> Character | None:
        self._ensure_connected()
        return await self._get_character(character_id)

    async def get_story(self, story_id: str) -> Story | None:
        self._ensure_connected()
        return await self._get_story(story_id)

    async def upsert_character(self, character: Character) -> Character:
        self._ensure_connected()
        async with self._write_lock:
            await self._put_character(character)
        return character

    async def get_balance(self, user_id: str) -> int:
        self._ensure_connected()
        balance = await self._get_balance(user_id)
        return self._starting_crystals if balance is None else balance

    async def _charge(self, user_id: str, amount: int) -> bool:
        """Debit crystals. Returns False, charging nothing, if the balance is short."""
        async with self._write_lock:
            balance = await self._get_balance(user_id)
            if balance is None:
                balance = self._starting_crystals
            if balance < amount:
                return False
            await self._set_balance(user_id, balance - amount)
        return True

    async def _refund(self, user_id: str, amount: int) -> None:
        async with self._write_lock:
            balance = await self._get_balance(user_id)
            if balance is None:
                balance = self._starting_crystals
            await self._set_balance(user_id, balance + amount)

    async def _generate(self, what: str, user_id: str, cost: int, coro: Coroutine) -> str:
        """Await paid responder work. A failure refunds the cost.

        Raises:
            RemoteUnavailable: If the responder failed
        """
        try:
            return await coro
        except asyncio.CancelledError:
            await self._refund(user_id, cost)
            raise
        except Exception as e:
            await self._refund(user_id, cost)
            logger.warning("%s failed: %s", what.capitalize(), e)
            raise RemoteUnavailable(f"{what} failed") from e

    async def _update(self, message_id: str, **changes: Any) -> Message:
        async with self._write_lock:
            current = await self._require_message(message_id)
            updated = current.model_copy(update={**changes, "revision": current.revision + 1})
            await self._put_message(updated)
        self._publish(updated)
        return updated

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _append_placeholder(self, chat: Chat, character_id: str) -> Message:
        order = await self._max_order(chat.id) + 1
        placeholder = Message(chat_id=chat.id, character_id=character_id, text="", order=order)
        await self._put_message(placeholder)
        return placeholder

    async def send_message(
        self,
        chat_id: str,
        character_id: str,
        text: str,
        correlation_id: str
    ) -> Confirmation:
        self._ensure_connected()
        if not text.strip():
            raise RemoteRejected("Message is empty", code="invalid_argument")
        chat = await self._require_chat(chat_id)
        character = await self._require_character(character_id)

        async with self._write_lock:
            order = await self._max_order(chat_id) + 1
            sent = Message(chat_id=chat_id, text=text, order=order, correlation_id=correlation_id)
            await self._put_message(sent)
            placeholder = None
            if self._auto_reply:
                placeholder = await self._append_placeholder(chat, character_id)
            await self._put_chat(chat.model_copy(update={"updated_at": utcnow()}))

        self._publish(sent)
        if placeholder is not None:
            self._publish(placeholder)
            self._spawn(self._fill(chat, character, placeholder.id))
        return Confirmation(correlation_id=correlation_id, message=sent)

    async def _fill(
        self,
        chat: Chat,
        character: Character,
        message_id: str,
        follow_up: bool = False
    ) -> None:
        """Generate text into a placeholder and publish the result."""
        try:
            if await self._charge(chat.user_id, model_cost(character.model)):
                history = [m for m in await self._list_messages(chat.id) if m.text]
                if follow_up:
                    text = await self._responder.follow_up(character, history)
                else:
                    text = await self._responder.reply(character, history)
            else:
                text = NOT_ENOUGH_CRYSTALS
            await self._update(message_id, text=text)
        except asyncio.CancelledError:
            raise
        except RemoteRejected:
            logger.debug("Message %s disappeared before its reply was ready", message_id)
        except Exception:
            logger.exception("Reply generation failed for message %s", message_id)
            await self._update(message_id, text="Something went wrong. Please try again.")

    async def react(self, message_id: str, reaction: Reaction, correlation_id: str) -> Confirmation:
        self._ensure_connected()
        message = await self._require_message(message_id)
        if message.is_from_user:
            raise RemoteRejected("Only character messages can be rated", code="invalid_argument")
        updated = await self._update(
            message_id, reaction=Reaction(reaction), correlation_id=correlation_id
        )
        return Confirmation(correlation_id=correlation_id, message=updated)

    async def regenerate(
        self,
        chat_id: str,
        character_id: str,
        message_id: str,
        correlation_id: str
    ) -> Confirmation:
        self._ensure_connected()
        chat = await self._require_chat(chat_id)
        character = await self._require_character(character_id)
        message = await self._require_message(message_id)
        if message.chat_id != chat_id or message.character_id != character_id:
            raise RemoteRejected("Message does not belong to this chat", code="invalid_argument")
        if message.is_generating:
            raise RemoteRejected("Message is still being generated", code="busy")

        cleared = await self._update(
            message_id,
            text="",
            translation=None,
            speech_url=None,
            correlation_id=correlation_id,
        )
        self._spawn(self._fill(chat, character, message_id))
        return Confirmation(correlation_id=correlation_id, message=cleared)

    async def translate(
        self,
        message_id: str,
        target_language: str,
        correlation_id: str
    ) -> Confirmation:
        self._ensure_connected()
        message = await self._require_message(message_id)
        if message.translation:
            raise RemoteRejected("Message is already translated", code="already_translated")
        if message.is_generating:
            raise RemoteRejected("Message is still being generated", code="busy")
        chat = await self._require_chat(message.chat_id)
        if not await self._charge(chat.user_id, TRANSLATE_COST):
            raise RemoteRejected(NOT_ENOUGH_CRYSTALS, code="insufficient_crystals")

        translation = await self._generate(
            "translation",
            chat.user_id,
            TRANSLATE_COST,
            self._responder.translate(message.text, target_language),
        )
        updated = await self._update(
            message_id, translation=translation, correlation_id=correlation_id
        )
        return Confirmation(correlation_id=correlation_id, message=updated)

    async def request_speech(
        self,
        message_id: str,
        character_id: str,
        text: str,
        correlation_id: str
    ) -> Confirmation:
        self._ensure_connected()
        message = await self._require_message(message_id)
        character = await self._require_character(character_id)
        if not text:
            raise RemoteRejected("Nothing to read out", code="invalid_argument")
        chat = await self._require_chat(message.chat_id)
        if not await self._charge(chat.user_id, SPEECH_COST):
            raise RemoteRejected(NOT_ENOUGH_CRYSTALS, code="insufficient_crystals")

        url = await self._generate(
            "speech synthesis",
            chat.user_id,
            SPEECH_COST,
            self._responder.synthesize(text, character.voice_id),
        )
        updated = await self._update(message_id, speech_url=url, correlation_id=correlation_id)
        return Confirmation(correlation_id=correlation_id, message=updated)

    async def create_story(self, character_id: str, message_ids: list[str]) -> str:
        self._ensure_connected()
        if not message_ids:
            raise RemoteRejected("A story needs at least one message", code="invalid_argument")
        messages = [await self._require_message(mid) for mid in message_ids]
        chat_ids = {m.chat_id for m in messages}
        if len(chat_ids) != 1:
            raise RemoteRejected("Story messages must come from one chat", code="invalid_argument")
        chat = await self._require_chat(chat_ids.pop())
        if chat.character_id != character_id:
            raise RemoteRejected("Story character does not match the chat", code="invalid_argument")
        if not chat.is_public:
            raise RemoteRejected("Only public chats can become stories", code="forbidden")

        story = Story(character_id=character_id, user_id=chat.user_id, message_ids=message_ids)
        async with self._write_lock:
            await self._put_story(story)
        logger.info("Created story %s from %d messages", story.id, len(message_ids))
        return story.id

    async def remove_chat(self, chat_id: str) -> None:
        self._ensure_connected()
        await self._require_chat(chat_id)
        async with self._write_lock:
            removed = await self._delete_chat(chat_id)
        for message in removed:
            self._publish(message.model_copy(update={"deleted": True}))
        logger.info("Removed chat %s (%d messages)", chat_id, len(removed))

    async def autopilot(self, chat_id: str, character_id: str) -> Confirmation:
        self._ensure_connected()
        chat = await self._require_chat(chat_id)
        character = await self._require_character(character_id)
        async with self._write_lock:
            placeholder = await self._append_placeholder(chat, character_id)
            await self._put_chat(chat.model_copy(update={"updated_at": utcnow()}))
        self._publish(placeholder)
        self._spawn(self._fill(chat, character, placeholder.id, follow_up=True))
        return Confirmation(correlation_id=new_id("auto"), message=placeholder)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def score_characters(self) -> int:
        self._ensure_connected()
        characters = await self._list_characters()
        async with self._write_lock:
            for character in characters:
                likes, dislikes = await self._reaction_counts(character.id)
                num_chats = await self._count_chats(character.id)
                await self._put_character(character.model_copy(update={
                    "num_chats": num_chats,
                    "score": float(num_chats + likes - dislikes),
                }))
        return len(characters)

    async def remove_old_messages(self, before: datetime) -> int:
        self._ensure_connected()
        async with self._write_lock:
            removed = await self._delete_messages_before(before)
        for message in removed:
            self._publish(message.model_copy(update={"deleted": True}))
        return len(removed)

    async def remove_old_stories(self, before: datetime) -> int:
        self._ensure_connected()
        async with self._write_lock:
            return await self._delete_stories_before(before)

    async def remove_old_chats(self, before: datetime) -> int:
        self._ensure_connected()
        async with self._write_lock:
            return await self._delete_idle_chats(before)
