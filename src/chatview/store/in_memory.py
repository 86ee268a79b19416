"""In-memory message store backend.

Simple dict-based storage for session-only use.
Data is lost when the application exits.
"""

from datetime import datetime

from .local import LocalMessageStore
from .models import Character, Chat, Message, Reaction, Story


class InMemoryMessageStore(LocalMessageStore):
    """In-memory message store (session-only).

    Suitable for single-session use or testing.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._messages: dict[str, Message] = {}
        self._chats: dict[str, Chat] = {}
        self._characters: dict[str, Character] = {}
        self._balances: dict[str, int] = {}
        self._stories: dict[str, Story] = {}

    async def _get_message(self, message_id: str) -> Message | None:
        return self._messages.get(message_id)

    async def _put_message(self, message: Message) -> None:
        self._messages[message.id] = message

    async def _list_messages(self, chat_id: str) -> list[Message]:
        return sorted(
            (m for m in self._messages.values() if m.chat_id == chat_id),
            key=lambda m: m.order,
        )

    async def _page_before(
        self,
        chat_id: str,
        before_order: int | None,
        limit: int
    ) -> list[Message]:
        messages = await self._list_messages(chat_id)
        if before_order is not None:
            messages = [m for m in messages if m.order < before_order]
        return messages[-limit:]

    async def _max_order(self, chat_id: str) -> int:
        return max((m.order for m in self._messages.values() if m.chat_id == chat_id), default=-1)

    async def _get_chat(self, chat_id: str) -> Chat | None:
        return self._chats.get(chat_id)

    async def _find_chat(self, user_id: str, character_id: str) -> Chat | None:
        for chat in self._chats.values():
            if chat.user_id == user_id and chat.character_id == character_id:
                return chat
        return None

    async def _put_chat(self, chat: Chat) -> None:
        self._chats[chat.id] = chat

    async def _delete_chat(self, chat_id: str) -> list[Message]:
        self._chats.pop(chat_id, None)
        removed = [m for m in self._messages.values() if m.chat_id == chat_id]
        for message in removed:
            del self._messages[message.id]
        return sorted(removed, key=lambda m: m.order)

    async def _get_character(self, character_id: str) -> Character | None:
        return self._characters.get(character_id)

    async def _put_character(self, character: Character) -> None:
        self._characters[character.id] = character

    async def _list_characters(self) -> list[Character]:
        return list(self._characters.values())

    async def _count_chats(self, character_id: str) -> int:
        return sum(1 for c in self._chats.values() if c.character_id == character_id)

    async def _reaction_counts(self, character_id: str) -> tuple[int, int]:
        likes = dislikes = 0
        for message in self._messages.values():
            if message.character_id != character_id:
                continue
            if message.reaction == Reaction.LIKE:
                likes += 1
            elif message.reaction == Reaction.DISLIKE:
                dislikes += 1
        return likes, dislikes

    async def _get_balance(self, user_id: str) -> int | None:
        return self._balances.get(user_id)

    async def _set_balance(self, user_id: str, amount: int) -> None:
        self._balances[user_id] = amount

    async def _put_story(self, story: Story) -> None:
        self._stories[story.id] = story

    async def _delete_stories_before(self, before: datetime) -> int:
        old = [sid for sid, s in self._stories.items() if s.created_at < before]
        for sid in old:
            del self._stories[sid]
        return len(old)

    async def _delete_messages_before(self, before: datetime) -> list[Message]:
        old = [m for m in self._messages.values() if m.created_at < before]
        for message in old:
            del self._messages[message.id]
        return old

    async def _delete_idle_chats(self, before: datetime) -> int:
        live = {m.chat_id for m in self._messages.values()}
        idle = [
            cid for cid, c in self._chats.items()
            if c.updated_at < before and cid not in live
        ]
        for cid in idle:
            del self._chats[cid]
        return len(idle)

    async def _get_story(self, story_id: str) -> Story | None:
        return self._stories.get(story_id)

    @property
    def backend_type(self) -> str:
        return "memory"
