"""Helpers shared by the test modules."""
import asyncio

from chatview.session import SessionListener
from chatview.store import Chat, Message, ScriptedResponder

USER_ID = "user_test"


class FailingResponder(ScriptedResponder):
    """Responder whose translation and speech backends are down."""

    async def translate(self, text, target_language):
        raise ConnectionError("translation backend unreachable")

    async def synthesize(self, text, voice_id):
        raise ConnectionError("speech backend unreachable")


class RecordingListener(SessionListener):
    """Keeps everything a session reports, in order."""

    def __init__(self):
        self.snapshots = []
        self.notifications = []
        self.thinking = []
        self.playback = []
        self.removed = []

    def on_feed(self, snapshot):
        self.snapshots.append(snapshot)

    def on_notification(self, notification):
        self.notifications.append(notification)

    def on_thinking(self, text):
        self.thinking.append(text)

    def on_playback(self, message_id):
        self.playback.append(message_id)

    def on_chat_removed(self, chat_id):
        self.removed.append(chat_id)

    @property
    def last(self):
        return self.snapshots[-1]


async def settle(rounds: int = 5) -> None:
    """Let queued callbacks and subscription pumps run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def seed_messages(store, chat: Chat, count: int, start: int = 0) -> list[Message]:
    """Write confirmed messages straight into a store, alternating speakers."""
    messages = []
    for order in range(start, start + count):
        message = Message(
            id=f"m{order}",
            chat_id=chat.id,
            character_id=None if order % 2 else chat.character_id,
            text=f"message {order}",
            order=order,
        )
        await store._put_message(message)
        messages.append(message)
    return messages
