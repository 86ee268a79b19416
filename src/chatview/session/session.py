"""Chat session view-model.

Hides how one mounted chat view ties the store, the optimistic queue,
the feed assembler and playback together. A session lives exactly as
long as the view: ``open()`` on mount, ``close()`` on unmount. After
close nothing it owns touches the UI again.
"""

import asyncio
import contextlib
import logging

from ..config import NOTIFICATION_TIMEOUT, TRANSIENT_NOTIFICATION_TIMEOUT, SessionConfig
from ..errors import (
    AlreadyInProgress,
    RemoteUnavailable,
    SessionClosed,
    StoreError,
    TeardownRace,
)
from ..store.base import MessageStore
from ..store.models import Character, Chat, Confirmation, Message, Reaction, new_id
from .audio import AudioPlayer
from .feed import FeedAssembler
from .models import FeedSnapshot, Notification, PendingKind
from .playback import PlaybackCoordinator
from .queue import OptimisticMutationQueue, new_correlation_id
from .thinking import ThinkingIndicator

logger = logging.getLogger(__name__)


class SessionListener:
    """Receives session output. The UI overrides what it renders."""

    def on_feed(self, snapshot: FeedSnapshot) -> None:
        pass

    def on_notification(self, notification: Notification) -> None:
        pass

    def on_thinking(self, text: str | None) -> None:
        """Thinking indicator text, or None once nothing is generating."""

    def on_playback(self, message_id: str | None) -> None:
        """Message now playing, or None when playback stopped."""

    def on_chat_removed(self, chat_id: str) -> None:
        pass


def notification_for(error: StoreError) -> Notification:
    """Map a store failure to what the user sees."""
    if error.is_retryable():
        return Notification(
            message=f"{error} Please try again.",
            severity="warning",
            timeout=TRANSIENT_NOTIFICATION_TIMEOUT,
        )
    return Notification(message=str(error), severity="error", timeout=NOTIFICATION_TIMEOUT)


class ChatSession:
    """View-model of one open chat.

    Args:
        store: Connected message store
        chat: The chat to display
        character: The character of the chat
        config: Session settings
        player: Audio backend for speech
        listener: Receives snapshots, notifications and indicator updates
    """

    def __init__(
        self,
        store: MessageStore,
        chat: Chat,
        character: Character,
        config: SessionConfig,
        player: AudioPlayer | None = None,
        listener: SessionListener | None = None,
    ) -> None:
        self.store = store
        self.chat = chat
        self.character = character
        self.config = config
        self.listener = listener or SessionListener()

        self.queue = OptimisticMutationQueue(chat.id, on_change=self._on_queue_change)
        self.feed = FeedAssembler(
            store,
            chat.id,
            self.queue,
            on_snapshot=self._on_snapshot,
            initial_num_items=config.initial_num_items,
            load_more_num_items=config.load_more_num_items,
        )
        self.playback = PlaybackCoordinator(
            chat.id,
            synthesize=self._synthesize,
            player=player,
            on_change=self._on_playback_change,
        )

        self._subscription = None
        self._pump_task: asyncio.Task | None = None
        self._ticker_task: asyncio.Task | None = None
        self._indicator: ThinkingIndicator | None = None
        self._opened = False
        self._closed = False

    @property
    def chat_id(self) -> str:
        return self.chat.id

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def thinking_text(self) -> str | None:
        return self._indicator.text if self._indicator else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> FeedSnapshot:
        """Subscribe, load the newest page and start following the chat."""
        if self._closed:
            raise SessionClosed("Chat session is closed")
        self._subscription = self.store.subscribe_new(self.chat.id)
        try:
            snapshot = await self.feed.load_initial()
        except StoreError as e:
            self._subscription.close()
            self._notify(notification_for(e))
            raise
        except TeardownRace:
            logger.debug("Chat %s closed while loading", self.chat.id)
            return self.feed.snapshot()
        self._pump_task = asyncio.create_task(self._pump())
        self._opened = True
        logger.info("Opened chat %s with %s", self.chat.id, self.character.name)
        return snapshot

    async def close(self) -> None:
        """Tear down: stop tasks, drop in-flight entries, silence the UI."""
        if self._closed:
            return
        self._closed = True
        self.feed.release()
        self.queue.discard_all()
        if self._subscription is not None:
            self._subscription.close()
        for task in (self._pump_task, self._ticker_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._indicator = None
        await self.playback.close()
        logger.info("Closed chat %s", self.chat.id)

    async def __aenter__(self) -> "ChatSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _pump(self) -> None:
        """Apply subscription records in arrival order."""
        try:
            async for message in self._subscription:
                self.feed.apply_remote(message)
        except TeardownRace:
            logger.debug("Subscription update for chat %s after close", self.chat.id)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed("Chat session is closed")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _on_snapshot(self, snapshot: FeedSnapshot) -> None:
        if self._closed:
            return
        self.listener.on_feed(snapshot)
        self._sync_thinking(snapshot)

    def _on_queue_change(self) -> None:
        self.feed.refresh()

    def _on_playback_change(self) -> None:
        if self._closed:
            return
        active = self.playback.active
        self.listener.on_playback(active.message_id if active else None)

    def _notify(self, notification: Notification) -> None:
        if not self._closed:
            self.listener.on_notification(notification)

    def _sync_thinking(self, snapshot: FeedSnapshot) -> None:
        generating = snapshot.is_generating
        running = self._ticker_task is not None and not self._ticker_task.done()
        if generating and not running:
            self._indicator = ThinkingIndicator()
            self._ticker_task = asyncio.create_task(self._tick())
        elif not generating and running:
            self._ticker_task.cancel()
            self._ticker_task = None
            self._indicator = None
            self.listener.on_thinking(None)

    async def _tick(self) -> None:
        indicator = self._indicator
        while not self._closed and indicator is self._indicator:
            self.listener.on_thinking(indicator.text)
            await asyncio.sleep(self.config.thinking_tick_seconds)
            indicator.tick()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _mutate(self, entry, call) -> Confirmation | None:
        """Run a queued mutation and reconcile its result.

        Store failures are posted to the notification channel and
        re-raised; any other exception from the store counts as
        ``RemoteUnavailable``. Results that arrive after close are dropped.
        """
        try:
            try:
                confirmation = await self.queue.run(entry, call)
            except StoreError:
                raise
            except Exception as e:
                logger.exception("Unexpected %s failure", entry.kind.value)
                raise RemoteUnavailable(str(e) or type(e).__name__) from e
        except StoreError as e:
            if self._closed:
                logger.debug("Dropping %s failure after close: %s", entry.kind.value, e)
                return None
            self._notify(notification_for(e))
            raise
        if self._closed:
            return None
        try:
            self.feed.apply_remote(confirmation.message, confirmation.correlation_id)
        except TeardownRace:
            logger.debug("Confirmation %s after close", confirmation.correlation_id)
            return None
        return confirmation

    async def send(self, text: str) -> Confirmation | None:
        """Send a user message. Blank text is ignored."""
        self._ensure_open()
        if not text.strip():
            return None
        self.feed.anchor_to_bottom()
        last = self.feed.confirmed_messages()
        correlation_id = new_correlation_id()
        preview = Message(
            id=new_id("local"),
            chat_id=self.chat.id,
            text=text,
            order=(last[-1].order + 1) if last else 0,
            correlation_id=correlation_id,
        )
        entry = self.queue.submit(PendingKind.SEND, preview=preview, correlation_id=correlation_id)
        return await self._mutate(
            entry,
            lambda: self.store.send_message(self.chat.id, self.character.id, text, correlation_id),
        )

    def _require_message(self, message_id: str) -> Message:
        message = self.feed.get(message_id)
        if message is None:
            raise ValueError(f"Message not loaded: {message_id}")
        return message

    def can_react(self, message_id: str, reaction: Reaction) -> bool:
        """Whether the reaction would change the displayed message."""
        item = self.feed.item(message_id)
        return (
            self.is_open
            and item is not None
            and not item.optimistic
            and not item.message.is_from_user
            and item.message.reaction != Reaction(reaction)
        )

    async def react(self, message_id: str, reaction: Reaction) -> Confirmation | None:
        """Rate a character message. Repeating the current reaction is a no-op."""
        self._ensure_open()
        message = self._require_message(message_id)
        shown = self.feed.item(message_id)
        if shown is not None and shown.message.reaction == Reaction(reaction):
            logger.debug("Message %s already has reaction %s", message_id, Reaction(reaction).value)
            return None
        preview = message.model_copy(update={"reaction": Reaction(reaction)})
        entry = self.queue.submit(PendingKind.REACTION, target_id=message_id, preview=preview)
        return await self._mutate(
            entry,
            lambda: self.store.react(message_id, Reaction(reaction), entry.correlation_id),
        )

    def can_regenerate(self, message_id: str) -> bool:
        message = self.feed.get(message_id)
        return (
            self.is_open
            and message is not None
            and not message.is_from_user
            and not message.is_generating
            and not self.queue.is_pending(PendingKind.REGENERATE, message_id)
        )

    async def regenerate(self, message_id: str) -> Confirmation | None:
        """Ask the character for a new reply in place of an existing one.

        Raises:
            AlreadyInProgress: If a regenerate is outstanding for the message
        """
        self._ensure_open()
        self._require_message(message_id)
        entry = self.queue.submit(PendingKind.REGENERATE, target_id=message_id)
        return await self._mutate(
            entry,
            lambda: self.store.regenerate(
                self.chat.id, self.character.id, message_id, entry.correlation_id
            ),
        )

    async def dislike(self, message_id: str) -> Confirmation | None:
        """React with dislike, then regenerate the message.

        A message that is already disliked is left alone.
        """
        self._ensure_open()
        if self.queue.is_pending(PendingKind.REGENERATE, message_id):
            raise AlreadyInProgress(PendingKind.REGENERATE.value, message_id)
        self._require_message(message_id)
        if not self.can_react(message_id, Reaction.DISLIKE):
            logger.debug("Message %s is already disliked", message_id)
            return None
        await self.react(message_id, Reaction.DISLIKE)
        return await self.regenerate(message_id)

    def can_translate(self, message_id: str) -> bool:
        message = self.feed.get(message_id)
        return (
            self.is_open
            and message is not None
            and not message.translation
            and not message.is_generating
            and not self.queue.is_pending(PendingKind.TRANSLATE, message_id)
        )

    async def translate(self, message_id: str) -> Confirmation | None:
        """Translate a message into the session's target language.

        Raises:
            AlreadyInProgress: If the message is already translated or a
                translation is outstanding
        """
        self._ensure_open()
        message = self._require_message(message_id)
        if message.translation:
            raise AlreadyInProgress(PendingKind.TRANSLATE.value, message_id)
        entry = self.queue.submit(PendingKind.TRANSLATE, target_id=message_id)
        return await self._mutate(
            entry,
            lambda: self.store.translate(
                message_id, self.config.target_language, entry.correlation_id
            ),
        )

    async def _synthesize(self, message: Message) -> Message:
        entry = self.queue.submit(PendingKind.SPEECH, target_id=message.id)
        confirmation = await self._mutate(
            entry,
            lambda: self.store.request_speech(
                message.id, self.character.id, message.speech_text, entry.correlation_id
            ),
        )
        return confirmation.message if confirmation else message

    async def toggle_speech(self, message_id: str) -> bool:
        """Play or stop a message. Returns whether it is now speaking."""
        self._ensure_open()
        message = self._require_message(message_id)
        return await self.playback.toggle(message)

    def is_speaking(self, message_id: str) -> bool:
        return self.playback.is_speaking(message_id)

    async def autopilot(self) -> Confirmation | None:
        """Let the character continue the conversation on its own."""
        self._ensure_open()
        self.feed.anchor_to_bottom()
        try:
            confirmation = await self.store.autopilot(self.chat.id, self.character.id)
        except StoreError as e:
            self._notify(notification_for(e))
            raise
        if self._closed:
            return None
        self.feed.apply_remote(confirmation.message)
        return confirmation

    async def create_story(self) -> str:
        """Share the loaded conversation, without the greeting, as a story."""
        self._ensure_open()
        message_ids = [m.id for m in self.feed.confirmed_messages()[1:]]
        try:
            story_id = await self.store.create_story(self.character.id, message_ids)
        except StoreError as e:
            self._notify(notification_for(e))
            raise
        self._notify(Notification(message="Story has been created."))
        return story_id

    async def delete_chat(self) -> None:
        """Remove the chat, then close the session and leave the view."""
        self._ensure_open()
        try:
            await self.store.remove_chat(self.chat.id)
        except StoreError as e:
            self._notify(notification_for(e))
            raise
        self._notify(Notification(message="Chat has been deleted."))
        listener = self.listener
        await self.close()
        listener.on_chat_removed(self.chat.id)

    # ------------------------------------------------------------------
    # Scrolling
    # ------------------------------------------------------------------

    def on_user_scroll(self) -> None:
        self.feed.on_user_scroll()

    def anchor_to_bottom(self) -> None:
        self.feed.anchor_to_bottom()

    async def on_oldest_visibility(self, visible: bool) -> bool:
        """Report viewport visibility of the oldest item; may load a page."""
        if self._closed:
            return False
        try:
            return await self.feed.on_oldest_visibility(visible)
        except TeardownRace:
            return False
        except StoreError as e:
            self._notify(notification_for(e))
            raise

    async def load_older(self) -> bool:
        self._ensure_open()
        try:
            return await self.feed.load_older()
        except TeardownRace:
            return False
        except StoreError as e:
            self._notify(notification_for(e))
            raise
