"""Feed assembler.

Hides how the displayed feed is built: which remote records are loaded,
how they merge with optimistic entries, when older pages are fetched and
when the view should stick to the bottom.

The assembler is the only writer of the feed. Everything else (the
subscription, mutation confirmations, the queue) hands it records or
signals and receives snapshots back.
"""

import logging
from collections.abc import Callable

from ..errors import TeardownRace
from ..store.base import MessageStore
from ..store.models import Message
from .models import FeedItem, FeedSnapshot, OptimisticEntry, PendingKind
from .queue import OptimisticMutationQueue

logger = logging.getLogger(__name__)


def _overlay(message: Message, entries: list[OptimisticEntry]) -> FeedItem:
    """Apply pending per-message mutations to a confirmed record."""
    changes: dict = {}
    pending = set()
    for entry in entries:
        pending.add(entry.kind)
        if entry.kind is PendingKind.REACTION and entry.preview is not None:
            changes["reaction"] = entry.preview.reaction
        elif entry.kind is PendingKind.REGENERATE:
            changes.update(text="", translation=None, speech_url=None)
    if changes:
        message = message.model_copy(update=changes)
    return FeedItem(message=message, pending=frozenset(pending))


class FeedAssembler:
    """Single writer of one chat's displayed feed.

    Args:
        store: Where pages are loaded from
        chat_id: The chat being displayed
        queue: Source of optimistic entries
        on_snapshot: Receives every emitted snapshot
        initial_num_items: Size of the first page
        load_more_num_items: Size of each older page
    """

    def __init__(
        self,
        store: MessageStore,
        chat_id: str,
        queue: OptimisticMutationQueue,
        on_snapshot: Callable[[FeedSnapshot], None] | None = None,
        initial_num_items: int = 5,
        load_more_num_items: int = 10,
    ) -> None:
        self._store = store
        self.chat_id = chat_id
        self._queue = queue
        self._on_snapshot = on_snapshot
        self._initial_num_items = initial_num_items
        self._load_more_num_items = load_more_num_items

        self._records: dict[str, Message] = {}
        self._cursor: str | None = None
        self._has_more = False
        self._initial_loaded = False
        self._loading_older = False
        self._user_scrolled = False
        self._oldest_visible = False
        self._released = False
        self._items: tuple[FeedItem, ...] = ()
        self._version = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple[FeedItem, ...]:
        return self._items

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def loading_older(self) -> bool:
        return self._loading_older

    @property
    def user_scrolled(self) -> bool:
        return self._user_scrolled

    @property
    def released(self) -> bool:
        return self._released

    def get(self, message_id: str) -> Message | None:
        """Confirmed record for a message id, without overlays."""
        return self._records.get(message_id)

    def item(self, message_id: str) -> FeedItem | None:
        """Displayed item for a message id."""
        return next((i for i in self._items if i.id == message_id), None)

    def confirmed_messages(self) -> list[Message]:
        """Loaded confirmed records, ascending by order."""
        return sorted(self._records.values(), key=lambda m: m.order)

    def snapshot(self, scroll_to_bottom: bool = False) -> FeedSnapshot:
        return FeedSnapshot(
            items=self._items,
            version=self._version,
            scroll_to_bottom=scroll_to_bottom,
            has_more=self._has_more,
            loading_older=self._loading_older,
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_initial(self) -> FeedSnapshot:
        """Load the newest page and anchor the view to the bottom."""
        page = await self._store.load_older_page(self.chat_id, None, self._initial_num_items)
        self._check_alive()
        self._merge(page.messages)
        self._cursor = page.next_cursor
        self._has_more = page.has_more
        self._initial_loaded = True
        self._user_scrolled = False
        logger.debug("Loaded %d messages of chat %s", len(page.messages), self.chat_id)
        return self._emit(force_scroll=True)

    async def load_older(self) -> bool:
        """Fetch the next older page as a prefix of the feed.

        Returns:
            True if a page was requested
        """
        if not self._initial_loaded or not self._has_more or self._loading_older:
            return False
        self._loading_older = True
        try:
            page = await self._store.load_older_page(
                self.chat_id, self._cursor, self._load_more_num_items
            )
        finally:
            self._loading_older = False
        self._check_alive()
        self._merge(page.messages)
        self._cursor = page.next_cursor
        self._has_more = page.has_more
        logger.debug("Loaded %d older messages of chat %s", len(page.messages), self.chat_id)
        self._emit()
        return True

    def on_user_scroll(self) -> None:
        """The user scrolled away from the bottom."""
        self._user_scrolled = True

    def anchor_to_bottom(self) -> None:
        """Follow new messages again."""
        self._user_scrolled = False

    async def on_oldest_visibility(self, visible: bool) -> bool:
        """Report whether the oldest loaded item is in the viewport.

        An older page is requested once per not-visible to visible
        crossing, and only while the user has scrolled manually.

        Returns:
            True if this report triggered a page load
        """
        crossed = visible and not self._oldest_visible
        self._oldest_visible = visible
        if not crossed or not self._user_scrolled:
            return False
        return await self.load_older()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def apply_remote(self, message: Message, correlation_id: str | None = None) -> FeedSnapshot | None:
        """Reconcile one authoritative record.

        Retires the optimistic entry matching the record's correlation id
        (or ``correlation_id`` when the record comes from a mutation
        result) and emits one snapshot for both changes. Stale revisions
        never overwrite newer ones; tombstones remove the record.

        Raises:
            TeardownRace: If the assembler was released
        """
        self._check_alive()
        if message.chat_id != self.chat_id:
            return None
        self._queue.confirm(message.correlation_id)
        if correlation_id is not None and correlation_id != message.correlation_id:
            self._queue.confirm(correlation_id)

        current = self._records.get(message.id)
        if message.deleted:
            self._records.pop(message.id, None)
        elif current is None or message.revision >= current.revision:
            self._records[message.id] = message
        return self._emit()

    def refresh(self) -> FeedSnapshot | None:
        """Rebuild after the queue changed."""
        if self._released:
            return None
        return self._emit()

    def release(self) -> None:
        """Stop emitting. Later updates raise ``TeardownRace``."""
        self._released = True
        self._on_snapshot = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_alive(self) -> None:
        if self._released:
            raise TeardownRace(f"feed of chat {self.chat_id} was released")

    def _merge(self, messages: list[Message]) -> None:
        for message in messages:
            if message.deleted:
                self._records.pop(message.id, None)
                continue
            current = self._records.get(message.id)
            if current is None or message.revision >= current.revision:
                self._records[message.id] = message

    def _build(self) -> tuple[FeedItem, ...]:
        entries = self._queue.entries()
        by_target: dict[str, list[OptimisticEntry]] = {}
        sends: list[OptimisticEntry] = []
        for entry in entries:
            if entry.kind is PendingKind.SEND:
                sends.append(entry)
            elif entry.target_id is not None:
                by_target.setdefault(entry.target_id, []).append(entry)

        confirmed = self.confirmed_messages()
        seen_ids = {m.id for m in confirmed}
        seen_correlations = {m.correlation_id for m in confirmed if m.correlation_id}

        items = [_overlay(m, by_target.get(m.id, [])) for m in confirmed]
        for entry in sends:
            if entry.preview is None or entry.correlation_id in seen_correlations:
                continue
            if entry.preview.id in seen_ids:
                continue
            seen_ids.add(entry.preview.id)
            items.append(FeedItem(
                message=entry.preview,
                optimistic=True,
                pending=frozenset({PendingKind.SEND}),
            ))
        return tuple(items)

    def _emit(self, force_scroll: bool = False) -> FeedSnapshot | None:
        items = self._build()
        if items == self._items and not force_scroll:
            return None
        grew = len(items) > len(self._items)
        self._items = items
        self._version += 1
        snapshot = self.snapshot(scroll_to_bottom=force_scroll or (grew and not self._user_scrolled))
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)
        return snapshot
