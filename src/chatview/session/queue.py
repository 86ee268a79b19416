"""Optimistic mutation queue.

Hides how local, provisional mutations are tracked until the store
confirms or rejects them. Every entry carries a local correlation id; the
store stamps that id on the records it writes, which is how a confirmed
record is matched back to the entry it replaces.

The queue never touches the displayed feed. It signals changes through
``on_change`` and the feed assembler rebuilds from ``entries()``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from uuid import uuid4

from ..errors import AlreadyInProgress, SessionClosed
from ..store.models import Confirmation, Message
from .models import EXCLUSIVE_KINDS, EntryState, OptimisticEntry, PendingKind

logger = logging.getLogger(__name__)


def new_correlation_id() -> str:
    """Create a local-only correlation id."""
    return f"corr_{uuid4().hex}"


class OptimisticMutationQueue:
    """Tracks pending mutations of one chat session.

    Entries move from pending to confirmed or rejected exactly once.
    Confirming or rejecting an unknown or already retired correlation id
    is a no-op, so confirmations may arrive from the subscription and from
    the mutation's return value in any order.
    """

    def __init__(self, chat_id: str, on_change: Callable[[], None] | None = None) -> None:
        self.chat_id = chat_id
        self._on_change = on_change
        self._entries: dict[str, OptimisticEntry] = {}
        self._exclusive: dict[tuple[PendingKind, str], str] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[OptimisticEntry]:
        """Pending entries in submission order."""
        return sorted(self._entries.values(), key=lambda e: e.sequence)

    def get(self, correlation_id: str) -> OptimisticEntry | None:
        return self._entries.get(correlation_id)

    def is_pending(self, kind: PendingKind, target_id: str) -> bool:
        """Whether an entry of this kind is outstanding for a message."""
        if kind in EXCLUSIVE_KINDS:
            return (kind, target_id) in self._exclusive
        return any(e.kind is kind and e.target_id == target_id for e in self._entries.values())

    def submit(
        self,
        kind: PendingKind,
        target_id: str | None = None,
        preview: Message | None = None,
        correlation_id: str | None = None
    ) -> OptimisticEntry:
        """Create a pending entry, visible immediately.

        Args:
            kind: What the mutation does
            target_id: Message the mutation applies to (not for sends)
            preview: Provisional record or overlay to display
            correlation_id: Id already stamped on the preview, if any

        Returns:
            The new entry

        Raises:
            SessionClosed: If the queue was discarded
            AlreadyInProgress: If an exclusive kind is already pending for the target
        """
        if self._closed:
            raise SessionClosed("Chat session is closed")
        if kind in EXCLUSIVE_KINDS:
            if target_id is None:
                raise ValueError(f"{kind.value} needs a target message")
            if (kind, target_id) in self._exclusive:
                raise AlreadyInProgress(kind.value, target_id)

        entry = OptimisticEntry(
            correlation_id=correlation_id or new_correlation_id(),
            kind=kind,
            chat_id=self.chat_id,
            target_id=target_id,
            preview=preview,
        )
        self._entries[entry.correlation_id] = entry
        if kind in EXCLUSIVE_KINDS:
            self._exclusive[(kind, target_id)] = entry.correlation_id
        logger.debug("Submitted %s %s", kind.value, entry.correlation_id)
        self._changed()
        return entry

    def confirm(self, correlation_id: str | None) -> OptimisticEntry | None:
        """Retire a pending entry because its authoritative record arrived.

        Does not signal a change: the caller inserts the record and emits
        one snapshot for both.

        Returns:
            The retired entry, or None if nothing was pending under this id
        """
        entry = self._retire(correlation_id, EntryState.CONFIRMED)
        if entry is not None:
            logger.debug("Confirmed %s %s", entry.kind.value, correlation_id)
        return entry

    def reject(self, correlation_id: str) -> OptimisticEntry | None:
        """Remove a pending entry whose mutation failed."""
        entry = self._retire(correlation_id, EntryState.REJECTED)
        if entry is not None:
            logger.debug("Rejected %s %s", entry.kind.value, correlation_id)
            self._changed()
        return entry

    def discard_all(self) -> None:
        """Drop every entry and refuse new ones. Used on teardown."""
        self._closed = True
        if self._entries:
            logger.debug("Discarding %d in-flight entries", len(self._entries))
        self._entries.clear()
        self._exclusive.clear()

    async def run(
        self,
        entry: OptimisticEntry,
        call: Callable[[], Awaitable[Confirmation]]
    ) -> Confirmation:
        """Issue the remote mutation for an entry.

        Any failure rejects the entry and propagates. There is no retry.
        """
        try:
            return await call()
        except Exception:
            self.reject(entry.correlation_id)
            raise
        except asyncio.CancelledError:
            self._retire(entry.correlation_id, EntryState.REJECTED)
            raise

    def _retire(self, correlation_id: str | None, state: EntryState) -> OptimisticEntry | None:
        if correlation_id is None:
            return None
        entry = self._entries.pop(correlation_id, None)
        if entry is None:
            return None
        entry.state = state
        if entry.kind in EXCLUSIVE_KINDS:
            self._exclusive.pop((entry.kind, entry.target_id), None)
        return entry

    def _changed(self) -> None:
        if self._on_change is not None and not self._closed:
            self._on_change()
