"""Unit tests for the feed assembler."""
import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st

from chatview.errors import TeardownRace
from chatview.session import FeedAssembler, OptimisticMutationQueue, PendingKind
from chatview.store import Message, Reaction

from .helpers import USER_ID, seed_messages, settle


def make_feed(store=None, chat_id="chat_1", **kwargs):
    """Feed wired to its own queue, recording snapshots."""
    snapshots = []
    queue = OptimisticMutationQueue(chat_id)
    feed = FeedAssembler(store, chat_id, queue, on_snapshot=snapshots.append, **kwargs)
    queue._on_change = feed.refresh
    return feed, queue, snapshots


def record(order, revision=0, **kwargs):
    kwargs.setdefault("character_id", "char_luna")
    kwargs.setdefault("text", f"message {order} r{revision}")
    return Message(id=f"m{order}", chat_id="chat_1", order=order, revision=revision, **kwargs)


class TestReconciliation:
    """Tests for apply_remote."""

    @given(st.lists(
        st.tuples(st.integers(min_value=0, max_value=30), st.integers(min_value=0, max_value=5)),
        max_size=60,
    ))
    def test_feed_is_ordered_and_unique(self, updates):
        """Property test: any arrival order yields unique ids ascending by order."""
        feed, _, _ = make_feed()
        newest: dict[int, int] = {}
        for order, revision in updates:
            feed.apply_remote(record(order, revision))
            newest[order] = max(revision, newest.get(order, -1))

        orders = [item.message.order for item in feed.items]
        assert orders == sorted(set(orders))
        assert len({item.id for item in feed.items}) == len(feed.items)
        for item in feed.items:
            assert item.message.revision == newest[item.message.order]

    def test_stale_revision_ignored(self):
        """Test that an older revision never overwrites a newer one."""
        feed, _, _ = make_feed()
        feed.apply_remote(record(1, revision=2, text="filled"))
        feed.apply_remote(record(1, revision=1, text=""))

        assert feed.get("m1").text == "filled"

    def test_tombstone_removes_record(self):
        """Test that a deleted record leaves the feed."""
        feed, _, _ = make_feed()
        feed.apply_remote(record(1))
        feed.apply_remote(record(2))
        feed.apply_remote(record(1, revision=1, deleted=True))

        assert [item.id for item in feed.items] == ["m2"]

    def test_other_chat_ignored(self):
        """Test that records of another chat are dropped."""
        feed, _, snapshots = make_feed()
        other = Message(id="x1", chat_id="chat_2", text="elsewhere", order=0)

        assert feed.apply_remote(other) is None
        assert feed.items == ()
        assert snapshots == []

    def test_unchanged_record_emits_nothing(self):
        """Test that a duplicate delivery does not produce a snapshot."""
        feed, _, snapshots = make_feed()
        feed.apply_remote(record(1))
        assert feed.apply_remote(record(1)) is None
        assert len(snapshots) == 1

    def test_released_feed_raises(self):
        """Test that updates after release report the teardown race."""
        feed, _, snapshots = make_feed()
        feed.release()

        with pytest.raises(TeardownRace):
            feed.apply_remote(record(1))
        assert feed.refresh() is None
        assert snapshots == []


class TestOptimisticMerge:
    """Tests for how optimistic entries appear in the feed."""

    def preview(self, correlation_id, order=5, text="hello"):
        return Message(
            id=f"local_{correlation_id}",
            chat_id="chat_1",
            text=text,
            order=order,
            correlation_id=correlation_id,
        )

    def test_pending_send_appended(self):
        """Test that a pending send shows after confirmed records."""
        feed, queue, snapshots = make_feed()
        feed.apply_remote(record(0))
        queue.submit(PendingKind.SEND, preview=self.preview("corr_a"), correlation_id="corr_a")

        assert [item.optimistic for item in feed.items] == [False, True]
        assert feed.items[-1].message.text == "hello"
        assert len(snapshots) == 2

    def test_confirmation_replaces_preview_in_one_snapshot(self):
        """Test that the confirmed record swaps in for its preview."""
        feed, queue, snapshots = make_feed()
        queue.submit(PendingKind.SEND, preview=self.preview("corr_a"), correlation_id="corr_a")
        confirmed = Message(id="m5", chat_id="chat_1", text="hello", order=5, correlation_id="corr_a")

        feed.apply_remote(confirmed)

        assert [item.id for item in feed.items] == ["m5"]
        assert not feed.items[0].optimistic
        assert len(queue) == 0
        assert [len(s) for s in snapshots] == [1, 1]

    def test_confirmation_by_explicit_correlation(self):
        """Test that a mutation result confirms even without a stamped record."""
        feed, queue, _ = make_feed()
        entry = queue.submit(PendingKind.SEND, preview=self.preview("corr_a"), correlation_id="corr_a")
        unstamped = Message(id="m5", chat_id="chat_1", text="hello", order=5)

        feed.apply_remote(unstamped, entry.correlation_id)

        assert [item.id for item in feed.items] == ["m5"]
        assert len(queue) == 0

    def test_two_sends_keep_submission_order(self):
        """Test that concurrent sends render in the order they were made."""
        feed, queue, _ = make_feed()
        queue.submit(PendingKind.SEND, preview=self.preview("corr_a", text="one"), correlation_id="corr_a")
        queue.submit(PendingKind.SEND, preview=self.preview("corr_b", text="two"), correlation_id="corr_b")

        assert [item.message.text for item in feed.items] == ["one", "two"]

    def test_reaction_overlay(self):
        """Test that a pending reaction is shown before it is confirmed."""
        feed, queue, _ = make_feed()
        feed.apply_remote(record(0))
        preview = feed.get("m0").model_copy(update={"reaction": Reaction.LIKE})
        queue.submit(PendingKind.REACTION, target_id="m0", preview=preview)

        item = feed.item("m0")
        assert item.message.reaction == Reaction.LIKE
        assert feed.get("m0").reaction is None

    def test_regenerate_overlay_blanks_message(self):
        """Test that a pending regenerate shows the message as generating."""
        feed, queue, _ = make_feed()
        feed.apply_remote(record(0, translation="traduit", speech_url="file:///a.mp3"))
        queue.submit(PendingKind.REGENERATE, target_id="m0")

        item = feed.item("m0")
        assert item.is_generating
        assert item.is_regenerating
        assert item.message.translation is None
        assert item.message.speech_url is None

    def test_rejection_removes_overlay(self):
        """Test that a rejected entry leaves the confirmed record as it was."""
        feed, queue, _ = make_feed()
        feed.apply_remote(record(0))
        entry = queue.submit(PendingKind.TRANSLATE, target_id="m0")
        assert feed.item("m0").is_translating

        queue.reject(entry.correlation_id)

        assert not feed.item("m0").is_translating


class TestScrolling:
    """Tests for auto-scroll hints."""

    def test_growth_scrolls_unless_user_scrolled(self):
        """Test that new items pull the view down only while anchored."""
        feed, _, snapshots = make_feed()
        feed.apply_remote(record(0))
        assert snapshots[-1].scroll_to_bottom

        feed.on_user_scroll()
        feed.apply_remote(record(1))
        assert not snapshots[-1].scroll_to_bottom

        feed.anchor_to_bottom()
        feed.apply_remote(record(2))
        assert snapshots[-1].scroll_to_bottom

    def test_update_in_place_does_not_scroll(self):
        """Test that changing an existing item keeps the scroll position."""
        feed, _, snapshots = make_feed()
        feed.apply_remote(record(0, text=""))
        feed.apply_remote(record(0, revision=1, text="done"))
        assert not snapshots[-1].scroll_to_bottom


class TestPagination:
    """Tests for initial load and older pages."""

    @pytest.fixture
    async def long_chat(self, quiet_store, silent_character):
        chat = await quiet_store.get_or_create_chat(USER_ID, silent_character.id)
        await seed_messages(quiet_store, chat, 30)
        return chat

    @pytest.mark.asyncio
    async def test_initial_load_newest_page(self, quiet_store, long_chat):
        """Test that the first page is the newest and scrolls to the bottom."""
        feed, _, snapshots = make_feed(quiet_store, long_chat.id)

        snapshot = await feed.load_initial()

        assert [item.message.order for item in snapshot.items] == [25, 26, 27, 28, 29]
        assert snapshot.scroll_to_bottom
        assert snapshot.has_more
        assert snapshots == [snapshot]

    @pytest.mark.asyncio
    async def test_crossing_loads_once(self, quiet_store, long_chat):
        """Test that one not-visible to visible crossing fetches one page."""
        feed, _, snapshots = make_feed(quiet_store, long_chat.id)
        await feed.load_initial()

        await feed.on_oldest_visibility(False)
        feed.on_user_scroll()
        assert await feed.on_oldest_visibility(True) is True
        assert [item.message.order for item in feed.items] == list(range(15, 30))
        assert not snapshots[-1].scroll_to_bottom

        assert await feed.on_oldest_visibility(True) is False
        assert len(feed.items) == 15

        await feed.on_oldest_visibility(False)
        assert await feed.on_oldest_visibility(True) is True
        assert len(feed.items) == 25

    @pytest.mark.asyncio
    async def test_no_load_without_user_scroll(self, quiet_store, long_chat):
        """Test that visibility alone never loads while the view is anchored."""
        feed, _, _ = make_feed(quiet_store, long_chat.id)
        await feed.load_initial()

        await feed.on_oldest_visibility(False)
        assert await feed.on_oldest_visibility(True) is False
        assert len(feed.items) == 5

    @pytest.mark.asyncio
    async def test_no_load_when_exhausted(self, quiet_store, long_chat):
        """Test that nothing is requested once the oldest page arrived."""
        feed, _, _ = make_feed(quiet_store, long_chat.id, load_more_num_items=25)
        await feed.load_initial()
        feed.on_user_scroll()

        assert await feed.load_older() is True
        assert not feed.has_more
        await feed.on_oldest_visibility(False)
        assert await feed.on_oldest_visibility(True) is False
        assert len(feed.items) == 30

    @pytest.mark.asyncio
    async def test_no_second_load_in_flight(self, quiet_store, long_chat):
        """Test that a crossing during a load does not start another."""
        feed, _, _ = make_feed(quiet_store, long_chat.id)
        await feed.load_initial()

        gate = asyncio.Event()
        cursors = []
        original = quiet_store.load_older_page

        async def slow_page(chat_id, cursor, limit):
            cursors.append(cursor)
            await gate.wait()
            return await original(chat_id, cursor, limit)

        quiet_store.load_older_page = slow_page
        feed.on_user_scroll()
        await feed.on_oldest_visibility(False)
        first = asyncio.create_task(feed.on_oldest_visibility(True))
        await settle()
        assert feed.loading_older

        await feed.on_oldest_visibility(False)
        assert await feed.on_oldest_visibility(True) is False

        gate.set()
        assert await first is True
        assert len(cursors) == 1
        assert not feed.loading_older

    @pytest.mark.asyncio
    async def test_load_after_release_raises(self, quiet_store, long_chat):
        """Test that a page arriving after release is not applied."""
        feed, _, snapshots = make_feed(quiet_store, long_chat.id)
        feed.release()

        with pytest.raises(TeardownRace):
            await feed.load_initial()
        assert snapshots == []
