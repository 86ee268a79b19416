"""Tests for the Textual chat view."""
import pytest
from textual.widgets import Button

from chatview.session import SilentAudioPlayer
from chatview.store import Reaction
from chatview.ui import ChatInputBar, ChatViewApp, DebugPanel, FeedWidget, MessageView

from .helpers import USER_ID


@pytest.fixture
async def app(memory_store, character, session_config):
    """Chat view on a fresh chat with Luna."""
    chat = await memory_store.get_or_create_chat(USER_ID, character.id)
    return ChatViewApp(memory_store, chat, character, session_config, player=SilentAudioPlayer())


async def settle_app(app, pilot):
    await pilot.pause()
    await app.workers.wait_for_complete()
    await pilot.pause()


class TestChatViewApp:
    """Tests for ChatViewApp."""

    @pytest.mark.asyncio
    async def test_mount_opens_session(self, app):
        """Test that mounting opens the session and shows the greeting."""
        async with app.run_test() as pilot:
            await settle_app(app, pilot)

            assert app.session.is_open
            assert len(app.query(MessageView)) == 1

        assert app.session.closed

    @pytest.mark.asyncio
    async def test_submit_sends_message(self, app, memory_store):
        """Test that submitting the input shows the message and the reply."""
        async with app.run_test() as pilot:
            await settle_app(app, pilot)

            app.query_one(ChatInputBar).post_message(ChatInputBar.Submitted("hello"))
            await settle_app(app, pilot)
            await memory_store.drain()
            await settle_app(app, pilot)

            views = list(app.query(MessageView))
            assert len(views) == 3
            assert views[1].item.message.text == "hello"
            assert not views[2].item.is_generating

    @pytest.mark.asyncio
    async def test_toggle_debug_panel(self, app):
        """Test that Ctrl+D shows and hides the log panel."""
        async with app.run_test() as pilot:
            await settle_app(app, pilot)
            panel = app.query_one(DebugPanel)
            assert not panel.display

            await pilot.press("ctrl+d")
            assert panel.display

            await pilot.press("ctrl+d")
            assert not panel.display

    @pytest.mark.asyncio
    async def test_keyboard_scroll_marks_manual_scroll(self, app):
        """Test that paging the feed with the keyboard counts as scrolling."""
        async with app.run_test() as pilot:
            await settle_app(app, pilot)
            app.query_one(FeedWidget).focus()
            await pilot.pause()
            assert not app.session.feed.user_scrolled

            await pilot.press("pageup")
            await pilot.pause()

            assert app.session.feed.user_scrolled

    @pytest.mark.asyncio
    async def test_like_button_disabled_after_like(self, app):
        """Test that a liked message cannot be liked again."""
        async with app.run_test() as pilot:
            await settle_app(app, pilot)
            view = app.query_one(MessageView)
            like = next(b for b in view.query(Button) if b.name == "like")
            assert not like.disabled

            await app.session.react(view.message_id, Reaction.LIKE)
            await settle_app(app, pilot)

            assert like.disabled
            assert like.has_class("-active")
