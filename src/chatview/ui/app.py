"""Main Textual application.

Orchestrates the chat view: mounts one ChatSession for the lifetime of
the app and turns widget events into session calls.
"""

import asyncio
import logging

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Static

from ..config import SPEECH_COST, LogLevel, SessionConfig, model_cost
from ..errors import AlreadyInProgress, ChatViewError, StoreError
from ..session.audio import AudioPlayer
from ..session.session import ChatSession
from ..store.base import MessageStore
from ..store.models import Character, Chat, Reaction
from .callbacks import TUIListener
from .screens import CREATE_STORY_PROMPT, DELETE_CHAT_PROMPT, ConfirmationScreen
from .styles import APP_CSS
from .themes import DUSK
from .widgets import ChatInputBar, DebugPanel, FeedWidget, MessageView, PanelLogHandler

logger = logging.getLogger(__name__)


class ChatViewApp(App):
    """Textual chat view for one character chat."""

    CSS = APP_CSS
    TITLE = "chatview"

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit"),
        Binding("ctrl+n", "autopilot", "Continue"),
        Binding("ctrl+g", "scroll_bottom", "Bottom"),
        Binding("ctrl+s", "create_story", "Story"),
        Binding("ctrl+x", "delete_chat", "Delete Chat", priority=True),
        Binding("ctrl+d", "toggle_debug", "Debug", priority=True),
    ]

    def __init__(
        self,
        store: MessageStore,
        chat: Chat,
        character: Character,
        config: SessionConfig,
        player: AudioPlayer | None = None,
        log_level: str | None = None,
    ) -> None:
        super().__init__()
        self._store = store
        self._chat = chat
        self._character = character
        self._config = config
        self._log_level = log_level
        self._log_handler: PanelLogHandler | None = None
        self.session = ChatSession(
            store,
            chat,
            character,
            config,
            player=player,
            listener=TUIListener(self),
        )

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static(self._header_text(), id="chat-header")
        yield FeedWidget(id="feed")
        yield DebugPanel(id="debug-panel")
        with Vertical(id="bottom-bar"):
            yield ChatInputBar(id="chat-input-bar")
        yield Footer()

    def _header_text(self) -> str:
        public = "  public" if self._chat.is_public else ""
        return (
            f"{self._character.model} x {model_cost(self._character.model)} crystals"
            f"  |  speech x {SPEECH_COST}{public}"
        )

    def on_mount(self) -> None:
        self.register_theme(DUSK)
        self.theme = DUSK.name
        self.sub_title = f"{self._character.name} | {self._store.backend_type}"

        log_panel = self.query_one("#debug-panel", DebugPanel)
        self._log_handler = PanelLogHandler(log_panel)
        logging.getLogger("chatview").addHandler(self._log_handler)
        if self._log_level is not None:
            log_panel.log_level = LogLevel.from_string(self._log_level)
            log_panel.show()
            logger.info("Log panel enabled with level: %s", self._log_level.upper())

        self.query_one("#feed", FeedWidget).bind(self.session)
        self._open_session()

    async def on_unmount(self) -> None:
        if self._log_handler is not None:
            logging.getLogger("chatview").removeHandler(self._log_handler)
            self._log_handler = None
        await self.session.close()

    @work(exclusive=True, group="open")
    async def _open_session(self) -> None:
        try:
            await self.session.open()
        except StoreError:
            # Already reported through the session's notifications
            logger.warning("Could not open chat %s", self._chat.id)
        self.query_one("#chat-input-bar", ChatInputBar).focus_input()

    async def _guard(self, action) -> None:
        """Run a session call. Store errors were already notified."""
        try:
            await action
        except AlreadyInProgress as e:
            logger.debug("Ignoring %s", e)
        except StoreError as e:
            logger.info("Action failed: %s", e)
        except ChatViewError as e:
            logger.debug("Action after close: %s", e)
        except ValueError as e:
            # The message left the feed before the action ran
            logger.debug("Stale action: %s", e)

    # ------------------------------------------------------------------
    # Widget events
    # ------------------------------------------------------------------

    def on_chat_input_bar_submitted(self, event: ChatInputBar.Submitted) -> None:
        self._run_action(self.session.send(event.value))

    def on_chat_input_bar_continue_requested(self, event: ChatInputBar.ContinueRequested) -> None:
        self.action_autopilot()

    def on_message_view_action_requested(self, event: MessageView.ActionRequested) -> None:
        message_id = event.message_id
        if event.action == "like":
            self._run_action(self.session.react(message_id, Reaction.LIKE))
        elif event.action == "dislike":
            self._run_action(self.session.dislike(message_id))
        elif event.action == "speak":
            self._run_action(self.session.toggle_speech(message_id))
        elif event.action == "translate":
            self._run_action(self.session.translate(message_id))
        elif event.action == "copy":
            message = self.session.feed.get(message_id)
            if message is not None:
                self.copy_to_clipboard(message.text)
                self.notify("Message copied to clipboard", timeout=2)

    def on_feed_widget_user_scrolled(self, event: FeedWidget.UserScrolled) -> None:
        self.session.on_user_scroll()

    def on_feed_widget_oldest_visibility(self, event: FeedWidget.OldestVisibility) -> None:
        self._run_action(self.session.on_oldest_visibility(event.visible))

    @work(group="actions")
    async def _run_action(self, action) -> None:
        await self._guard(action)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def action_autopilot(self) -> None:
        self._run_action(self.session.autopilot())

    def action_scroll_bottom(self) -> None:
        self.session.anchor_to_bottom()
        self.query_one("#feed", FeedWidget).scroll_end(animate=False)

    def action_toggle_debug(self) -> None:
        log_panel = self.query_one("#debug-panel", DebugPanel)
        is_visible = log_panel.toggle()
        self.notify(f"Log panel {'shown' if is_visible else 'hidden'}", timeout=2)

    def action_create_story(self) -> None:
        if not self._chat.is_public:
            self.notify("Only public chats can become stories", severity="warning", timeout=3)
            return

        def _confirmed(confirmed: bool | None) -> None:
            if confirmed:
                self._run_action(self.session.create_story())

        self.push_screen(ConfirmationScreen("Create a story", CREATE_STORY_PROMPT, "Create"), _confirmed)

    def action_delete_chat(self) -> None:
        def _confirmed(confirmed: bool | None) -> None:
            if confirmed:
                self._run_action(self.session.delete_chat())

        self.push_screen(ConfirmationScreen("Delete chat", DELETE_CHAT_PROMPT, "Delete"), _confirmed)


async def run_textual_tui(
    store: MessageStore,
    chat: Chat,
    character: Character,
    config: SessionConfig,
    player: AudioPlayer | None = None,
    log_level: str | None = None,
) -> str | None:
    """Run the chat view until the user quits.

    Args:
        store: Connected message store
        chat: Chat to open
        character: Character of the chat
        config: Session settings
        player: Audio backend for speech
        log_level: Log level for the panel (debug/info/warning/error), None to hide

    Returns:
        The exit message, if the app set one
    """
    app = ChatViewApp(
        store=store,
        chat=chat,
        character=character,
        config=config,
        player=player,
        log_level=log_level,
    )
    try:
        return await app.run_async()
    except (KeyboardInterrupt, asyncio.CancelledError):
        return None
    finally:
        await app.session.close()
