"""Custom Textual widgets for the chat view.

Hides widget implementation details:
- Message rendering and per-message actions
- Feed reconciliation, scroll tracking and viewport edges
- Input history management
- Log rendering
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import Click, Key, MouseScrollDown, MouseScrollUp
from textual.message import Message
from textual.widgets import Button, Markdown, RichLog, Static, TextArea

from ..config import LogLevel
from ..formatting import display_text, speaker_label
from ..session.models import FeedItem, FeedSnapshot
from ..store.models import Reaction

if TYPE_CHECKING:
    from ..session.session import ChatSession


class ActionBar(Horizontal):
    """Buttons under a character message."""

    def compose(self):
        yield Button("Like", name="like", classes="action")
        yield Button("Dislike", name="dislike", classes="action").with_tooltip(
            "Dislike and regenerate"
        )
        yield Button("Play", name="speak", classes="action").with_tooltip(
            "Read the message out loud"
        )
        yield Button("Copy", name="copy", classes="action")
        yield Button("Translate", name="translate", classes="action")


class MessageView(Vertical):
    """One message of the feed: header, body and, for the character, actions."""

    class ActionRequested(Message):
        """Posted when an action button of a message is pressed."""

        def __init__(self, message_id: str, action: str) -> None:
            super().__init__()
            self.message_id = message_id
            self.action = action

    def __init__(self, item: FeedItem, session: "ChatSession", *args, **kwargs) -> None:
        kind = "user-message" if item.message.is_from_user else "character-message"
        super().__init__(*args, classes=f"chat-message {kind}", **kwargs)
        self.item = item
        self._session = session
        self._thinking_text: str | None = None
        self._header = Static("", classes="message-header")
        self._body = Markdown("", classes="message-content")
        self._thinking = Static("", classes="message-content thinking")
        self._actions = None if item.message.is_from_user else ActionBar(classes="action-bar")

    @property
    def message_id(self) -> str:
        return self.item.id

    def compose(self):
        yield self._header
        yield self._body
        yield self._thinking
        if self._actions is not None:
            yield self._actions

    def on_mount(self) -> None:
        self.show(self.item, self._thinking_text)

    def show(self, item: FeedItem, thinking_text: str | None = None) -> None:
        """Render an item with the session's current flags.

        Before the view is mounted the item is only stored.
        """
        self.item = item
        self._thinking_text = thinking_text
        if not self.is_mounted:
            return
        session = self._session
        message = item.message
        name = speaker_label(message, session.character.name, session.config.username)
        self._header.update(f"{name} [{message.created_at.astimezone():%H:%M}]")
        self.set_class(item.optimistic, "optimistic")

        generating = item.is_generating
        self._body.display = not generating
        self._thinking.display = generating
        if generating:
            self._thinking.update(thinking_text or "Thinking")
        else:
            self._body.update(display_text(message, session.config.username))

        if self._actions is None:
            return
        self._actions.display = not generating and not item.optimistic
        for button in self._actions.query(Button):
            if button.name == "like":
                button.set_class(message.reaction == Reaction.LIKE, "-active")
                button.disabled = not session.can_react(message.id, Reaction.LIKE)
            elif button.name == "dislike":
                button.set_class(message.reaction == Reaction.DISLIKE, "-active")
                button.disabled = not (
                    session.can_regenerate(message.id)
                    and session.can_react(message.id, Reaction.DISLIKE)
                )
            elif button.name == "speak":
                speaking = session.is_speaking(message.id)
                button.label = "Pause" if speaking else "Play"
                button.set_class(speaking, "-active")
            elif button.name == "translate":
                button.disabled = not session.can_translate(message.id)

    def set_thinking(self, text: str) -> None:
        self._thinking_text = text
        if self.is_mounted and self.item.is_generating:
            self._thinking.update(text)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        if event.button.name:
            self.post_message(self.ActionRequested(self.message_id, event.button.name))


class FeedWidget(VerticalScroll):
    """Scrollable conversation that mirrors session snapshots.

    Reports manual scrolling and whether the oldest loaded message is in
    view; the session decides what to do about it.
    """

    BORDER_TITLE = "Chat"
    ALLOW_SELECT = True
    SCROLL_KEYS = frozenset({"up", "down", "pageup", "pagedown", "home"})

    class UserScrolled(Message):
        """The user scrolled the feed by hand."""

    class OldestVisibility(Message):
        """The top of the feed entered or left the viewport."""

        def __init__(self, visible: bool) -> None:
            super().__init__()
            self.visible = visible

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._session: "ChatSession | None" = None
        self._thinking_text: str | None = None
        self._top_visible = False
        self._message_views: list[MessageView] = []

    def bind(self, session: "ChatSession") -> None:
        self._session = session

    def _views(self) -> list[MessageView]:
        return list(self._message_views)

    def render_snapshot(self, snapshot: FeedSnapshot) -> None:
        """Reconcile children with a snapshot, keeping the common prefix."""
        if self._session is None:
            return
        views = self._views()
        keep = 0
        for view, item in zip(views, snapshot.items, strict=False):
            if view.message_id != item.id:
                break
            keep += 1

        for view in views[keep:]:
            view.remove()
        for view, item in zip(views[:keep], snapshot.items, strict=False):
            view.show(item, self._thinking_text)

        new_views = [MessageView(item, self._session) for item in snapshot.items[keep:]]
        for view, item in zip(new_views, snapshot.items[keep:], strict=False):
            view.show(item, self._thinking_text)
        self._message_views = views[:keep] + new_views
        if new_views:
            self.mount(*new_views)

        more = " (scroll up for more)" if snapshot.has_more else ""
        self.border_subtitle = f"{len(snapshot)} messages{more}"
        if snapshot.scroll_to_bottom:
            self.call_after_refresh(self.scroll_end, animate=False)

    def set_thinking(self, text: str | None) -> None:
        self._thinking_text = text
        if text is None:
            return
        for view in self._views():
            view.set_thinking(text)

    def refresh_flags(self) -> None:
        """Re-render every message, e.g. after playback changed."""
        if self._session is None:
            return
        for view in self._views():
            view.show(view.item, self._thinking_text)

    def on_key(self, event: Key) -> None:
        if event.key in self.SCROLL_KEYS:
            self.post_message(self.UserScrolled())

    def on_mouse_scroll_up(self, event: MouseScrollUp) -> None:
        self.post_message(self.UserScrolled())

    def on_mouse_scroll_down(self, event: MouseScrollDown) -> None:
        self.post_message(self.UserScrolled())

    def watch_scroll_y(self, old_value: float, new_value: float) -> None:
        super().watch_scroll_y(old_value, new_value)
        visible = new_value <= 0
        if visible != self._top_visible:
            self._top_visible = visible
            self.post_message(self.OldestVisibility(visible))


class ChatInputBar(Horizontal):
    """Chat input bar with TextArea, Send and Continue buttons."""

    class Submitted(Message):
        """Message sent when user submits input."""

        def __init__(self, value: str) -> None:
            super().__init__()
            self.value = value

    class ContinueRequested(Message):
        """The user asked the character to go on by itself."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._history: list[str] = []
        self._history_index: int = -1

    def compose(self):
        text_area = TextArea(id="chat-input", show_line_numbers=False)
        text_area.cursor_blink = False
        yield text_area
        yield Button("Send", id="send-btn", variant="success").with_tooltip(
            "Send message (Ctrl+J)"
        )
        yield Button("Continue", id="continue-btn", variant="primary").with_tooltip(
            "Let the character continue"
        )

    def on_mount(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        text_area.focus()
        text_area.highlight_cursor_line = False

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-btn":
            self._submit()
        elif event.button.id == "continue-btn":
            self.post_message(self.ContinueRequested())

    def on_key(self, event) -> None:
        """Handle keyboard shortcuts.

        Terminals do not pass modifiers with Enter, so ctrl+j submits.
        """
        if event.key == "ctrl+j":
            self._submit()
            event.prevent_default()
            event.stop()
        elif event.key == "up" and self._is_cursor_at_start():
            self._navigate_history(-1)
            event.prevent_default()
            event.stop()
        elif event.key == "down" and self._is_cursor_at_end():
            self._navigate_history(1)
            event.prevent_default()
            event.stop()

    def _is_cursor_at_start(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        return text_area.cursor_location == (0, 0)

    def _is_cursor_at_end(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        lines = text_area.text.split("\n")
        return text_area.cursor_location == (len(lines) - 1, len(lines[-1]))

    def _navigate_history(self, direction: int) -> None:
        if not self._history:
            return
        text_area = self.query_one("#chat-input", TextArea)
        if direction < 0:
            if self._history_index == -1:
                self._history_index = len(self._history) - 1
            elif self._history_index > 0:
                self._history_index -= 1
        else:
            if self._history_index < len(self._history) - 1:
                self._history_index += 1
            else:
                self._history_index = -1
                text_area.text = ""
                return
        text_area.text = self._history[self._history_index]

    def _submit(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        value = text_area.text.strip()
        if value:
            if not self._history or self._history[-1] != value:
                self._history.append(value)
            self._history_index = -1
            text_area.text = ""
            self.post_message(self.Submitted(value))

    def focus_input(self) -> None:
        self.query_one("#chat-input", TextArea).focus()


class DebugPanel(RichLog):
    """Log panel with level filtering.

    Shows timestamped records from every chatview logger.
    Hidden by default, shown with --log-level or toggled with Ctrl+D.
    """

    BORDER_TITLE = "Log"
    BORDER_SUBTITLE = "Trace log"

    LEVEL_COLORS = {
        LogLevel.DEBUG: "dim white",
        LogLevel.INFO: "cyan",
        LogLevel.WARNING: "yellow",
        LogLevel.ERROR: "red",
    }

    COMPONENT_COLORS = {
        "session": "cyan",
        "feed": "green",
        "queue": "yellow",
        "playback": "magenta",
        "local": "blue",
        "sqlite": "bright_blue",
        "ui": "bright_cyan",
    }

    def __init__(self, *args, log_level: int = LogLevel.DEBUG, **kwargs) -> None:
        super().__init__(
            *args,
            markup=True,
            highlight=False,
            auto_scroll=True,
            wrap=False,
            **kwargs
        )
        self._log_level = log_level

    @property
    def log_level(self) -> int:
        return self._log_level

    @log_level.setter
    def log_level(self, level: int) -> None:
        self._log_level = level
        self._update_subtitle()

    def _update_subtitle(self) -> None:
        if self.display:
            self.border_subtitle = f"Level: {LogLevel.name(self._log_level)}"
        else:
            self.border_subtitle = "Hidden"

    def on_mount(self) -> None:
        self.display = False

    def log_record(self, component: str, message: str, level: int = LogLevel.DEBUG) -> None:
        """Add a log entry if it meets the current level threshold."""
        if level < self._log_level:
            return
        timestamp = datetime.now().strftime("%H:%M:%S")
        level_color = self.LEVEL_COLORS.get(level, "white")
        comp_color = self.COMPONENT_COLORS.get(component, "white")
        self.write(
            f"[dim]{timestamp}[/] "
            f"[{level_color}]{LogLevel.name(level):<5}[/] "
            f"[{comp_color}]\\[{component}][/] {message}"
        )

    def show(self) -> None:
        self.display = True
        self._update_subtitle()

    def hide(self) -> None:
        self.display = False
        self.border_subtitle = "Hidden"

    def toggle(self) -> bool:
        """Toggle visibility. Returns new state."""
        if self.display:
            self.hide()
            return False
        self.show()
        return True

    def get_plain_text(self) -> str:
        return "\n".join(line.text for line in self.lines)

    def on_click(self, event: Click) -> None:
        """Copy log content to clipboard when clicked."""
        event.stop()
        text = self.get_plain_text()
        if not text.strip():
            self.app.notify("Log is empty", timeout=2)
            return
        self.app.copy_to_clipboard(text)
        self.app.notify("Log copied", timeout=2)


class PanelLogHandler(logging.Handler):
    """Routes chatview log records into a DebugPanel."""

    def __init__(self, panel: DebugPanel) -> None:
        super().__init__(level=logging.DEBUG)
        self._panel = panel

    def emit(self, record: logging.LogRecord) -> None:
        try:
            component = record.name.rsplit(".", 1)[-1]
            self._panel.log_record(component, record.getMessage(), record.levelno)
        except Exception:
            self.handleError(record)
