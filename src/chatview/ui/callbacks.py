"""Session listener for the Textual app.

Hides how the TUI receives updates from the chat session. The session
runs on the app's event loop, so updates are applied directly.
"""

from typing import TYPE_CHECKING

from ..session.models import FeedSnapshot, Notification
from ..session.session import SessionListener

if TYPE_CHECKING:
    from .app import ChatViewApp


class TUIListener(SessionListener):
    """Forwards session output to the app's widgets."""

    def __init__(self, app: "ChatViewApp") -> None:
        self.app = app

    def _feed(self):
        from .widgets import FeedWidget

        if not self.app.is_running:
            return None
        return self.app.query_one("#feed", FeedWidget)

    def on_feed(self, snapshot: FeedSnapshot) -> None:
        feed = self._feed()
        if feed is not None:
            feed.render_snapshot(snapshot)

    def on_notification(self, notification: Notification) -> None:
        self.app.notify(
            notification.message,
            severity=notification.severity,
            timeout=notification.timeout,
        )

    def on_thinking(self, text: str | None) -> None:
        feed = self._feed()
        if feed is not None:
            feed.set_thinking(text)

    def on_playback(self, message_id: str | None) -> None:
        feed = self._feed()
        if feed is not None:
            feed.refresh_flags()

    def on_chat_removed(self, chat_id: str) -> None:
        self.app.exit(result=f"Chat {chat_id} has been deleted.")
