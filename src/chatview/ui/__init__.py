"""Terminal UI for chatview.

Provides a Textual-based chat view for one character chat.

Module structure (each module hides a design decision):
- widgets.py: Custom widgets (message rendering, feed reconciliation, input, log)
- styles.py: CSS styling (layout decisions)
- themes.py: Color palette
- screens.py: Modal dialogs (confirmations)
- callbacks.py: Session integration (how the TUI receives updates)
- app.py: Application orchestration (user interaction flow)
"""

from .app import ChatViewApp, run_textual_tui
from .callbacks import TUIListener
from .widgets import ChatInputBar, DebugPanel, FeedWidget, MessageView

__all__ = [
    "ChatInputBar",
    "ChatViewApp",
    "DebugPanel",
    "FeedWidget",
    "MessageView",
    "TUIListener",
    "run_textual_tui",
]
