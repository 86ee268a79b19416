"""CSS styles for the chat view.

Hides layout and styling decisions from the application logic.
Uses Textual CSS features: nesting, pseudo-classes, variables.
"""

APP_CSS = """
/* ============================================
   Main Screen Layout - feed above, input below
   ============================================ */
Screen {
    layout: vertical;
    background: $background;
}

/* ============================================
   Chat Header - model badge and chat options
   ============================================ */
#chat-header {
    height: 1;
    padding: 0 2;
    background: $surface;
    color: $text-muted;
}

/* ============================================
   Feed - the conversation
   ============================================ */
#feed {
    height: 1fr;
    background: $panel;
    border: round $primary 60%;
    border-title-color: $primary;
    border-title-style: bold;
    border-title-align: left;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    scrollbar-gutter: stable;

    &:focus-within {
        border: round $primary;
    }
}

.chat-message {
    width: 100%;
    height: auto;
    margin: 0 0 1 0;
    padding: 0 2;
    background: transparent;
}

/* User messages */
.user-message {
    border-left: tall $success;
    background: $success 8%;

    & .message-header {
        color: $success;
        text-style: bold;
    }
}

/* Character messages */
.character-message {
    border-left: tall $secondary;
    background: $secondary 8%;

    & .message-header {
        color: $secondary;
        text-style: bold;
    }
}

/* Not yet confirmed by the store */
.optimistic {
    opacity: 70%;
}

.thinking {
    color: $text-muted;
    text-style: italic;
}

.message-content {
    height: auto;
    margin: 0;
    padding: 0;
}

/* ============================================
   Action Bar - per message buttons
   ============================================ */
.action-bar {
    height: 1;
    width: auto;
    margin-top: 1;

    & Button {
        height: 1;
        min-width: 4;
        border: none;
        margin: 0 1 0 0;
        background: $surface;
        color: $text-muted;

        &:hover {
            color: $foreground;
            background: $surface-lighten-1;
        }

        &.-active {
            color: $accent;
            text-style: bold;
        }
    }
}

/* ============================================
   Debug/Log Panel
   ============================================ */
#debug-panel {
    height: auto;
    min-height: 6;
    max-height: 12;
    background: $panel;
    border: round $warning 60%;
    border-title-color: $warning;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    overflow-y: scroll;
}

/* ============================================
   Bottom Bar - Input + Send + Continue
   ============================================ */
#bottom-bar {
    height: auto;
    padding: 0 1;
    background: $panel;
    border-top: solid $border;
}

ChatInputBar {
    height: 5;
    border: round $primary 60%;
    background: $panel;

    &:focus-within {
        border: round $primary;
    }
}

#chat-input {
    width: 1fr;
    height: 100%;
    border: none;
    padding: 0 1;
    background: transparent;
}

#send-btn, #continue-btn {
    width: 12;
    height: 100%;
    margin: 0 0 0 1;
}

/* ============================================
   Notifications
   ============================================ */
Toast {
    padding: 1 2;
    background: $surface;
    border-left: tall $primary;

    &.-warning {
        border-left: tall $warning;
    }

    &.-error {
        border-left: tall $error;
    }
}

Markdown {
    margin: 0;
    padding: 0;
}
"""
