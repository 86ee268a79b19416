"""Text formatting for chat messages.

Hides how a stored message becomes the text a user reads: translation
display, the crystal top-up link and username placeholders.
"""

from rich.markdown import Markdown
from rich.text import Text

from .config import NOT_ENOUGH_CRYSTALS
from .store.models import Message

TOP_UP_LABEL = "Crystal Top-up"
TOP_UP_URL = "/crystals"
USER_PLACEHOLDER = "{{user}}"


def display_text(message: Message, username: str = "You") -> str:
    """Markdown source to render for a message.

    A translation replaces the original text. Replies refused for lack of
    crystals get a link to top up.
    """
    if message.translation:
        text = message.translation
    elif message.text.startswith(NOT_ENOUGH_CRYSTALS):
        text = f"{message.text} [{TOP_UP_LABEL}]({TOP_UP_URL})"
    else:
        text = message.text
    return text.replace(USER_PLACEHOLDER, username)


def render_message(message: Message, username: str = "You") -> Markdown:
    """Render a message body as markdown."""
    return Markdown(display_text(message, username))


def render_text_styled(text: str, style: str = "") -> Text:
    """Render text with optional style and text wrapping.

    Handles Rich markup like [bold green]...[/] in the text.
    Falls back to plain text if markup parsing fails.
    """
    try:
        result = Text.from_markup(text, overflow="fold")
    except Exception:
        # Message text may contain brackets that are not valid markup
        result = Text(text, overflow="fold")
    if style:
        result.stylize(style)
    return result


def speaker_label(message: Message, character_name: str, username: str = "You") -> str:
    """Name shown above a message."""
    return username if message.is_from_user else character_name
