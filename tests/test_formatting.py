"""Unit tests for message formatting."""
from hypothesis import given
from hypothesis import strategies as st
from rich.markdown import Markdown

from chatview.config import NOT_ENOUGH_CRYSTALS
from chatview.formatting import (
    display_text,
    render_message,
    render_text_styled,
    speaker_label,
)
from chatview.store import Message


def message(text, **kwargs):
    return Message(chat_id="chat_1", character_id="char_luna", text=text, order=0, **kwargs)


class TestDisplayText:
    """Tests for display_text."""

    def test_plain_text(self):
        """Test that ordinary text is shown unchanged."""
        assert display_text(message("Good evening.")) == "Good evening."

    def test_translation_replaces_text(self):
        """Test that a translation is shown instead of the original."""
        translated = message("Good evening.", translation="Bonsoir.")
        assert display_text(translated) == "Bonsoir."

    def test_not_enough_crystals_links_top_up(self):
        """Test that the refusal reply gets a top-up link."""
        text = display_text(message(NOT_ENOUGH_CRYSTALS))
        assert text == f"{NOT_ENOUGH_CRYSTALS} [Crystal Top-up](/crystals)"

    def test_user_placeholder_replaced(self):
        """Test that every {{user}} becomes the username."""
        text = display_text(message("Hi {{user}}! Welcome back, {{user}}."), "Ada")
        assert text == "Hi Ada! Welcome back, Ada."

    @given(st.text().filter(lambda s: "{{user}}" not in s and not s.startswith(NOT_ENOUGH_CRYSTALS)))
    def test_text_without_placeholders_unchanged(self, text: str):
        """Property test: text without placeholders is shown as is."""
        assert display_text(message(text), "Ada") == text


class TestRendering:
    """Tests for rich renderables."""

    def test_render_message_is_markdown(self):
        """Test that message bodies render as markdown."""
        assert isinstance(render_message(message("**bold**")), Markdown)

    def test_render_text_styled_accepts_bad_markup(self):
        """Test that unbalanced brackets fall back to plain text."""
        rendered = render_text_styled("[/oops] text", style="bold")
        assert "text" in rendered.plain

    def test_speaker_label(self):
        """Test that labels name the author."""
        from_user = Message(chat_id="chat_1", text="hi", order=1)
        assert speaker_label(from_user, "Luna", "Ada") == "Ada"
        assert speaker_label(message("hello"), "Luna", "Ada") == "Luna"
