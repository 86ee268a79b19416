"""Unit tests for the thinking indicator and the view gate."""
from chatview.session import AuthState, ThinkingIndicator, ViewMode, resolve_view
from chatview.session.thinking import THINKING_LABEL, WARMING_UP_LABEL


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestThinkingIndicator:
    """Tests for ThinkingIndicator."""

    def test_dots_cycle(self):
        """Test that dots grow to three and wrap around."""
        indicator = ThinkingIndicator(clock=FakeClock())
        texts = [indicator.text] + [indicator.tick() for _ in range(4)]
        assert texts == [
            THINKING_LABEL,
            f"{THINKING_LABEL}.",
            f"{THINKING_LABEL}..",
            f"{THINKING_LABEL}...",
            THINKING_LABEL,
        ]

    def test_warming_up_after_delay(self):
        """Test that a slow reply switches the label."""
        clock = FakeClock()
        indicator = ThinkingIndicator(clock=clock, warming_up_after=3.0)

        clock.now += 2.9
        assert indicator.text == THINKING_LABEL
        clock.now += 0.2
        assert indicator.text == WARMING_UP_LABEL

    def test_reset(self):
        """Test that reset restarts the timer and the dots."""
        clock = FakeClock()
        indicator = ThinkingIndicator(clock=clock)
        indicator.tick()
        clock.now += 10

        indicator.reset()

        assert indicator.elapsed == 0
        assert indicator.text == THINKING_LABEL


class TestResolveView:
    """Tests for resolve_view."""

    def test_known_chat_shows_chat(self):
        """Test that a chat id always opens the chat."""
        assert resolve_view(AuthState(), "chat_1") == ViewMode.CHAT

    def test_signed_in_without_chat_waits(self):
        """Test that a signed-in user waits for the chat to exist."""
        auth = AuthState(is_authenticated=True, user_id="user_1")
        assert resolve_view(auth, None) == ViewMode.LOADING

    def test_auth_still_loading_asks_sign_in(self):
        """Test that an unresolved auth state shows the sign-in prompt."""
        auth = AuthState(is_authenticated=True, is_loading=True)
        assert resolve_view(auth, None) == ViewMode.SIGN_IN

    def test_anonymous_asks_sign_in(self):
        """Test that anonymous users are asked to sign in."""
        assert resolve_view(AuthState(), None) == ViewMode.SIGN_IN
