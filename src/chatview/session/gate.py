"""Decides what the chat screen shows before a session exists."""

from dataclasses import dataclass
from enum import Enum


class ViewMode(str, Enum):
    CHAT = "chat"
    LOADING = "loading"
    SIGN_IN = "sign-in"


@dataclass(frozen=True)
class AuthState:
    """What the authentication provider currently knows."""

    is_authenticated: bool = False
    is_loading: bool = False
    user_id: str | None = None


def resolve_view(auth: AuthState, chat_id: str | None) -> ViewMode:
    """Pick the chat view, a loading spinner or the sign-in prompt.

    A known chat always shows the chat. Without one, an authenticated user
    waits for the chat to be created and everyone else is asked to sign in.
    """
    if chat_id:
        return ViewMode.CHAT
    if auth.is_authenticated and not auth.is_loading:
        return ViewMode.LOADING
    return ViewMode.SIGN_IN
