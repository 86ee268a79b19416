"""Error taxonomy shared by the store adapter and the chat session.

Remote failures carry an ``is_retryable()`` hint. Nothing in chatview
retries on its own: the hint only tells the UI whether re-invoking the
action can succeed.
"""


class ChatViewError(Exception):
    """Base class for chatview errors."""


class StoreError(ChatViewError):
    """Base class for failures reported by a message store."""

    def is_retryable(self) -> bool:
        """Override in subclasses to control how the failure is presented."""
        return False


class RemoteRejected(StoreError):
    """The store refused the mutation (business rule or validation failure).

    Examples: not enough crystals, message already translated, chat is
    not public.
    """

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code

    def is_retryable(self) -> bool:
        return False


class RemoteUnavailable(StoreError):
    """The store could not be reached or failed transiently."""

    def __init__(self, message: str):
        super().__init__(f"Store unavailable: {message}")

    def is_retryable(self) -> bool:
        return True


class AlreadyInProgress(ChatViewError):
    """A conflicting action for the same message is still pending.

    Raised locally; the store is never contacted.
    """

    def __init__(self, kind: str, message_id: str):
        super().__init__(f"{kind} already in progress for message {message_id}")
        self.kind = kind
        self.message_id = message_id


class TeardownRace(ChatViewError):
    """An update arrived after the session was closed."""


class SessionClosed(ChatViewError):
    """A user action was attempted on a closed session."""
