"""Configuration constants and validated settings.

Centralizes magic numbers shared by the store, the session and the UI.
"""

from pydantic import BaseModel, Field


class LogLevel:
    """Log level constants with numeric values for comparison.

    Standard logging hierarchy: DEBUG < INFO < WARNING < ERROR
    Lower numeric value = more verbose (shows more messages).
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40

    _names = {
        DEBUG: "DEBUG",
        INFO: "INFO",
        WARNING: "WARNING",
        ERROR: "ERROR",
    }

    _from_string = {
        "debug": DEBUG,
        "info": INFO,
        "warning": WARNING,
        "error": ERROR,
    }

    @classmethod
    def name(cls, level: int) -> str:
        """Get the name for a log level."""
        return cls._names.get(level, "UNKNOWN")

    @classmethod
    def from_string(cls, level_str: str) -> int:
        """Convert string to log level. Returns WARNING if invalid."""
        return cls._from_string.get(level_str.lower(), cls.WARNING)


# Pagination
INITIAL_NUM_ITEMS = 5  # Messages in the first page of a chat
LOAD_MORE_NUM_ITEMS = 10  # Messages per older page

# Thinking indicator
THINKING_TICK_SECONDS = 0.2
WARMING_UP_AFTER_SECONDS = 3.0
THINKING_MAX_DOTS = 3

# Crystal prices
SPEECH_COST = 10
TRANSLATE_COST = 1
MODEL_CRYSTAL_COSTS = {
    "default": 1,
    "gpt-4o-mini": 1,
    "gpt-4o": 5,
    "claude-3-haiku": 1,
    "claude-3-opus": 10,
}
STARTING_CRYSTALS = 100
NOT_ENOUGH_CRYSTALS = "Not enough crystals."

# Notifications
NOTIFICATION_TIMEOUT = 5.0  # Seconds an error notice stays visible
TRANSIENT_NOTIFICATION_TIMEOUT = 3.0

# Maintenance
RETENTION_DAYS = 30


def model_cost(model: str) -> int:
    """Crystals charged per reply for a character model."""
    return MODEL_CRYSTAL_COSTS.get(model, MODEL_CRYSTAL_COSTS["default"])


class SessionConfig(BaseModel):
    """Per-session settings for a chat view."""

    user_id: str = Field(description="Authenticated user")
    username: str = Field(default="You", description="Display name of the user")
    target_language: str = Field(default="English", description="Translation target")
    initial_num_items: int = Field(default=INITIAL_NUM_ITEMS, ge=1, le=100)
    load_more_num_items: int = Field(default=LOAD_MORE_NUM_ITEMS, ge=1, le=100)
    thinking_tick_seconds: float = Field(default=THINKING_TICK_SECONDS, gt=0.0)
