"""Chat session view-model.

Module structure (each module hides a design decision):
- models.py: Local state records (optimistic entries, feed items, playback)
- queue.py: Optimistic mutation lifecycle and correlation ids
- feed.py: Feed assembly, pagination and auto-scroll
- audio.py: Audio output backends
- playback.py: Speech playback and mutual exclusion
- thinking.py: Thinking indicator animation
- gate.py: Auth gating of the chat view
- session.py: Orchestration of one mounted chat
"""

from .audio import AudioPlayer, CommandAudioPlayer, SilentAudioPlayer
from .feed import FeedAssembler
from .gate import AuthState, ViewMode, resolve_view
from .models import (
    EntryState,
    FeedItem,
    FeedSnapshot,
    Notification,
    OptimisticEntry,
    PendingKind,
    PlaybackState,
)
from .playback import PlaybackCoordinator
from .queue import OptimisticMutationQueue
from .session import ChatSession, SessionListener, notification_for
from .thinking import ThinkingIndicator

__all__ = [
    "AudioPlayer",
    "AuthState",
    "ChatSession",
    "CommandAudioPlayer",
    "EntryState",
    "FeedAssembler",
    "FeedItem",
    "FeedSnapshot",
    "Notification",
    "OptimisticEntry",
    "OptimisticMutationQueue",
    "PendingKind",
    "PlaybackCoordinator",
    "PlaybackState",
    "SessionListener",
    "SilentAudioPlayer",
    "ThinkingIndicator",
    "ViewMode",
    "notification_for",
    "resolve_view",
]
