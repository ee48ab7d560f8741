"""
segment-stream Playout Engine

Continuous playlist scheduling for a single live output.

Features:
- Priority tiers (pinned, breaking, normal, filler)
- Breaking clips preempt the rotation between clips
- Engine state persisted across restarts
- Playlist re-read before every scheduling decision
"""

from segmentstream.playout.engine import EnginePhase, StreamEngine
from segmentstream.playout.models import Clip, ClipPriority, Playlist
from segmentstream.playout.ordering import order_clips, pending_breaking
from segmentstream.playout.state import EngineState, EngineStateStore
from segmentstream.playout.store import PlaylistStore

__all__ = [
    # Engine
    "StreamEngine",
    "EnginePhase",
    # Models
    "Clip",
    "ClipPriority",
    "Playlist",
    # Ordering
    "order_clips",
    "pending_breaking",
    # State
    "EngineState",
    "EngineStateStore",
    # Store
    "PlaylistStore",
]
