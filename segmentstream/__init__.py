"""
segment-stream - continuous playlist playout to a live sink

- Priority-tiered playlist ordering (pinned, breaking, normal, filler)
- Breaking clips preempt the rotation between clips
- FFmpeg delivery of pre-rendered clips with short transitions
- Engine position and counters persisted across restarts
"""

__version__ = "1.0.0"
__license__ = "MIT"

from segmentstream.config import get_config, load_config

__all__ = [
    "__version__",
    "get_config",
    "load_config",
]
