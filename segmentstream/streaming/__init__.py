"""Live delivery of clips to the output sink via FFmpeg."""

from segmentstream.streaming.commands import build_clip_command, build_transition_command
from segmentstream.streaming.delivery import (
    ClipDeliveryAdapter,
    DeliveryOutcome,
    FFmpegDeliveryAdapter,
)

__all__ = [
    "ClipDeliveryAdapter",
    "DeliveryOutcome",
    "FFmpegDeliveryAdapter",
    "build_clip_command",
    "build_transition_command",
]
