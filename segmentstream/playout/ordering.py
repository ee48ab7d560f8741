"""
Ordering policy for a playlist pass.

The baseline pass order is the concatenation of the four priority tiers:

    pinned   ascending position
    breaking descending addedAt (most recently flagged first)
    normal   ascending addedAt (first in, first out)
    filler   input order

Python's sort is stable, so clips with equal keys keep their input order.
"""

from typing import Iterable, List, Optional

from segmentstream.playout.models import Clip, ClipPriority, Playlist


def order_clips(playlist: Optional[Playlist]) -> List[Clip]:
    """
    Compute the baseline pass order for a playlist snapshot.

    Args:
        playlist: Snapshot to order. None is treated as an empty playlist.

    Returns:
        Clips in play order.
    """
    if playlist is None or playlist.is_empty:
        return []

    clips = playlist.clips
    pinned = sorted(
        (c for c in clips if c.priority == ClipPriority.PINNED),
        key=lambda c: c.position,
    )
    breaking = sorted(
        (c for c in clips if c.priority == ClipPriority.BREAKING),
        key=lambda c: c.sort_time,
        reverse=True,
    )
    normal = sorted(
        (c for c in clips if c.priority == ClipPriority.NORMAL),
        key=lambda c: c.sort_time,
    )
    filler = [c for c in clips if c.priority == ClipPriority.FILLER]

    return pinned + breaking + normal + filler


def pending_breaking(
    ordered: Iterable[Clip],
    exclude_ids: Iterable[str] = (),
) -> List[Clip]:
    """
    Breaking clips of an ordered sequence, minus the excluded ids.

    The first element is the one that should preempt the next step.
    """
    excluded = set(exclude_ids)
    return [
        clip for clip in ordered
        if clip.priority == ClipPriority.BREAKING and clip.id not in excluded
    ]
