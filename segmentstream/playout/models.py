"""
Playlist data model.

A playlist is a bag of clips loaded wholesale from the playlist store. Each
clip keeps the raw record it was parsed from so that rewriting the store
never drops fields this module does not know about.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Sort key for clips without a usable addedAt
EPOCH_MIN = datetime.min.replace(tzinfo=timezone.utc)


class ClipPriority(str, Enum):
    """Priority tier of a clip."""

    PINNED = "pinned"  # Manual ordinal, always first
    BREAKING = "breaking"  # Urgent, newest first, lives for one pass
    NORMAL = "normal"  # FIFO by arrival
    FILLER = "filler"  # Catch-all, including unknown tags

    @classmethod
    def parse(cls, value: Any) -> "ClipPriority":
        """Map a stored priority tag onto a tier; anything unknown becomes FILLER."""
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        return cls.FILLER


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now_iso() -> str:
    """Current time in the format producers write to addedAt."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Clip:
    """
    One playable unit of the playlist.

    Attributes:
        id: Identifier, unique within the playlist
        path: Media file, relative to the queue directory unless absolute
        priority: Tier the clip is scheduled in
        position: Ordinal for pinned clips
        added_at: Arrival time used to order breaking and normal clips
        title: Display only
        raw: The stored record, written back untouched on prune
    """

    id: str
    path: str
    priority: ClipPriority = ClipPriority.FILLER
    position: int = 0
    added_at: Optional[datetime] = None
    title: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Clip":
        position = data.get("position")
        if isinstance(position, bool) or not isinstance(position, (int, float)):
            position = 0
        elif isinstance(position, float) and not math.isfinite(position):
            # json accepts Infinity, NaN and overflowing literals like 1e400
            position = 0
        clip_id = data.get("id")
        return cls(
            id="" if clip_id is None else str(clip_id),
            path=str(data.get("path") or ""),
            priority=ClipPriority.parse(data.get("priority")),
            position=int(position),
            added_at=parse_timestamp(data.get("addedAt")),
            title=data.get("title"),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Stored representation.

        Clips read from the store are written back exactly as they were read,
        including unknown fields and unrecognised priority tags.
        """
        if self.raw:
            return dict(self.raw)
        data: Dict[str, Any] = {
            "id": self.id,
            "path": self.path,
            "priority": self.priority.value,
        }
        if self.priority == ClipPriority.PINNED:
            data["position"] = self.position
        if self.added_at is not None:
            data["addedAt"] = self.added_at.isoformat().replace("+00:00", "Z")
        if self.title is not None:
            data["title"] = self.title
        return data

    @property
    def display_name(self) -> str:
        return self.title or self.id

    @property
    def sort_time(self) -> datetime:
        return self.added_at or EPOCH_MIN


@dataclass
class Playlist:
    """Snapshot of the playlist store."""

    clips: List[Clip] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Playlist":
        raw_clips = data.get("clips") or []
        clips = [Clip.from_dict(item) for item in raw_clips if isinstance(item, dict)]
        extra = {k: v for k, v in data.items() if k != "clips"}
        return cls(clips=clips, extra=extra)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data["clips"] = [clip.to_dict() for clip in self.clips]
        return data

    def without(self, priority: ClipPriority) -> "Playlist":
        """Copy of the playlist with every clip of one tier removed."""
        return Playlist(
            clips=[clip for clip in self.clips if clip.priority != priority],
            extra=dict(self.extra),
        )

    @property
    def is_empty(self) -> bool:
        return len(self.clips) == 0

    def __len__(self) -> int:
        return len(self.clips)
