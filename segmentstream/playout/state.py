"""
Engine state management.

Tracks the engine's cursor (current clip and index within the pass) and its
lifetime counters. The state is persisted as JSON next to the playlist so
that a restarted engine resumes its loop numbering and counters, and so
that other processes can watch playback progress.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from segmentstream.playout.models import utc_now_iso

logger = logging.getLogger(__name__)

# Persisted key -> attribute name
_FIELD_KEYS = {
    "running": "running",
    "currentClipId": "current_clip_id",
    "currentIndex": "current_index",
    "loopCount": "loop_count",
    "startedAt": "started_at",
    "clipsPlayed": "clips_played",
    "errors": "errors",
}


@dataclass(frozen=True)
class EngineState:
    """
    Durable engine cursor.

    Instances are immutable; each scheduler step returns a new state built
    with ``dataclasses.replace``.
    """

    running: bool = True
    current_clip_id: Optional[str] = None
    current_index: int = 0
    loop_count: int = 0
    started_at: str = field(default_factory=utc_now_iso)
    clips_played: int = 0
    errors: int = 0

    # Keys found in the state file that this version does not know about
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        data = dict(self.extra)
        for key, attr in _FIELD_KEYS.items():
            data[key] = values[attr]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: Optional["EngineState"] = None) -> "EngineState":
        """
        Overlay a persisted record on top of a default state.

        Values of the wrong type are ignored in favour of the default.
        """
        base = defaults or cls()
        changes: Dict[str, Any] = {}
        extra = dict(base.extra)

        for key, value in data.items():
            attr = _FIELD_KEYS.get(key)
            if attr is None:
                extra[key] = value
                continue
            if not _valid_value(attr, value):
                logger.warning(f"Ignoring invalid engine state value {key}={value!r}")
                continue
            changes[attr] = value

        return replace(base, extra=extra, **changes)

    def record_attempt(self, success: bool) -> "EngineState":
        """Count one clip delivery attempt."""
        return replace(
            self,
            clips_played=self.clips_played + 1,
            errors=self.errors if success else self.errors + 1,
        )


def _valid_value(attr: str, value: Any) -> bool:
    if attr == "running":
        return isinstance(value, bool)
    if attr in ("current_index", "loop_count", "clips_played", "errors"):
        return isinstance(value, int) and not isinstance(value, bool)
    if attr == "current_clip_id":
        return value is None or isinstance(value, str)
    if attr == "started_at":
        return isinstance(value, str)
    return True


class EngineStateStore:
    """Persists EngineState as JSON. Single writer: the engine."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> Optional[Dict[str, Any]]:
        """Raw persisted record, or None if missing or unreadable."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
            logger.warning(f"Failed to read engine state {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Engine state {self.path} is not a JSON object, ignoring")
            return None
        return data

    def load(self, defaults: Optional[EngineState] = None) -> EngineState:
        """
        Build the startup state: defaults merged with the persisted record.

        A restart therefore keeps startedAt, loopCount and the lifetime
        counters of the previous run.
        """
        base = defaults or EngineState()
        persisted = self.read()
        if persisted is None:
            return base

        state = EngineState.from_dict(persisted, defaults=base)
        logger.info(
            f"Resumed engine state: loop {state.loop_count}, "
            f"{state.clips_played} clips played, {state.errors} errors"
        )
        return state

    def save(self, state: EngineState) -> None:
        """Overwrite the state file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
