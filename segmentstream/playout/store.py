"""
Playlist store.

The playlist lives in a JSON file (``{"clips": [...]}``) inside the queue
directory. Other processes append clips to it at any time; the engine reads
it before every scheduling decision and rewrites it once per pass to drop
consumed breaking clips.

There is no locking between writers. A producer write that lands between
the engine's prune read and its rewrite is lost; the playlist is a
continuously re-polled queue, so this is accepted.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from segmentstream.exceptions import PlaylistStoreError
from segmentstream.playout.models import Clip, ClipPriority, Playlist

logger = logging.getLogger(__name__)


class PlaylistStore:
    """
    File-backed playlist store.

    Usage:
        store = PlaylistStore(queue_dir / "playlist.json")
        playlist = store.load()          # None when missing or unreadable
        removed = store.prune_breaking()
    """

    def __init__(self, path: Union[str, Path], queue_dir: Optional[Union[str, Path]] = None):
        """
        Args:
            path: Playlist JSON file
            queue_dir: Directory clip paths are resolved against
                (defaults to the playlist file's directory)
        """
        self.path = Path(path)
        self.queue_dir = Path(queue_dir) if queue_dir is not None else self.path.parent

    def read(self) -> Optional[Playlist]:
        """
        Strict read.

        Returns:
            The playlist, or None if the file does not exist.

        Raises:
            PlaylistStoreError: The file exists but is not a valid playlist.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PlaylistStoreError(
                f"Cannot read playlist {self.path}: {e}", self.path, e
            ) from e

        try:
            data = json.loads(text)
        except (json.JSONDecodeError, RecursionError) as e:
            raise PlaylistStoreError(
                f"Failed to parse playlist {self.path}: {e}", self.path, e
            ) from e

        if not isinstance(data, dict):
            raise PlaylistStoreError(
                f"Playlist {self.path} is not a JSON object", self.path
            )
        clips = data.get("clips")
        if clips is not None and not isinstance(clips, list):
            raise PlaylistStoreError(
                f"Playlist {self.path} has a non-list 'clips' field", self.path
            )
        if clips:
            skipped = sum(1 for item in clips if not isinstance(item, dict))
            if skipped:
                logger.warning(f"Ignoring {skipped} malformed clip record(s) in {self.path}")

        return Playlist.from_dict(data)

    def load(self) -> Optional[Playlist]:
        """
        Tolerant read used by the scheduler.

        A missing or malformed playlist is not an error for the engine, it
        just means there is nothing to play yet.
        """
        try:
            playlist = self.read()
        except PlaylistStoreError as e:
            logger.warning(str(e))
            return None

        if playlist is None:
            logger.info(f"No playlist found at {self.path}")
        return playlist

    def write(self, playlist: Playlist) -> None:
        """Rewrite the whole playlist file."""
        self._write_json(playlist.to_dict())

    def prune(self, priority: ClipPriority) -> int:
        """
        Remove every clip of one tier from the stored playlist.

        The playlist is re-read right before the rewrite so that clips
        added during the pass survive (modulo the race described above).

        Returns:
            Number of clips removed.
        """
        playlist = self.load()
        if playlist is None:
            return 0

        pruned = playlist.without(priority)
        removed = len(playlist) - len(pruned)
        self.write(pruned)
        if removed:
            logger.info(f"Pruned {removed} {priority.value} clip(s) from {self.path}")
        return removed

    def prune_breaking(self) -> int:
        """Drop urgent clips once the pass they were scheduled in is over."""
        return self.prune(ClipPriority.BREAKING)

    def add_clip(self, record: Dict[str, Any]) -> Clip:
        """
        Append a clip record to the stored playlist.

        Raises:
            PlaylistStoreError: The existing playlist is unreadable; it is
                left untouched instead of being replaced.
        """
        playlist = self.read() or Playlist()
        clip = Clip.from_dict(record)
        playlist.clips.append(clip)
        self.write(playlist)
        logger.info(
            f"Queued clip {clip.id} ({clip.priority.value}) -> {clip.path}"
        )
        return clip

    def resolve(self, clip: Clip) -> Path:
        """Absolute location of a clip's media file."""
        path = Path(clip.path)
        if path.is_absolute():
            return path
        return self.queue_dir / path

    def _write_json(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
