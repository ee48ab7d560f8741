"""
Clip delivery.

Pushes one clip (or one transition) to the live sink by running FFmpeg and
waiting for it to exit. A delivery never raises for ordinary failures: a
missing file, a non-zero exit code or an FFmpeg that cannot be spawned are
all reported as outcomes so the scheduler can move on to the next clip.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from segmentstream.config import FFmpegConfig, TransitionConfig
from segmentstream.streaming.commands import build_clip_command, build_transition_command

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"[\r\n]+")


class DeliveryOutcome(str, Enum):
    """Result of a single delivery."""

    SUCCESS = "success"
    FAILED = "failed"  # FFmpeg exited non-zero or could not start
    SKIPPED = "skipped"  # Clip file does not exist

    @property
    def ok(self) -> bool:
        return self is DeliveryOutcome.SUCCESS


class ClipDeliveryAdapter(ABC):
    """Delivers media to the output sink, one item at a time."""

    @abstractmethod
    async def deliver(self, path: Union[str, Path]) -> DeliveryOutcome:
        """Stream one clip; returns once the clip has been fully delivered."""
        pass

    @abstractmethod
    async def deliver_transition(self) -> DeliveryOutcome:
        """Stream the short filler played between clips."""
        pass


class FFmpegDeliveryAdapter(ClipDeliveryAdapter):
    """
    Delivers clips with one FFmpeg process per item.

    Usage:
        adapter = FFmpegDeliveryAdapter("rtmp://localhost:1935/live/show")
        outcome = await adapter.deliver(queue_dir / "clip.mp4")
    """

    def __init__(
        self,
        sink_url: str,
        ffmpeg: Optional[FFmpegConfig] = None,
        transition: Optional[TransitionConfig] = None,
        stderr_tail: int = 10,
        stop_timeout: float = 5.0,
    ):
        """
        Args:
            sink_url: Destination passed to FFmpeg as the output
            ffmpeg: Encoding settings
            transition: Transition filler settings
            stderr_tail: Number of trailing FFmpeg stderr lines logged on failure
            stop_timeout: Seconds to wait for a cancelled FFmpeg to exit before killing it
        """
        self.sink_url = sink_url
        self.ffmpeg = ffmpeg or FFmpegConfig()
        self.transition = transition or TransitionConfig()
        self._stderr_tail = stderr_tail
        self.stop_timeout = stop_timeout

    async def deliver(self, path: Union[str, Path]) -> DeliveryOutcome:
        clip_path = Path(path)
        if not clip_path.is_file():
            logger.error(f"Clip not found: {clip_path}")
            return DeliveryOutcome.SKIPPED

        cmd = build_clip_command(clip_path, self.sink_url, self.ffmpeg)
        code = await self._run(cmd, label=clip_path.name)
        if code is None:
            return DeliveryOutcome.FAILED

        logger.info(f"Clip ended (code {code})")
        return DeliveryOutcome.SUCCESS if code == 0 else DeliveryOutcome.FAILED

    async def deliver_transition(self) -> DeliveryOutcome:
        if not self.transition.enabled:
            return DeliveryOutcome.SUCCESS

        cmd = build_transition_command(self.sink_url, self.ffmpeg, self.transition)
        code = await self._run(cmd, label="transition")
        if code != 0:
            logger.warning(f"Transition delivery failed (code {code})")
            return DeliveryOutcome.FAILED
        return DeliveryOutcome.SUCCESS

    async def _run(self, cmd: list[str], label: str) -> Optional[int]:
        """
        Run FFmpeg to completion.

        Returns:
            The exit code, or None if the process could not be started.
        """
        logger.debug(f"FFmpeg command: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"FFmpeg error ({label}): {e}")
            return None

        try:
            tail = await self._drain_stderr(process.stderr, label)
            code = await process.wait()
        except asyncio.CancelledError:
            await self._stop_process(process, label)
            raise

        if code != 0 and tail:
            logger.warning(f"FFmpeg stderr ({label}):\n" + "\n".join(tail))
        return code

    async def _stop_process(self, process: asyncio.subprocess.Process, label: str) -> None:
        """Terminate an FFmpeg child whose delivery was cancelled."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
        except ProcessLookupError:
            return
        logger.info(f"Stopped FFmpeg ({label})")

    async def _drain_stderr(
        self,
        stream: Optional[asyncio.StreamReader],
        label: str,
    ) -> list[str]:
        """
        Read FFmpeg's stderr until EOF.

        Progress lines are carriage-return separated, so the stream is split
        on both \\r and \\n rather than read with readline().
        """
        tail: deque[str] = deque(maxlen=self._stderr_tail)
        if stream is None:
            return []

        pending = ""
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            pending += chunk.decode("utf-8", errors="replace")
            *lines, pending = _LINE_SPLIT.split(pending)
            for line in lines:
                self._handle_stderr_line(line.strip(), label, tail)

        if pending.strip():
            self._handle_stderr_line(pending.strip(), label, tail)
        return list(tail)

    def _handle_stderr_line(self, line: str, label: str, tail: deque) -> None:
        if not line:
            return
        if line.startswith("frame=") or " frame=" in line:
            logger.debug(f"[{label}] {line[:100]}")
        else:
            tail.append(line)
