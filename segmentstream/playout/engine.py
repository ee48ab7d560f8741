"""
Continuous playout engine.

Walks the playlist pass after pass, delivering one clip at a time:

    AWAIT_PLAYLIST -> BUILD_PASS -> PLAY_STEP -> TRANSITION -> ... -> PASS_COMPLETE
           ^                                                              |
           +--------------------------------------------------------------+

The playlist store is re-read before every step so that breaking clips
queued mid-pass can preempt the rotation. Breaking clips live for a single
pass: once a pass completes they are pruned from the store whether or not
they were played.
"""

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from segmentstream.config import SegmentStreamConfig
from segmentstream.exceptions import StartupError
from segmentstream.playout.models import Clip, ClipPriority
from segmentstream.playout.ordering import order_clips, pending_breaking
from segmentstream.playout.state import EngineState, EngineStateStore
from segmentstream.playout.store import PlaylistStore
from segmentstream.streaming.delivery import ClipDeliveryAdapter, FFmpegDeliveryAdapter

logger = logging.getLogger(__name__)


class EnginePhase(str, Enum):
    """Scheduler loop phase."""

    IDLE = "idle"  # Not started yet
    AWAIT_PLAYLIST = "await_playlist"
    BUILD_PASS = "build_pass"
    PLAY_STEP = "play_step"
    TRANSITION = "transition"
    PASS_COMPLETE = "pass_complete"
    STOPPED = "stopped"


class StreamEngine:
    """
    Scheduler loop tying the playlist store, ordering policy, delivery
    adapter and engine state together.

    Usage:
        engine = StreamEngine.from_config(get_config())
        engine.prepare()
        await engine.run()

    Call stop() (e.g. from a signal handler) to end the loop; the state is
    saved immediately and no further clip is started.
    """

    def __init__(
        self,
        store: PlaylistStore,
        state_store: EngineStateStore,
        adapter: ClipDeliveryAdapter,
        poll_interval: float = 10.0,
        repeat_breaking_within_pass: bool = False,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            store: Playlist store
            state_store: Where the engine state is persisted
            adapter: Clip delivery adapter
            poll_interval: Seconds to wait when there is nothing to play
            repeat_breaking_within_pass: Let the same breaking clip preempt
                every step until the pass ends instead of only once
            sleep: Replacement for the poll wait (tests)
        """
        self.store = store
        self.state_store = state_store
        self.adapter = adapter
        self.poll_interval = poll_interval
        self.repeat_breaking_within_pass = repeat_breaking_within_pass
        self._sleep = sleep or self._wait_for_stop

        self._state = EngineState()
        self._phase = EnginePhase.IDLE
        self._stop_event = asyncio.Event()
        self._prepared = False

    @classmethod
    def from_config(
        cls,
        config: SegmentStreamConfig,
        queue_dir: Optional[Path] = None,
        sink_url: Optional[str] = None,
    ) -> "StreamEngine":
        """Build an engine delivering with FFmpeg, as configured."""
        paths = config.paths.for_queue(queue_dir)
        sink = sink_url or config.output.rtmp_url

        return cls(
            store=PlaylistStore(paths.playlist_path, queue_dir=paths.queue_path),
            state_store=EngineStateStore(paths.state_path),
            adapter=FFmpegDeliveryAdapter(
                sink,
                ffmpeg=config.ffmpeg,
                transition=config.transition,
            ),
            poll_interval=config.scheduling.poll_interval,
            repeat_breaking_within_pass=config.scheduling.repeat_breaking_within_pass,
        )

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def phase(self) -> EnginePhase:
        return self._phase

    def prepare(self) -> EngineState:
        """
        Create working storage and load the persisted state.

        Raises:
            StartupError: The queue directory or state file cannot be written.
        """
        queue_dir = self.store.queue_dir
        try:
            queue_dir.mkdir(parents=True, exist_ok=True)
            self.store.path.parent.mkdir(parents=True, exist_ok=True)
            self.state_store.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StartupError(f"Cannot create working directory {queue_dir}: {e}", queue_dir) from e

        # A previous clean shutdown persisted running=false
        state = replace(self.state_store.load(), running=True)
        try:
            self.state_store.save(state)
        except OSError as e:
            raise StartupError(
                f"Cannot write engine state {self.state_store.path}: {e}",
                self.state_store.path,
            ) from e

        self._state = state
        self._prepared = True
        return state

    async def run(self, max_passes: Optional[int] = None) -> EngineState:
        """
        Run the scheduler loop until stop() is called.

        Args:
            max_passes: Return after this many completed passes

        Returns:
            The final engine state.
        """
        if not self._prepared:
            self.prepare()

        passes = 0
        while self._state.running:
            plan = await self._await_playlist()
            if plan is None:
                break

            completed = await self._run_pass(plan)
            if not completed:
                break

            passes += 1
            if max_passes is not None and passes >= max_passes:
                break

        if not self._state.running:
            self._set_phase(EnginePhase.STOPPED)
        return self._state

    def stop(self) -> None:
        """Request shutdown and persist the state right away."""
        if not self._state.running and self._phase == EnginePhase.STOPPED:
            return
        logger.info("Stream engine stopping...")
        self._state = replace(self._state, running=False)
        self._stop_event.set()
        self._set_phase(EnginePhase.STOPPED)
        try:
            self.state_store.save(self._state)
        except OSError as e:
            logger.error(f"Failed to save engine state on stop: {e}")

    async def _await_playlist(self) -> Optional[List[Clip]]:
        """Poll the store until it yields something to play."""
        while self._state.running:
            self._set_phase(EnginePhase.AWAIT_PLAYLIST)
            playlist = self.store.load()

            if playlist is not None and not playlist.is_empty:
                self._set_phase(EnginePhase.BUILD_PASS)
                plan = order_clips(playlist)
                logger.info(
                    f"Starting pass {self._state.loop_count + 1} with {len(plan)} clip(s)"
                )
                return plan

            reason = "No playlist" if playlist is None else "Empty playlist"
            logger.info(f"{reason}. Waiting {self.poll_interval:g}s...")
            await self._sleep(self.poll_interval)

        return None

    async def _run_pass(self, plan: List[Clip]) -> bool:
        """
        Play every step of a pass.

        Returns:
            True if the pass ran to completion, False if it was stopped.
        """
        base_breaking = {c.id for c in plan if c.priority == ClipPriority.BREAKING}
        delivered_breaking: Set[str] = set()

        for index in range(len(plan)):
            if not self._state.running:
                return False

            self._set_phase(EnginePhase.PLAY_STEP)
            clip, preempted = self._select_clip(plan, index, base_breaking, delivered_breaking)
            if preempted:
                delivered_breaking.add(clip.id)

            self._state = await self._play_step(self._state, clip, index, len(plan), preempted)

        if not self._state.running:
            return False

        self._state = self._complete_pass(self._state)
        return True

    def _select_clip(
        self,
        plan: List[Clip],
        index: int,
        base_breaking: Set[str],
        delivered_breaking: Set[str],
    ) -> Tuple[Clip, bool]:
        """
        Resolve the clip for one step.

        Returns:
            The clip and whether it preempts the planned clip.
        """
        fresh = self.store.load()
        fresh_ordered = order_clips(fresh) if fresh is not None else plan

        # The first slot of a pass always plays the committed order
        if index == 0:
            return plan[index], False

        if self.repeat_breaking_within_pass:
            excluded: Set[str] = set()
        else:
            excluded = base_breaking | delivered_breaking

        urgent = pending_breaking(fresh_ordered, excluded)
        if urgent:
            return urgent[0], True
        return plan[index], False

    async def _play_step(
        self,
        state: EngineState,
        clip: Clip,
        index: int,
        total: int,
        preempted: bool,
    ) -> EngineState:
        """Deliver one clip followed by a transition."""
        if preempted:
            logger.warning(f"BREAKING: {clip.display_name}")

        clip_path = self.store.resolve(clip)
        logger.info("-" * 50)
        logger.info(
            f"Pass {state.loop_count + 1} [{index + 1}/{total}] {clip.display_name}"
        )
        logger.info(f"  Priority: {clip.priority.value} | Path: {clip.path}")
        logger.info("-" * 50)

        state = replace(state, current_clip_id=clip.id, current_index=index)
        self._commit(state)

        outcome = await self.adapter.deliver(clip_path)
        if not outcome.ok:
            logger.error(
                f"Delivery of {clip.id} {outcome.value} "
                f"(pass {state.loop_count + 1}, step {index + 1}, tier {clip.priority.value})"
            )
        state = state.record_attempt(outcome.ok)
        self._commit(state)

        if self._state.running:
            self._set_phase(EnginePhase.TRANSITION)
            transition = await self.adapter.deliver_transition()
            if not transition.ok:
                logger.warning("Transition failed, continuing")

        # stop() may have replaced the state while we were suspended
        return self._state

    def _complete_pass(self, state: EngineState) -> EngineState:
        """Close a pass: count it, persist, and drop this pass's breaking clips."""
        self._set_phase(EnginePhase.PASS_COMPLETE)
        state = replace(state, loop_count=state.loop_count + 1)
        self._commit(state)
        logger.info(f"Loop {state.loop_count} complete. Restarting playlist...")

        try:
            self.store.prune_breaking()
        except OSError as e:
            # Retried at the end of the next pass
            logger.error(f"Failed to prune breaking clips from {self.store.path}: {e}")
        return state

    def _commit(self, state: EngineState) -> None:
        """Adopt a new state and persist it, unless a stop request won the race."""
        if not self._state.running and state.running:
            state = replace(state, running=False)
        self._state = state
        self.state_store.save(state)

    def _set_phase(self, phase: EnginePhase) -> None:
        if phase != self._phase:
            logger.debug(f"Engine phase: {self._phase.value} -> {phase.value}")
            self._phase = phase

    async def _wait_for_stop(self, seconds: float) -> None:
        """Sleep that ends early when stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
