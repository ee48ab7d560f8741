"""
segment-stream command line entry point.

Usage:
    segment-stream run [--queue DIR] [--rtmp URL] [--passes N]
    segment-stream enqueue clip.mp4 --priority breaking --title "Market halt"
    segment-stream status
"""

import argparse
import asyncio
import json
import signal
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from segmentstream import __version__
from segmentstream.config import PathsConfig, SegmentStreamConfig, load_config
from segmentstream.exceptions import PlaylistStoreError, StartupError
from segmentstream.integration.notifications import WebhookNotifier
from segmentstream.playout.engine import StreamEngine
from segmentstream.playout.models import utc_now_iso
from segmentstream.playout.state import EngineStateStore
from segmentstream.playout.store import PlaylistStore
from segmentstream.utils.logging_setup import get_logger, setup_logging_from_config

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="segment-stream",
        description="Continuous playlist player streaming pre-rendered clips to a live sink.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--queue", help="Queue directory holding playlist.json and clips")
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Run the playout engine (default)")
    run.add_argument("--rtmp", help="Sink URL, e.g. rtmp://localhost:1935/live/show")
    run.add_argument("--passes", type=int, help="Stop after this many completed passes")

    enqueue = subparsers.add_parser("enqueue", help="Add a clip to the playlist")
    enqueue.add_argument("file", help="Pre-rendered media file")
    enqueue.add_argument(
        "--priority",
        default="normal",
        help="pinned, breaking, normal or filler (anything else plays as filler)",
    )
    enqueue.add_argument("--title", help="Display title")
    enqueue.add_argument("--position", type=int, help="Ordinal for pinned clips")
    enqueue.add_argument("--id", dest="clip_id", help="Clip id (random if omitted)")

    subparsers.add_parser("status", help="Print the persisted engine state")

    return parser


def _paths(config: SegmentStreamConfig, args: argparse.Namespace) -> PathsConfig:
    return config.paths.for_queue(args.queue)


async def _run_engine(
    engine: StreamEngine,
    config: SegmentStreamConfig,
    queue_dir: Path,
    sink_url: str,
    max_passes: Optional[int],
) -> None:
    """Run the engine until it is stopped by a signal or max_passes."""
    loop = asyncio.get_running_loop()
    run_task = asyncio.create_task(engine.run(max_passes=max_passes))

    def _on_signal(signame: str) -> None:
        logger.info(f"Received {signame}")
        engine.stop()
        # Cancelling the run task terminates the in-flight FFmpeg
        run_task.cancel()

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops
            pass

    try:
        if config.notify.url:
            async with WebhookNotifier(config.notify) as notifier:
                await notifier.notify_stream_live(queue=str(queue_dir), url=sink_url)

        await run_task
    except asyncio.CancelledError:
        if engine.state.running:
            raise
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def cmd_run(config: SegmentStreamConfig, args: argparse.Namespace) -> int:
    paths = _paths(config, args)
    queue_dir = paths.queue_path
    sink_url = getattr(args, "rtmp", None) or config.output.rtmp_url

    logger.info("=" * 50)
    logger.info(f"STREAM ENGINE v{__version__}")
    logger.info(f"Queue: {queue_dir}")
    logger.info(f"RTMP:  {sink_url}")
    logger.info("=" * 50)

    engine = StreamEngine.from_config(config, queue_dir=queue_dir, sink_url=sink_url)
    try:
        engine.prepare()
    except StartupError as e:
        logger.critical(f"Stream engine cannot start: {e}")
        return 1

    asyncio.run(
        _run_engine(engine, config, queue_dir, sink_url, getattr(args, "passes", None))
    )

    state = engine.state
    logger.info(
        f"Stream engine stopped after loop {state.loop_count} "
        f"({state.clips_played} clips played, {state.errors} errors)"
    )
    return 0


def _enqueue_record(args: argparse.Namespace, queue_dir: Path) -> Dict[str, Any]:
    media = Path(args.file).expanduser().resolve()
    try:
        stored_path = str(media.relative_to(queue_dir.resolve()))
    except ValueError:
        stored_path = str(media)

    record: Dict[str, Any] = {
        "id": args.clip_id or uuid.uuid4().hex[:12],
        "path": stored_path,
        "priority": args.priority,
        "addedAt": utc_now_iso(),
    }
    if args.position is not None:
        record["position"] = args.position
    if args.title:
        record["title"] = args.title
    return record


def cmd_enqueue(config: SegmentStreamConfig, args: argparse.Namespace) -> int:
    paths = _paths(config, args)
    if not Path(args.file).expanduser().is_file():
        logger.warning(f"Clip file does not exist yet: {args.file}")

    store = PlaylistStore(paths.playlist_path, queue_dir=paths.queue_path)
    try:
        clip = store.add_clip(_enqueue_record(args, paths.queue_path))
    except PlaylistStoreError as e:
        logger.error(f"Cannot enqueue, playlist is unreadable: {e}")
        return 1
    except OSError as e:
        logger.error(f"Cannot write playlist {store.path}: {e}")
        return 1

    print(clip.id)
    return 0


def cmd_status(config: SegmentStreamConfig, args: argparse.Namespace) -> int:
    paths = _paths(config, args)
    state = EngineStateStore(paths.state_path).read()
    if state is None:
        logger.error(f"No engine state found at {paths.state_path}")
        return 1

    print(json.dumps(state, indent=2))
    return 0


COMMANDS = {
    "run": cmd_run,
    "enqueue": cmd_enqueue,
    "status": cmd_status,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging_from_config(config.logging, level_override=args.log_level)

    command = COMMANDS[args.command or "run"]
    return command(config, args)


if __name__ == "__main__":
    sys.exit(main())
