"""
Unit tests for the command line.
"""

import asyncio
import json
import os
import signal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from segmentstream import main as cli
from tests.fixtures import ClipRecordFactory, read_playlist, touch_media, write_playlist


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep the CLI from reconfiguring the root logger during tests."""
    monkeypatch.setattr(cli, "setup_logging_from_config", lambda *args, **kwargs: None)


@pytest.fixture
def cli_queue(temp_dir: Path) -> Path:
    """The queue directory named in temp_config_file."""
    queue = temp_dir / "queue"
    queue.mkdir()
    return queue


def _fake_process(returncode: int = 0, runtime: float = 0.0) -> MagicMock:
    reader = asyncio.StreamReader()
    reader.feed_eof()

    exited = asyncio.Event()

    async def wait() -> int:
        try:
            await asyncio.wait_for(exited.wait(), timeout=runtime)
        except asyncio.TimeoutError:
            pass
        return returncode

    process = MagicMock()
    process.stderr = reader
    process.returncode = None
    process.wait = wait
    process.terminate = MagicMock(side_effect=exited.set)
    process.kill = MagicMock(side_effect=exited.set)
    return process


@pytest.mark.unit
class TestParser:

    def test_enqueue_defaults(self):
        args = cli.build_parser().parse_args(["enqueue", "clip.mp4"])

        assert args.command == "enqueue"
        assert args.priority == "normal"
        assert args.position is None
        assert args.clip_id is None

    def test_run_options(self):
        args = cli.build_parser().parse_args(
            ["--queue", "/q", "run", "--rtmp", "rtmp://x/live/y", "--passes", "2"]
        )

        assert args.queue == "/q"
        assert args.rtmp == "rtmp://x/live/y"
        assert args.passes == 2


@pytest.mark.unit
class TestEnqueue:

    def test_enqueue_stores_relative_path(self, temp_config_file: Path, cli_queue: Path, capsys):
        media = cli_queue / "clips" / "halt.mp4"
        media.parent.mkdir()
        media.write_bytes(b"\x00")

        code = cli.main([
            "--config", str(temp_config_file),
            "enqueue", str(media),
            "--priority", "breaking",
            "--title", "Market halt",
            "--id", "halt-1",
        ])

        assert code == 0
        assert capsys.readouterr().out.strip() == "halt-1"
        (record,) = read_playlist(cli_queue / "playlist.json")["clips"]
        assert record["id"] == "halt-1"
        assert record["path"] == str(Path("clips") / "halt.mp4")
        assert record["priority"] == "breaking"
        assert record["title"] == "Market halt"
        assert record["addedAt"].endswith("Z")

    def test_enqueue_outside_queue_keeps_absolute_path(
        self, temp_config_file: Path, cli_queue: Path, temp_dir: Path, capsys
    ):
        media = temp_dir / "elsewhere.mp4"
        media.write_bytes(b"\x00")

        code = cli.main(["--config", str(temp_config_file), "enqueue", str(media), "--position", "2"])

        assert code == 0
        clip_id = capsys.readouterr().out.strip()
        (record,) = read_playlist(cli_queue / "playlist.json")["clips"]
        assert record["id"] == clip_id
        assert len(clip_id) == 12
        assert record["path"] == str(media.resolve())
        assert record["position"] == 2

    def test_enqueue_into_corrupt_playlist_fails(self, temp_config_file: Path, cli_queue: Path):
        (cli_queue / "playlist.json").write_text("{ nope")

        code = cli.main(["--config", str(temp_config_file), "enqueue", "x.mp4"])

        assert code == 1
        assert (cli_queue / "playlist.json").read_text() == "{ nope"


@pytest.mark.unit
class TestStatus:

    def test_status_prints_state(self, temp_config_file: Path, cli_queue: Path, capsys):
        state = {"running": True, "currentClipId": "a", "loopCount": 3}
        (cli_queue / "engine-state.json").write_text(json.dumps(state))

        code = cli.main(["--config", str(temp_config_file), "status"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == state

    def test_status_without_state(self, temp_config_file: Path, cli_queue: Path):
        assert cli.main(["--config", str(temp_config_file), "status"]) == 1


@pytest.mark.unit
class TestRun:

    def test_unwritable_queue_exits_non_zero(self, temp_config_file: Path, temp_dir: Path):
        blocker = temp_dir / "blocker"
        blocker.write_text("file")

        code = cli.main([
            "--config", str(temp_config_file),
            "--queue", str(blocker / "queue"),
            "run",
        ])

        assert code == 1

    def test_run_single_pass(self, temp_config_file: Path, cli_queue: Path, monkeypatch):
        records = [
            ClipRecordFactory.create(id="a", priority="normal", minutes=0),
            ClipRecordFactory.create(id="b", priority="breaking", minutes=1),
        ]
        touch_media(cli_queue, records)
        write_playlist(cli_queue / "playlist.json", records)

        spawn = AsyncMock(side_effect=lambda *args, **kwargs: _fake_process(0))
        monkeypatch.setattr("segmentstream.streaming.delivery.asyncio.create_subprocess_exec", spawn)

        code = cli.main(["--config", str(temp_config_file), "run", "--passes", "1"])

        assert code == 0
        # Two clips, each followed by a transition
        assert spawn.call_count == 4
        assert spawn.call_args_list[0].args[-1] == "rtmp://127.0.0.1:1935/live/test"

        state = json.loads((cli_queue / "engine-state.json").read_text())
        assert state["loopCount"] == 1
        assert state["clipsPlayed"] == 2
        assert [c["id"] for c in read_playlist(cli_queue / "playlist.json")["clips"]] == ["a"]

    def test_sigterm_stops_engine_and_exits_zero(self, temp_config_file: Path, cli_queue: Path, monkeypatch):
        records = [
            ClipRecordFactory.create(id="a", priority="normal", minutes=0),
            ClipRecordFactory.create(id="b", priority="normal", minutes=1),
        ]
        touch_media(cli_queue, records)
        write_playlist(cli_queue / "playlist.json", records)

        processes = []

        def spawn_and_signal(*args, **kwargs):
            # The first clip is still playing when SIGTERM arrives
            process = _fake_process(0, runtime=30.0)
            processes.append(process)
            os.kill(os.getpid(), signal.SIGTERM)
            return process

        spawn = AsyncMock(side_effect=spawn_and_signal)
        monkeypatch.setattr("segmentstream.streaming.delivery.asyncio.create_subprocess_exec", spawn)

        code = cli.main(["--config", str(temp_config_file), "run"])

        assert code == 0
        assert spawn.call_count == 1
        processes[0].terminate.assert_called_once()

        state = json.loads((cli_queue / "engine-state.json").read_text())
        assert state["running"] is False
        assert state["currentClipId"] == "a"
        assert state["loopCount"] == 0
        assert state["clipsPlayed"] == 0
