"""
segment-stream Test Configuration

Shared fixtures and configuration for all tests.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from segmentstream import config as config_module
from segmentstream.playout.state import EngineStateStore
from segmentstream.playout.store import PlaylistStore


# ============ Temporary File Fixtures ============


@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(scope="function")
def queue_dir(temp_dir: Path) -> Path:
    """Queue directory holding the playlist, engine state and clips."""
    queue = temp_dir / "queue"
    queue.mkdir()
    return queue


@pytest.fixture(scope="function")
def playlist_store(queue_dir: Path) -> PlaylistStore:
    return PlaylistStore(queue_dir / "playlist.json", queue_dir=queue_dir)


@pytest.fixture(scope="function")
def state_store(queue_dir: Path) -> EngineStateStore:
    return EngineStateStore(queue_dir / "engine-state.json")


@pytest.fixture(scope="function")
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_file = temp_dir / "config.yaml"
    config_content = f"""
paths:
  queue_dir: "{temp_dir / 'queue'}"

output:
  rtmp_url: "rtmp://127.0.0.1:1935/live/test"

scheduling:
  poll_interval: 0.5

logging:
  level: "DEBUG"
  to_file: false
"""
    config_file.write_text(config_content)
    return config_file


# ============ Environment Fixtures ============


@pytest.fixture(autouse=True)
def clean_environment():
    """Clean environment variables and cached config for each test."""
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("SEGMENT_STREAM_"):
            del os.environ[key]
    config_module._config = None

    yield

    config_module._config = None
    os.environ.clear()
    os.environ.update(original_env)


# ============ Markers ============


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "ffmpeg: FFmpeg required")
