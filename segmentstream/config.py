"""
Configuration management for segment-stream.

Handles loading, validation, and access to application configuration.
"""

import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field

# Global configuration instance
_config: Optional["SegmentStreamConfig"] = None


class PathsConfig(BaseModel):
    """Working directory layout."""
    output_dir: str = ".segment-stream"
    queue_dir: Optional[str] = None  # Defaults to <output_dir>/queue
    playlist_file: str = "playlist.json"
    state_file: str = "engine-state.json"

    @property
    def queue_path(self) -> Path:
        """Directory owning the playlist and the clip files it references."""
        if self.queue_dir:
            return Path(self.queue_dir)
        return Path(self.output_dir) / "queue"

    @property
    def playlist_path(self) -> Path:
        return self.queue_path / self.playlist_file

    @property
    def state_path(self) -> Path:
        return self.queue_path / self.state_file

    def for_queue(self, queue_dir: Optional[Union[str, Path]]) -> "PathsConfig":
        """Same layout rooted at another queue directory (e.g. from --queue)."""
        if not queue_dir:
            return self
        return self.model_copy(update={"queue_dir": str(queue_dir)})


class OutputConfig(BaseModel):
    """Live output sink."""
    rtmp_url: str = "rtmp://localhost:1935/live/marvin"


class FFmpegConfig(BaseModel):
    """FFmpeg encoding settings used for every clip delivery."""
    path: str = "ffmpeg"
    log_level: str = "info"  # Needs to be >= info for frame= progress lines
    realtime: bool = True  # -re, read input at native frame rate
    video_codec: str = "libx264"
    preset: str = "veryfast"
    video_bitrate: str = "2500k"
    maxrate: str = "2500k"
    bufsize: str = "5000k"
    pix_fmt: str = "yuv420p"
    gop: int = 60
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    audio_sample_rate: int = 44100
    output_format: str = "flv"


class TransitionConfig(BaseModel):
    """Filler delivered between two clips."""
    enabled: bool = True
    duration: float = 1.0
    color: str = "#0d1117"
    resolution: str = "1920x1080"
    preset: str = "ultrafast"


class SchedulingConfig(BaseModel):
    """Scheduler loop settings."""
    poll_interval: float = 10.0
    # Legacy behaviour: an urgent clip keeps preempting every step until the pass ends
    repeat_breaking_within_pass: bool = False


class NotifyConfig(BaseModel):
    """Webhook notification sent when the engine goes live."""
    url: Optional[str] = None
    secret: str = ""
    timeout: float = 10.0
    show: str = "segment-stream"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = "logs/segment-stream.log"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    to_console: bool = True
    to_file: bool = True


class SegmentStreamConfig(BaseModel):
    """Main segment-stream configuration."""
    paths: PathsConfig = Field(default_factory=PathsConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)
    transition: TransitionConfig = Field(default_factory=TransitionConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> SegmentStreamConfig:
    """
    Load configuration from file.

    Args:
        config_path: Path to config file. Defaults to config.yaml in the
            current directory or project root.

    Returns:
        Loaded and validated configuration.
    """
    global _config

    if config_path is None:
        possible_paths = [
            Path("config.yaml"),
            Path(__file__).parent.parent / "config.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data: dict[str, Any] = {}

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    env_overrides = _get_env_overrides()
    _deep_merge(config_data, env_overrides)

    _config = SegmentStreamConfig(**config_data)
    return _config


def get_config() -> SegmentStreamConfig:
    """
    Get the current configuration.

    Returns:
        Current configuration (loads default if not yet loaded).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> SegmentStreamConfig:
    """Drop the cached configuration and load it again from disk."""
    global _config
    _config = None
    return load_config()


def _get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    # Values that must stay strings even when they look numeric
    string_vars = {"SEGMENT_STREAM_NOTIFY_SECRET", "SEGMENT_STREAM_OUTPUT", "SEGMENT_STREAM_QUEUE"}

    env_map = {
        "SEGMENT_STREAM_OUTPUT": ("paths", "output_dir"),
        "SEGMENT_STREAM_QUEUE": ("paths", "queue_dir"),
        "SEGMENT_STREAM_RTMP_URL": ("output", "rtmp_url"),
        "SEGMENT_STREAM_FFMPEG_PATH": ("ffmpeg", "path"),
        "SEGMENT_STREAM_POLL_INTERVAL": ("scheduling", "poll_interval"),
        "SEGMENT_STREAM_NOTIFY_URL": ("notify", "url"),
        "SEGMENT_STREAM_NOTIFY_SECRET": ("notify", "secret"),
        "SEGMENT_STREAM_LOG_LEVEL": ("logging", "level"),
    }

    for env_var, path in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            parsed = value if env_var in string_vars else _parse_env_value(value)
            _set_nested(overrides, path, parsed)

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    # Boolean
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    # Integer
    try:
        return int(value)
    except ValueError:
        pass

    # Float
    try:
        return float(value)
    except ValueError:
        pass

    return value


def _set_nested(d: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    """Set a nested dictionary value from a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Deep merge override into base dictionary."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
