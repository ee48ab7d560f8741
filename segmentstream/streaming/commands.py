"""
FFmpeg command builders for live delivery.

Every clip is re-encoded to the same H.264/AAC FLV profile so that
consecutive clips and transitions form one continuous stream at the sink.
"""

from pathlib import Path
from typing import Optional, Union

from segmentstream.config import FFmpegConfig, TransitionConfig


def _encode_args(ffmpeg: FFmpegConfig, preset: Optional[str] = None) -> list[str]:
    """Output encoding arguments shared by clips and transitions."""
    return [
        "-c:v", ffmpeg.video_codec,
        "-preset", preset or ffmpeg.preset,
        "-b:v", ffmpeg.video_bitrate,
        "-maxrate", ffmpeg.maxrate,
        "-bufsize", ffmpeg.bufsize,
        "-pix_fmt", ffmpeg.pix_fmt,
        "-g", str(ffmpeg.gop),
        "-c:a", ffmpeg.audio_codec,
        "-b:a", ffmpeg.audio_bitrate,
        "-ar", str(ffmpeg.audio_sample_rate),
    ]


def build_clip_command(
    clip_path: Union[str, Path],
    sink_url: str,
    ffmpeg: Optional[FFmpegConfig] = None,
) -> list[str]:
    """
    Build the FFmpeg command streaming one clip to the sink.

    Args:
        clip_path: Media file to play
        sink_url: Destination, e.g. an RTMP URL
        ffmpeg: Encoding settings (defaults if None)

    Returns:
        FFmpeg command as list of arguments
    """
    cfg = ffmpeg or FFmpegConfig()

    cmd = [cfg.path, "-hide_banner", "-loglevel", cfg.log_level]

    # Pace reading at native frame rate, the sink expects live timing
    if cfg.realtime:
        cmd.append("-re")
    cmd.extend(["-i", str(clip_path)])

    cmd.extend(_encode_args(cfg))
    cmd.extend(["-f", cfg.output_format, sink_url])
    return cmd


def build_transition_command(
    sink_url: str,
    ffmpeg: Optional[FFmpegConfig] = None,
    transition: Optional[TransitionConfig] = None,
) -> list[str]:
    """
    Build the FFmpeg command for the short filler played between clips.

    The filler is a solid color frame with silent stereo audio generated by
    lavfi, so it has no dependency on any media file.
    """
    cfg = ffmpeg or FFmpegConfig()
    tr = transition or TransitionConfig()
    duration = f"{tr.duration:g}"

    cmd = [cfg.path, "-hide_banner", "-loglevel", "warning"]
    if cfg.realtime:
        cmd.append("-re")
    cmd.extend([
        "-f", "lavfi",
        "-i", f"color=c={tr.color}:s={tr.resolution}:d={duration}",
        "-f", "lavfi",
        "-i", f"anullsrc=r={cfg.audio_sample_rate}:cl=stereo",
        "-t", duration,
    ])
    cmd.extend(_encode_args(cfg, preset=tr.preset))
    cmd.extend(["-f", cfg.output_format, sink_url])
    return cmd
