# video.py: Narrow short video clips to the still-image watermark pipeline
#
# - probe / validate_duration: ffprobe metadata, reject clips over the limit
# - extract_first_frame: the representative frame is always frame 0
# - reinject_frame: overlay the watermarked frame on frame 0 only, re-encode
#   video with a lossless RGB codec, stream-copy audio
# - sign_video / verify_video: end-to-end first-frame signing and checking
#
# Every call works in its own temporary directory which is removed on every
# exit path, including ffmpeg failures and timeouts.

import json
import logging
import os
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional, Union

from . import watermark
from .config import VideoConfig
from .errors import MalformedInput, MediaProcessingError
from .payload import SourceType
from .registry import Registry
from .verification import VerificationReport, build_report
from .watermark import SignedMedia

logger = logging.getLogger("reclaim.video")

# Containers that can carry the lossless RGB stream the watermark needs
SIGNABLE_SUFFIXES = {".mp4", ".mov", ".mkv"}

CONTENT_TYPE_SUFFIXES = {
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
    "video/webm": ".webm",
}


@dataclass
class VideoMetadata:
    duration: float
    width: int
    height: int
    format: str


@dataclass
class DurationCheck:
    valid: bool
    duration: float
    message: Optional[str] = None


@contextmanager
def workspace(prefix: str = "reclaim-"):
    """Unique scratch directory, always deleted"""
    path = tempfile.mkdtemp(prefix=prefix)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def run_ffmpeg(cmd: List[str], timeout: float) -> subprocess.CompletedProcess:
    """Run an ffmpeg/ffprobe command; any failure becomes MediaProcessingError"""
    tool = os.path.basename(cmd[0])
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise MediaProcessingError(f"{tool} not found (is ffmpeg installed?)") from e
    except subprocess.TimeoutExpired as e:
        raise MediaProcessingError(f"{tool} timed out after {timeout:.0f}s") from e

    if result.returncode != 0:
        lines = (result.stderr or "").strip().splitlines()
        detail = lines[-1] if lines else f"exit code {result.returncode}"
        raise MediaProcessingError(f"{tool} failed: {detail}")
    return result


def _write(directory: str, name: str, data: bytes) -> str:
    path = os.path.join(directory, name)
    with open(path, "wb") as f:
        f.write(data)
    return path


def _read(path: str) -> bytes:
    if not os.path.exists(path) or os.path.getsize(path) == 0:
        raise MediaProcessingError(f"ffmpeg produced no output at {os.path.basename(path)}")
    with open(path, "rb") as f:
        return f.read()


# --- path-level steps (used inside a workspace) ---

def _probe_path(path: str, config: VideoConfig) -> VideoMetadata:
    result = run_ffmpeg([
        config.ffprobe_bin, '-v', 'error', '-print_format', 'json',
        '-show_format', '-show_streams', path
    ], timeout=config.timeout_seconds)
    try:
        info = json.loads(result.stdout or "{}")
    except json.JSONDecodeError as e:
        raise MediaProcessingError(f"Unreadable ffprobe output: {e}") from e

    stream = next((s for s in info.get("streams", []) if s.get("codec_type") == "video"), None)
    if stream is None:
        raise MalformedInput("No video stream found")

    fmt = info.get("format", {})
    duration = float(fmt.get("duration") or stream.get("duration") or 0)
    return VideoMetadata(
        duration=duration,
        width=int(stream.get("width") or 0),
        height=int(stream.get("height") or 0),
        format=fmt.get("format_name", "unknown"),
    )


def _extract_frame_path(video_path: str, frame_path: str, config: VideoConfig) -> bytes:
    run_ffmpeg([
        config.ffmpeg_bin, '-y', '-hide_banner', '-loglevel', 'error',
        '-i', video_path, '-map', '0:v:0', '-frames:v', '1',
        '-pix_fmt', 'rgb24', frame_path
    ], timeout=config.timeout_seconds)
    return _read(frame_path)


def _reinject_path(video_path: str, frame_path: str, output_path: str, config: VideoConfig) -> bytes:
    run_ffmpeg([
        config.ffmpeg_bin, '-y', '-hide_banner', '-loglevel', 'error',
        '-i', video_path, '-i', frame_path,
        '-filter_complex', "[0:v:0][1:v]overlay=x=0:y=0:format=rgb:enable='eq(n,0)'[v]",
        '-map', '[v]', '-map', '0:a?',
        '-c:v', config.video_codec, *config.codec_args,
        '-c:a', 'copy', '-map_metadata', '0',
        output_path
    ], timeout=config.timeout_seconds)
    return _read(output_path)


# --- public API ---

def probe(video: bytes, config: Optional[VideoConfig] = None) -> VideoMetadata:
    config = config or VideoConfig()
    with workspace() as tmp:
        return _probe_path(_write(tmp, "input", video), config)


def check_duration(metadata: VideoMetadata, max_duration: float) -> DurationCheck:
    if metadata.duration > max_duration:
        return DurationCheck(
            valid=False,
            duration=metadata.duration,
            message=f"Video is {metadata.duration:.1f}s long. Maximum allowed is {max_duration:g}s.",
        )
    return DurationCheck(valid=True, duration=metadata.duration)


def validate_duration(video: bytes, config: Optional[VideoConfig] = None) -> DurationCheck:
    """Never raises: probe failures are reported as an invalid result"""
    config = config or VideoConfig()
    try:
        metadata = probe(video, config)
    except (MalformedInput, MediaProcessingError) as e:
        return DurationCheck(valid=False, duration=0.0, message=str(e))
    return check_duration(metadata, config.max_duration_seconds)


def extract_first_frame(video: bytes, config: Optional[VideoConfig] = None) -> bytes:
    """Frame 0 of the clip as an RGB PNG"""
    config = config or VideoConfig()
    with workspace() as tmp:
        return _extract_frame_path(_write(tmp, "input", video), os.path.join(tmp, "frame.png"), config)


def reinject_frame(video: bytes, frame_png: bytes, config: Optional[VideoConfig] = None,
                   suffix: str = ".mp4") -> bytes:
    """Replace frame 0 with `frame_png`; other frames keep their pixels, audio is copied"""
    config = config or VideoConfig()
    with workspace() as tmp:
        video_path = _write(tmp, "input", video)
        frame_path = _write(tmp, "frame.png", frame_png)
        return _reinject_path(video_path, frame_path, os.path.join(tmp, "output" + suffix), config)


def sign_video(video: bytes, creator_id: str,
               source_type: Union[SourceType, str] = SourceType.AUTHENTIC,
               config: Optional[VideoConfig] = None,
               suffix: str = ".mp4",
               timestamp: Optional[int] = None) -> SignedMedia:
    """
    Watermark the first frame of a short clip.
    Raises MalformedInput if the clip is too long (before any frame work),
    CapacityExceeded if the frame is too small, MediaProcessingError on ffmpeg failure.
    """
    config = config or VideoConfig()
    if suffix not in SIGNABLE_SUFFIXES:
        raise MalformedInput(f"Cannot sign {suffix} videos; supported: {', '.join(sorted(SIGNABLE_SUFFIXES))}")

    with workspace() as tmp:
        video_path = _write(tmp, "input" + suffix, video)
        check = check_duration(_probe_path(video_path, config), config.max_duration_seconds)
        if not check.valid:
            raise MalformedInput(check.message)

        frame = _extract_frame_path(video_path, os.path.join(tmp, "frame.png"), config)
        signed = watermark.sign(frame, creator_id, source_type, timestamp=timestamp)
        frame_path = _write(tmp, "signed.png", signed.data)
        output = _reinject_path(video_path, frame_path, os.path.join(tmp, "output" + suffix), config)

    logger.info(f"Signed {check.duration:.1f}s video for {creator_id} ({len(output)} bytes)")
    return SignedMedia(data=output, record=signed.record)


def verify_video(video: bytes, config: Optional[VideoConfig] = None,
                 registry: Optional[Registry] = None,
                 strict: bool = False) -> VerificationReport:
    """First-frame verification. Manifests are not checked for video."""
    config = config or VideoConfig()
    with workspace() as tmp:
        video_path = _write(tmp, "input", video)
        duration = None
        try:
            duration = _probe_path(video_path, config).duration
        except MediaProcessingError as e:
            logger.warning(f"Could not probe video, continuing without duration: {e}")
        frame = _extract_frame_path(video_path, os.path.join(tmp, "frame.png"), config)

    record = watermark.extract(frame)
    return build_report(record, registry=registry, strict=strict,
                        media_type="video", duration=duration)


def suffix_for(content_type: Optional[str] = None, filename: Optional[str] = None) -> str:
    if content_type in CONTENT_TYPE_SUFFIXES:
        return CONTENT_TYPE_SUFFIXES[content_type]
    if filename:
        _, ext = os.path.splitext(filename.lower())
        if ext:
            return ext
    return ".mp4"


def ffmpeg_available(config: Optional[VideoConfig] = None) -> bool:
    config = config or VideoConfig()
    return shutil.which(config.ffmpeg_bin) is not None and shutil.which(config.ffprobe_bin) is not None


def encoder_available(name: str, config: Optional[VideoConfig] = None) -> bool:
    config = config or VideoConfig()
    try:
        result = run_ffmpeg([config.ffmpeg_bin, '-hide_banner', '-encoders'], timeout=config.timeout_seconds)
    except MediaProcessingError:
        return False
    for line in result.stdout.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] == name:
            return True
    return False
