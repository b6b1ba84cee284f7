# tests/test_video.py

import hashlib
import os
import subprocess
import tempfile
from unittest.mock import patch

import numpy as np
import pytest

from reclaim import video, watermark
from reclaim.config import VideoConfig
from reclaim.errors import MalformedInput, MediaProcessingError
from reclaim.verification import OutcomeKind
from reclaim.video import VideoMetadata


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_run_ffmpeg_nonzero_exit():
    with patch("reclaim.video.subprocess.run", return_value=completed(1, stderr="line\nInvalid data found")):
        with pytest.raises(MediaProcessingError, match="Invalid data found"):
            video.run_ffmpeg(["ffmpeg", "-i", "x"], timeout=5)


def test_run_ffmpeg_timeout():
    with patch("reclaim.video.subprocess.run", side_effect=subprocess.TimeoutExpired("ffmpeg", 5)):
        with pytest.raises(MediaProcessingError, match="timed out"):
            video.run_ffmpeg(["ffmpeg", "-i", "x"], timeout=5)


def test_run_ffmpeg_missing_binary():
    with pytest.raises(MediaProcessingError, match="not found"):
        video.run_ffmpeg(["/nonexistent/ffmpeg-binary"], timeout=5)


def test_workspace_removed_on_error():
    """Test that scratch directories are cleaned up on every exit path"""
    with pytest.raises(RuntimeError):
        with video.workspace() as tmp:
            path = tmp
            with open(os.path.join(tmp, "input"), "wb") as f:
                f.write(b"data")
            raise RuntimeError("boom")
    assert not os.path.exists(path)


def test_ffmpeg_failure_leaves_no_workspace():
    created = []
    real_mkdtemp = tempfile.mkdtemp

    def tracking_mkdtemp(*args, **kwargs):
        path = real_mkdtemp(*args, **kwargs)
        created.append(path)
        return path

    with patch("reclaim.video.tempfile.mkdtemp", side_effect=tracking_mkdtemp), \
         patch("reclaim.video.subprocess.run", side_effect=subprocess.TimeoutExpired("ffmpeg", 1)):
        with pytest.raises(MediaProcessingError):
            video.extract_first_frame(b"video bytes")
    assert created
    assert not any(os.path.exists(p) for p in created)


def test_probe_parses_ffprobe_json():
    stdout = ('{"streams": [{"codec_type": "audio"}, {"codec_type": "video", "width": 640, "height": 360}],'
              ' "format": {"duration": "4.25", "format_name": "mov,mp4,m4a"}}')
    with patch("reclaim.video.subprocess.run", return_value=completed(stdout=stdout)):
        metadata = video.probe(b"video bytes")
    assert metadata == VideoMetadata(duration=4.25, width=640, height=360, format="mov,mp4,m4a")


def test_probe_without_video_stream():
    stdout = '{"streams": [{"codec_type": "audio"}], "format": {"duration": "3"}}'
    with patch("reclaim.video.subprocess.run", return_value=completed(stdout=stdout)):
        with pytest.raises(MalformedInput):
            video.probe(b"audio only")


def test_check_duration():
    metadata = VideoMetadata(duration=12.0, width=320, height=240, format="mp4")
    check = video.check_duration(metadata, 10)
    assert not check.valid
    assert check.message == "Video is 12.0s long. Maximum allowed is 10s."
    assert video.check_duration(VideoMetadata(10.0, 320, 240, "mp4"), 10).valid


def test_validate_duration_never_raises():
    with patch("reclaim.video.subprocess.run", return_value=completed(1, stderr="moov atom not found")):
        check = video.validate_duration(b"garbage")
    assert not check.valid
    assert "moov atom not found" in check.message


def test_long_video_rejected_before_frame_work():
    """Scenario: a 12-second clip is refused without extracting any frame"""
    long_clip = VideoMetadata(duration=12.0, width=320, height=240, format="mp4")
    with patch("reclaim.video._probe_path", return_value=long_clip), \
         patch("reclaim.video._extract_frame_path") as mock_extract, \
         patch("reclaim.video._reinject_path") as mock_reinject:
        with pytest.raises(MalformedInput, match="Maximum allowed is 10s"):
            video.sign_video(b"video bytes", "abc123")
    mock_extract.assert_not_called()
    mock_reinject.assert_not_called()


def test_unsignable_container():
    with pytest.raises(MalformedInput, match="Cannot sign .webm"):
        video.sign_video(b"video bytes", "abc123", suffix=".webm")


def test_verify_video_probe_failure_is_not_fatal():
    """Test that verification continues without duration if ffprobe fails"""
    frame = watermark.encode_png(np.zeros((32, 32, 3), dtype=np.uint8))
    with patch("reclaim.video._probe_path", side_effect=MediaProcessingError("ffprobe failed")), \
         patch("reclaim.video._extract_frame_path", return_value=frame):
        report = video.verify_video(b"video bytes")
    assert report.outcome.kind is OutcomeKind.NO_SIGNATURE
    assert report.duration is None
    assert report.media_type == "video"


def test_suffix_for():
    assert video.suffix_for("video/quicktime") == ".mov"
    assert video.suffix_for(None, "Clip.MKV") == ".mkv"
    assert video.suffix_for("application/octet-stream", None) == ".mp4"


def test_ffmpeg_available():
    assert not video.ffmpeg_available(VideoConfig(ffmpeg_bin="/nonexistent/ffmpeg"))


def test_encoder_available():
    listing = " V....D libx264rgb           libx264 H.264 RGB\n A....D aac                  AAC\n"
    with patch("reclaim.video.subprocess.run", return_value=completed(stdout=listing)):
        assert video.encoder_available("libx264rgb")
        assert not video.encoder_available("libvpx")
    with patch("reclaim.video.subprocess.run", side_effect=FileNotFoundError()):
        assert not video.encoder_available("libx264rgb")


# --- integration (needs a real ffmpeg build with libx264) ---

requires_ffmpeg = pytest.mark.skipif(
    not video.ffmpeg_available() or not video.encoder_available("libx264rgb"),
    reason="ffmpeg with libx264rgb not available",
)


def audio_md5(path: str) -> str:
    result = subprocess.run(["ffmpeg", "-v", "error", "-i", path, "-map", "0:a", "-c", "copy", "-f", "md5", "-"],
                            capture_output=True, text=True, check=True)
    return result.stdout.strip()


@pytest.fixture
def test_clip():
    """Five second test pattern with a sine tone"""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "clip.mp4")
        subprocess.run([
            "ffmpeg", "-y", "-v", "error",
            "-f", "lavfi", "-i", "testsrc=size=160x120:rate=10:duration=5",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=5",
            "-c:v", "mpeg4", "-c:a", "aac", "-shortest", path
        ], check=True, capture_output=True)
        yield path


@requires_ffmpeg
def test_sign_and_verify_video(test_clip):
    """Scenario: sign a short clip, the first frame carries the record, audio is untouched"""
    with open(test_clip, "rb") as f:
        original = f.read()

    signed = video.sign_video(original, "abc123", "authentic", suffix=".mp4", timestamp=1700000000)
    assert signed.record.creator_id == "abc123"

    report = video.verify_video(signed.data)
    assert report.outcome.kind is OutcomeKind.VERIFIED_AUTHENTIC
    assert report.outcome.record == signed.record
    assert report.message.endswith("(first frame watermark)")

    before = video.probe(original).duration
    after = video.probe(signed.data).duration
    assert abs(before - after) < 0.2

    with tempfile.TemporaryDirectory() as tmpdir:
        signed_path = os.path.join(tmpdir, "signed.mp4")
        with open(signed_path, "wb") as f:
            f.write(signed.data)
        assert audio_md5(signed_path) == audio_md5(test_clip)
        assert hashlib.sha256(signed.data).digest() != hashlib.sha256(original).digest()


@requires_ffmpeg
def test_unsigned_video(test_clip):
    with open(test_clip, "rb") as f:
        report = video.verify_video(f.read())
    assert report.outcome.kind is OutcomeKind.NO_SIGNATURE
    assert report.duration == pytest.approx(5.0, abs=0.2)
