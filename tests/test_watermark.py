# tests/test_watermark.py

import cv2
import numpy as np
import pytest

from reclaim import watermark
from reclaim.errors import CapacityExceeded, MalformedInput
from reclaim.hashing import short_fingerprint_hex
from reclaim.payload import SourceType, WatermarkRecord
from reclaim.tamper import reencode_jpeg


def make_png(size=64, channels=3, seed=0) -> bytes:
    """Random-noise RGB(A) image as PNG bytes"""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(size, size, channels), dtype=np.uint8)
    return watermark.encode_png(pixels)


@pytest.fixture
def record():
    return WatermarkRecord(
        version=1,
        creator_id="abc123",
        timestamp=1700000000,
        content_fingerprint="a1b2c3d4",
        source_type=SourceType.AUTHENTIC,
    )


def test_embed_extract_64x64(record):
    """Scenario: 64x64 lossless round trip, destroyed by lossy re-encode"""
    signed = watermark.embed(make_png(64), record)
    assert signed.startswith(b"\x89PNG")
    assert watermark.extract(signed) == record

    jpeg = reencode_jpeg(signed, quality=75)
    assert watermark.extract(jpeg) is None


def test_capacity_exceeded_16x16():
    """Scenario: 16x16 cannot carry a 50-character creator id"""
    pixels = np.random.default_rng(1).integers(0, 256, size=(16, 16, 3), dtype=np.uint8)
    original = pixels.copy()
    record = WatermarkRecord("c" * 50, 1700000000, content_fingerprint="a1b2c3d4")

    with pytest.raises(CapacityExceeded):
        watermark.embed_pixels(pixels, record)
    np.testing.assert_array_equal(pixels, original)

    with pytest.raises(CapacityExceeded):
        watermark.embed(watermark.encode_png(original), record)


def test_unsigned_images_have_no_record():
    """Test absence for images that were never signed"""
    for seed in range(5):
        assert watermark.extract(make_png(32, seed=seed)) is None
    flat = watermark.encode_png(np.full((32, 32, 3), 200, dtype=np.uint8))
    assert watermark.extract(flat) is None
    assert not watermark.has_watermark(flat)


def test_tiny_image_extracts_none():
    """Test that images smaller than the header are simply unsigned"""
    assert watermark.extract(make_png(2)) is None


def test_sign_fills_fingerprint_from_original_pixels():
    """Test that the embedded fingerprint describes the pre-embedding pixels"""
    image = make_png(48, seed=3)
    original_fp = short_fingerprint_hex(watermark.decode_image(image))

    signed = watermark.sign(image, "creator-1", "ai", timestamp=1234)
    assert signed.record.content_fingerprint == original_fp
    assert signed.record.source_type is SourceType.AI_GENERATED
    assert signed.record.timestamp == 1234

    extracted = watermark.extract(signed.data)
    assert extracted == signed.record
    # Embedding changed LSBs, so the signed artifact no longer hashes the same
    assert short_fingerprint_hex(watermark.decode_image(signed.data)) != original_fp


def test_sign_uses_current_time():
    signed = watermark.sign(make_png(32), "abc")
    assert signed.record.timestamp > 1700000000


def test_rgba_alpha_is_preserved(record):
    """Test that alpha is never used for embedding"""
    image = make_png(32, channels=4, seed=9)
    signed = watermark.embed(image, record)
    before = watermark.decode_image(image)
    after = watermark.decode_image(signed)
    assert after.shape == before.shape
    np.testing.assert_array_equal(after[:, :, 3], before[:, :, 3])
    assert watermark.extract(signed) == record


def test_grayscale_input(record):
    """Test grayscale images are promoted to RGB and can be signed"""
    gray = np.random.default_rng(4).integers(0, 256, size=(32, 32), dtype=np.uint8)
    ok, buf = cv2.imencode(".png", gray)
    assert ok
    signed = watermark.embed(buf.tobytes(), record)
    assert watermark.decode_image(signed).shape == (32, 32, 3)
    assert watermark.extract(signed) == record


def test_jpeg_input_signs_to_png(record):
    """Test that lossy inputs are accepted; the output is lossless"""
    jpeg = reencode_jpeg(make_png(40), quality=85)
    signed = watermark.embed(jpeg, record)
    assert signed.startswith(b"\x89PNG")
    assert watermark.extract(signed) == record


def test_resigning_overwrites(record):
    """Test that signing a signed image replaces the previous record"""
    first = watermark.embed(make_png(40), record)
    second_record = WatermarkRecord("someone-else", 1, SourceType.AI_GENERATED, "00ff00ff")
    second = watermark.embed(first, second_record)
    assert watermark.extract(second) == second_record


def test_decode_image_rejects_garbage():
    with pytest.raises(MalformedInput):
        watermark.decode_image(b"")
    with pytest.raises(MalformedInput):
        watermark.decode_image(b"definitely not an image")
    with pytest.raises(MalformedInput):
        watermark.extract(b"\x89PNG\r\n\x1a\nbroken")


def test_decode_image_channel_order():
    """Test that decoded buffers are RGB, not OpenCV's BGR"""
    bgr = np.zeros((4, 4, 3), dtype=np.uint8)
    bgr[:, :, 2] = 255  # red in BGR
    ok, buf = cv2.imencode(".png", bgr)
    pixels = watermark.decode_image(buf.tobytes())
    assert pixels[0, 0].tolist() == [255, 0, 0]


def test_minimum_dimension():
    assert watermark.required_bits("abc123") == 24 * 8
    assert watermark.minimum_dimension("abc123") == 10
    assert watermark.minimum_dimension("c" * 50) == 17
