# tests/test_tamper.py

import numpy as np
import pytest

from reclaim import watermark
from reclaim.payload import WatermarkRecord
from reclaim.tamper import apply_attack, reencode_jpeg, tamper_bytes, tamper_pixels


@pytest.fixture
def signed_image():
    pixels = np.random.default_rng(11).integers(0, 256, size=(96, 96, 3), dtype=np.uint8)
    record = WatermarkRecord("abc123", 1700000000, content_fingerprint="a1b2c3d4")
    return watermark.embed(watermark.encode_png(pixels), record), record


def test_jpeg_destroys_watermark(signed_image):
    data, _ = signed_image
    for preset in ("jpeg_light", "jpeg_heavy"):
        attacked = apply_attack(data, preset)
        assert attacked[:2] == b"\xff\xd8"
        assert watermark.extract(attacked) is None


def test_pixel_patch_keeps_watermark(signed_image):
    """Test that a patch outside the payload region leaves the record intact"""
    data, record = signed_image
    attacked = tamper_pixels(data, patch=10)
    pixels = watermark.decode_image(attacked)
    assert pixels[50, 50].tolist() == [255, 0, 0]
    assert watermark.extract(attacked) == record


def test_byte_tamper_changes_bytes(signed_image):
    data, _ = signed_image
    attacked = tamper_bytes(data)
    assert len(attacked) == len(data)
    assert attacked != data
    start = data.find(b"IDAT")
    assert attacked[:start + 50] == data[:start + 50]


def test_byte_tamper_short_buffer():
    assert tamper_bytes(b"\x00" * 10, [100]) == b"\x00" * 10


def test_reencode_jpeg_drops_alpha():
    pixels = np.zeros((16, 16, 4), dtype=np.uint8)
    out = reencode_jpeg(watermark.encode_png(pixels), quality=90)
    assert watermark.decode_image(out).shape == (16, 16, 3)


def test_unknown_preset(signed_image):
    data, _ = signed_image
    with pytest.raises(ValueError, match="Unknown attack preset"):
        apply_attack(data, "blur")
