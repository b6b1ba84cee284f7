# tamper.py: Deliberate edits used to demonstrate tamper evidence
#
# - byte: flip bytes after the PNG IDAT marker (breaks manifest hashes and
#   usually the image itself)
# - pixel: paint a small red patch and re-encode as PNG (strips any manifest,
#   keeps the LSB payload unless the patch covers it)
# - jpeg: lossy re-encode; destroys the LSB payload
#
# Presets live in config.ATTACK_PRESETS.

from typing import List, Optional

import cv2
import numpy as np

from .config import get_attack_preset
from .errors import MalformedInput
from .watermark import decode_image, encode_png

PATCH_ORIGIN = 45


def tamper_bytes(buffer: bytes, offsets: Optional[List[int]] = None) -> bytes:
    offsets = offsets or [50, 100, 150, 200, 250]
    result = bytearray(buffer)
    start = result.find(b"IDAT")
    if start == -1:
        start = len(result) // 2
    for offset in offsets:
        pos = start + offset
        if pos < len(result):
            result[pos] = 1 if result[pos] == 0 else result[pos] - 1
    return bytes(result)


def tamper_pixels(buffer: bytes, patch: int = 10) -> bytes:
    pixels = decode_image(buffer)
    y0 = x0 = PATCH_ORIGIN
    # RGB(A) order; alpha (if any) forced opaque inside the patch
    pixels[y0:y0 + patch, x0:x0 + patch, :3] = (255, 0, 0)
    if pixels.shape[2] == 4:
        pixels[y0:y0 + patch, x0:x0 + patch, 3] = 255
    return encode_png(pixels)


def reencode_jpeg(buffer: bytes, quality: int = 75) -> bytes:
    pixels = decode_image(buffer)
    bgr = cv2.cvtColor(np.ascontiguousarray(pixels[:, :, :3]), cv2.COLOR_RGB2BGR)
    ok, out = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise MalformedInput("Could not encode JPEG")
    return out.tobytes()


def apply_attack(buffer: bytes, preset_name: str) -> bytes:
    preset = get_attack_preset(preset_name)
    mode = preset.get("mode")
    if mode == "byte":
        return tamper_bytes(buffer, preset.get("offsets"))
    if mode == "pixel":
        return tamper_pixels(buffer, preset.get("patch", 10))
    if mode == "jpeg":
        return reencode_jpeg(buffer, preset.get("quality", 75))
    raise ValueError(f"Unknown attack preset: {preset_name}")
