# watermark.py: Embed and extract signed watermark records in images
#
# - decode_image / encode_png: bytes <-> RGB(A) pixel buffer via OpenCV
# - embed / extract: payload codec + bit-plane engine + content hasher
# - sign: build a fresh record for a creator and embed it
#
# Output of embed is always PNG; any lossy re-encode destroys the watermark.

import logging
import time
from dataclasses import dataclass, replace
from typing import Optional, Union

import cv2
import numpy as np

from . import bitplane, hashing, payload
from .errors import MalformedInput
from .payload import SourceType, WatermarkRecord

logger = logging.getLogger("reclaim.watermark")


@dataclass
class SignedMedia:
    data: bytes
    record: WatermarkRecord


def decode_image(data: bytes) -> np.ndarray:
    """Decode image bytes to a [H, W, 3|4] uint8 RGB(A) buffer"""
    if not data:
        raise MalformedInput("Empty image")
    try:
        img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise MalformedInput(f"Could not decode image: {e}") from e
    if img is None:
        raise MalformedInput("Could not decode image")

    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    elif img.dtype != np.uint8:
        raise MalformedInput(f"Unsupported pixel type {img.dtype}")

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    channels = img.shape[2]
    if channels == 1:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    if channels == 2:
        gray, alpha = img[:, :, 0], img[:, :, 1]
        return np.dstack([gray, gray, gray, alpha])
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    if channels == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    raise MalformedInput(f"Unsupported channel count {channels}")


def encode_png(pixels: np.ndarray) -> bytes:
    pixels = np.ascontiguousarray(pixels)
    if pixels.shape[2] == 4:
        bgr = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGRA)
    else:
        bgr = cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
    ok, buf = cv2.imencode(".png", bgr)
    if not ok:
        raise MalformedInput("Could not encode PNG")
    return buf.tobytes()


def embed_pixels(pixels: np.ndarray, record: WatermarkRecord) -> WatermarkRecord:
    """
    Embed a record into the buffer in place.
    Fills in the content fingerprint from the unmodified pixels if the record has none.
    Returns the record that was actually embedded.
    """
    if record.content_fingerprint is None:
        record = replace(record, content_fingerprint=hashing.short_fingerprint_hex(pixels))
    bits = payload.encode(record)
    bitplane.write_bits(pixels, bits)
    return record


def embed(image: bytes, record: WatermarkRecord) -> bytes:
    """Return a PNG of `image` carrying `record`. Raises CapacityExceeded if too small."""
    pixels = decode_image(image)
    embed_pixels(pixels, record)
    return encode_png(pixels)


def sign(image: bytes, creator_id: str,
         source_type: Union[SourceType, str] = SourceType.AUTHENTIC,
         timestamp: Optional[int] = None) -> SignedMedia:
    """Stamp a new record for `creator_id` and embed it"""
    pixels = decode_image(image)
    record = WatermarkRecord(
        creator_id=creator_id,
        timestamp=int(time.time()) if timestamp is None else timestamp,
        source_type=SourceType.parse(source_type),
    )
    record = embed_pixels(pixels, record)
    logger.info(f"Signed {pixels.shape[1]}x{pixels.shape[0]} image for {creator_id} "
                f"(fingerprint {record.content_fingerprint}, {record.source_type.label})")
    return SignedMedia(data=encode_png(pixels), record=record)


def extract_pixels(pixels: np.ndarray) -> Optional[WatermarkRecord]:
    available = min(bitplane.capacity_bits(pixels), payload.MAX_ENCODED_BITS)
    bits = bitplane.read_bits(pixels, available)
    return payload.decode(bits, available)


def extract(image: bytes) -> Optional[WatermarkRecord]:
    """Return the embedded record, or None if the image is not signed"""
    return extract_pixels(decode_image(image))


def has_watermark(image: bytes) -> bool:
    return extract(image) is not None


def required_bits(creator_id: str) -> int:
    record = WatermarkRecord(creator_id=creator_id, timestamp=0, content_fingerprint="00000000")
    return payload.encoded_length_bits(record)


def minimum_dimension(creator_id: str) -> int:
    """Smallest square image side that can carry a record for this creator"""
    return bitplane.minimum_square_side(required_bits(creator_id))
