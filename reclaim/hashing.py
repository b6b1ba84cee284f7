# hashing.py: Content fingerprints over raw pixel data (not file bytes)
#
# The fingerprint embedded in a watermark is taken from the pixels *before*
# embedding. Embedding rewrites LSBs, so recomputing it from a signed image
# will generally not match even when nothing was edited.

import hashlib

import numpy as np

SHORT_FINGERPRINT_BYTES = 4


def _rgba(pixels: np.ndarray) -> np.ndarray:
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise ValueError(f"Expected an RGB or RGBA pixel buffer, got shape {pixels.shape}")
    if pixels.shape[2] == 4:
        return pixels
    # Opaque images hash the same whether or not they carry an alpha channel
    alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([pixels, alpha], axis=2)


def fingerprint(pixels: np.ndarray) -> bytes:
    """SHA-256 over every pixel's R, G, B, A bytes in row-major order"""
    data = np.ascontiguousarray(_rgba(pixels), dtype=np.uint8)
    return hashlib.sha256(data.tobytes()).digest()


def short_fingerprint(pixels: np.ndarray) -> bytes:
    return fingerprint(pixels)[:SHORT_FINGERPRINT_BYTES]


def short_fingerprint_hex(pixels: np.ndarray) -> str:
    return short_fingerprint(pixels).hex()


def hash_string(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compare_fingerprints(original: str, current: str) -> bool:
    """Compare the leading 8 hex chars of two fingerprints, ignoring case"""
    n = SHORT_FINGERPRINT_BYTES * 2
    return original[:n].lower() == current[:n].lower()
