# bitplane.py: Least-significant-bit read/write over a decoded pixel buffer
#
# Pixel buffers are numpy arrays [H, W, C] uint8 with channels ordered R, G, B[, A].
# One bit is carried by the LSB of the blue and of the green byte of every
# pixel. Traversal order is row-major, then column, then channel (blue, green).
# Red and alpha are never modified.
#
# write_bits and read_bits must use the same traversal or nothing round-trips.

import math

import numpy as np

from .errors import CapacityExceeded

# Indices into an RGB(A) pixel, in traversal order
EMBED_CHANNELS = [2, 1]
BITS_PER_PIXEL = len(EMBED_CHANNELS)


def _check_buffer(pixels: np.ndarray) -> None:
    if pixels.ndim != 3 or pixels.shape[2] < 3:
        raise ValueError(f"Expected an [H, W, C>=3] pixel buffer, got shape {pixels.shape}")
    if pixels.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")


def capacity_bits(pixels: np.ndarray) -> int:
    """Number of payload bits the buffer can carry"""
    _check_buffer(pixels)
    height, width = pixels.shape[:2]
    return height * width * BITS_PER_PIXEL


def write_bits(pixels: np.ndarray, bits) -> None:
    """
    Overwrite the LSBs of the buffer, in place, with the given bits.
    Raises CapacityExceeded (and leaves the buffer untouched) if the bits don't fit.
    """
    bits = np.asarray(bits, dtype=np.uint8).reshape(-1)
    available = capacity_bits(pixels)
    if bits.size > available:
        raise CapacityExceeded(bits.size, available)
    if np.any(bits > 1):
        raise ValueError("Bit sequence may only contain 0 and 1")

    planes = pixels[:, :, EMBED_CHANNELS]  # copy, [H, W, 2]
    flat = planes.reshape(-1)
    n = bits.size
    flat[:n] = (flat[:n] & 0xFE) | bits
    pixels[:, :, EMBED_CHANNELS] = flat.reshape(planes.shape)


def read_bits(pixels: np.ndarray, count: int) -> np.ndarray:
    """Return the LSBs of the first `count` positions (clamped to capacity)"""
    _check_buffer(pixels)
    flat = pixels[:, :, EMBED_CHANNELS].reshape(-1)
    return flat[:max(0, count)] & 1


def minimum_square_side(n_bits: int) -> int:
    """Smallest N such that an N x N image holds n_bits"""
    pixels_needed = math.ceil(n_bits / BITS_PER_PIXEL)
    return math.ceil(math.sqrt(pixels_needed))
