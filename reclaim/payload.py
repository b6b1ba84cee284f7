# payload.py: Watermark payload record and its bit-level codec
#
# Wire layout (bytes, in order):
#   MAGIC (7) | version (1) | creator length (1) | creator id (0-255)
#   | timestamp (4, big-endian) | content fingerprint (4) | source type (1)
#
# The byte string is expanded to bits MSB first (np.unpackbits order).
# decode() never raises on bad content: anything that is not a well-formed
# record is reported as None ("no signature").

import enum
import logging
import re
import struct
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .errors import InvalidRecord

logger = logging.getLogger("reclaim.payload")

MAGIC = b"RECLAIM"
SUPPORTED_VERSIONS = frozenset({1})
CURRENT_VERSION = 1

MAX_CREATOR_BYTES = 255
FINGERPRINT_BYTES = 4
MAX_TIMESTAMP = 2 ** 32 - 1

_PREFIX_LEN = len(MAGIC) + 2                       # magic, version, creator length
_SUFFIX_LEN = 4 + FINGERPRINT_BYTES + 1            # timestamp, fingerprint, source type
OVERHEAD_BYTES = _PREFIX_LEN + _SUFFIX_LEN
MAX_ENCODED_BITS = (OVERHEAD_BYTES + MAX_CREATOR_BYTES) * 8

_HEX_FINGERPRINT = re.compile(r"^[0-9a-fA-F]{8}$")


class SourceType(enum.IntEnum):
    AUTHENTIC = 0
    AI_GENERATED = 1

    @property
    def label(self) -> str:
        return "ai" if self is SourceType.AI_GENERATED else "authentic"

    @classmethod
    def parse(cls, value: Union[str, int, "SourceType"]) -> "SourceType":
        """Map user-facing labels ("authentic", "ai", "ai_generated") to a variant"""
        if isinstance(value, SourceType):
            return value
        if isinstance(value, int):
            return cls(value)
        key = value.strip().lower().replace("-", "_")
        if key in ("authentic", "human"):
            return cls.AUTHENTIC
        if key in ("ai", "ai_generated", "generated"):
            return cls.AI_GENERATED
        raise ValueError(f"Unknown source type: {value!r}")


@dataclass(frozen=True)
class WatermarkRecord:
    creator_id: str
    timestamp: int
    source_type: SourceType = SourceType.AUTHENTIC
    content_fingerprint: Optional[str] = None
    version: int = CURRENT_VERSION

    def __post_init__(self):
        if self.content_fingerprint is not None:
            object.__setattr__(self, "content_fingerprint", self.content_fingerprint.lower())

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "creator_id": self.creator_id,
            "timestamp": self.timestamp,
            "content_fingerprint": self.content_fingerprint,
            "source_type": self.source_type.label,
        }


def _to_bytes(record: WatermarkRecord) -> bytes:
    if record.version not in SUPPORTED_VERSIONS:
        raise InvalidRecord(f"Unsupported payload version: {record.version}")

    creator = record.creator_id.encode("utf-8")
    if len(creator) > MAX_CREATOR_BYTES:
        raise InvalidRecord(
            f"creator_id is {len(creator)} bytes, maximum is {MAX_CREATOR_BYTES}"
        )

    if not (0 <= record.timestamp <= MAX_TIMESTAMP):
        raise InvalidRecord(f"timestamp out of range: {record.timestamp}")

    fingerprint = record.content_fingerprint
    if fingerprint is None or not _HEX_FINGERPRINT.match(fingerprint):
        raise InvalidRecord(f"content_fingerprint must be 8 hex chars, got {fingerprint!r}")

    source = SourceType(record.source_type)
    return b"".join([
        MAGIC,
        bytes([record.version, len(creator)]),
        creator,
        struct.pack(">I", record.timestamp),
        bytes.fromhex(fingerprint),
        bytes([int(source)]),
    ])


def encode(record: WatermarkRecord) -> np.ndarray:
    """Serialize a record to a uint8 array of bits (MSB first)"""
    data = _to_bytes(record)
    return np.unpackbits(np.frombuffer(data, dtype=np.uint8))


def encoded_length_bits(record: WatermarkRecord) -> int:
    return (OVERHEAD_BYTES + len(record.creator_id.encode("utf-8"))) * 8


def decode(bits: Union[np.ndarray, Sequence[int]], available: Optional[int] = None) -> Optional[WatermarkRecord]:
    """
    bits: bit sequence (0/1), possibly longer than the payload
    available: number of leading bits the caller vouches for (defaults to len(bits))
    returns: the decoded record, or None if no valid payload is present
    """
    bits = np.asarray(bits, dtype=np.uint8)
    if available is None:
        available = bits.size
    available = max(0, min(available, bits.size))
    usable = available - available % 8
    data = np.packbits(bits[:usable]).tobytes()

    if len(data) < OVERHEAD_BYTES or not data.startswith(MAGIC):
        return None

    offset = len(MAGIC)
    version = data[offset]
    if version not in SUPPORTED_VERSIONS:
        logger.debug(f"Magic found but version {version} is unsupported")
        return None

    creator_len = data[offset + 1]
    offset += 2
    if offset + creator_len + _SUFFIX_LEN > len(data):
        logger.debug(f"Declared creator length {creator_len} runs past available bits")
        return None

    try:
        creator_id = data[offset:offset + creator_len].decode("utf-8")
    except UnicodeDecodeError:
        return None
    offset += creator_len

    (timestamp,) = struct.unpack(">I", data[offset:offset + 4])
    offset += 4
    fingerprint = data[offset:offset + FINGERPRINT_BYTES].hex()
    offset += FINGERPRINT_BYTES

    try:
        source_type = SourceType(data[offset])
    except ValueError:
        logger.debug(f"Unknown source type byte {data[offset]}")
        return None

    return WatermarkRecord(
        creator_id=creator_id,
        timestamp=timestamp,
        source_type=source_type,
        content_fingerprint=fingerprint,
        version=version,
    )
