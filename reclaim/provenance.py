# provenance.py: Interface to the external manifest signer/verifier
#
# Manifests are an optional layer applied on top of the watermarked output.
# A failure here must never abort the watermark pipeline: the
# *_best_effort helpers log and fall back to the watermark-only result.
#
# To plug in a real signer, subclass ProvenanceService and pass it to the
# API/CLI together with its ProvenanceConfig.

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .config import ProvenanceConfig

logger = logging.getLogger("reclaim.provenance")


class ManifestStatus(str, enum.Enum):
    ABSENT = "absent"
    PRESENT_VALID = "valid"
    PRESENT_INVALID = "invalid"


@dataclass
class SigningMetadata:
    author: str
    transaction_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ManifestResult:
    found: bool
    valid: bool = False
    author: Optional[str] = None
    timestamp: Optional[str] = None
    # Raw status reported by the verifier, e.g. "valid", "invalid", "unknown"
    validation_status: str = "unknown"

    @property
    def status(self) -> ManifestStatus:
        if not self.found:
            return ManifestStatus.ABSENT
        if self.valid:
            return ManifestStatus.PRESENT_VALID
        # Includes "unknown" (e.g. self-signed): present but not established
        return ManifestStatus.PRESENT_INVALID

    def to_dict(self) -> dict:
        if not self.found:
            return {"found": False}
        return {
            "found": True,
            "valid": self.valid,
            "author": self.author,
            "timestamp": self.timestamp,
            "validation_status": self.validation_status,
        }


class ProvenanceService:
    """Base collaborator. Subclasses talk to the actual manifest SDK."""

    def __init__(self, config: Optional[ProvenanceConfig] = None):
        self.config = config or ProvenanceConfig()

    def available(self) -> bool:
        return False

    def sign(self, buffer: bytes, metadata: SigningMetadata) -> Optional[bytes]:
        """Return the buffer with a manifest attached, or None if unavailable"""
        raise NotImplementedError

    def verify(self, buffer: bytes) -> Optional[ManifestResult]:
        """Return the manifest found in the buffer, or None if there is none"""
        raise NotImplementedError


class NullProvenanceService(ProvenanceService):
    """Used when no manifest signer is configured"""

    def sign(self, buffer: bytes, metadata: SigningMetadata) -> Optional[bytes]:
        return None

    def verify(self, buffer: bytes) -> Optional[ManifestResult]:
        return None


def sign_best_effort(service: Optional[ProvenanceService], buffer: bytes,
                     metadata: SigningMetadata) -> Tuple[bytes, bool]:
    """Returns (output buffer, whether a manifest was applied)"""
    if service is None or not service.available():
        return buffer, False
    try:
        signed = service.sign(buffer, metadata)
    except Exception as e:
        logger.error(f"Manifest signing failed, falling back to watermark only: {e}")
        return buffer, False
    if not signed:
        return buffer, False
    return signed, True


def verify_best_effort(service: Optional[ProvenanceService], buffer: bytes) -> Optional[ManifestResult]:
    if service is None or not service.available():
        return None
    try:
        return service.verify(buffer)
    except Exception as e:
        logger.warning(f"Manifest verification failed: {e}")
        return None
