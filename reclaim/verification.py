# verification.py: Classify a verification attempt into a fixed set of outcomes
#
# - decide(): pure function of the extracted record and an optional manifest
# - describe(): user-facing message for an outcome
# - verify_image(): extract + best-effort manifest check + decide
#
# The manifest status is reported alongside the watermark verdict but never
# overrides it. MODIFIED_SINCE_SIGNING is only produced in strict registry
# mode, where the embedded fingerprint must appear in the creator's ledger.

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Collection, Optional

from . import watermark
from .payload import SourceType, WatermarkRecord
from .provenance import ManifestResult, ManifestStatus, ProvenanceService, verify_best_effort
from .registry import Registry

logger = logging.getLogger("reclaim.verification")


class OutcomeKind(str, enum.Enum):
    NO_SIGNATURE = "no_signature"
    VERIFIED_AUTHENTIC = "verified_authentic"
    VERIFIED_AI_GENERATED = "verified_ai_generated"
    MODIFIED_SINCE_SIGNING = "modified_since_signing"


# Every SourceType must have an entry
OUTCOME_BY_SOURCE = {
    SourceType.AUTHENTIC: OutcomeKind.VERIFIED_AUTHENTIC,
    SourceType.AI_GENERATED: OutcomeKind.VERIFIED_AI_GENERATED,
}

SOURCE_LABELS = {
    SourceType.AUTHENTIC: "Authentic",
    SourceType.AI_GENERATED: "AI-Generated",
}


@dataclass(frozen=True)
class VerificationOutcome:
    kind: OutcomeKind
    creator_id: Optional[str] = None
    timestamp: Optional[int] = None
    record: Optional[WatermarkRecord] = None
    manifest_status: ManifestStatus = ManifestStatus.ABSENT
    manifest: Optional[ManifestResult] = None

    @property
    def verified(self) -> bool:
        return self.kind in (OutcomeKind.VERIFIED_AUTHENTIC, OutcomeKind.VERIFIED_AI_GENERATED)

    @property
    def tampered(self) -> bool:
        return self.kind is OutcomeKind.MODIFIED_SINCE_SIGNING


def decide(record: Optional[WatermarkRecord],
           manifest: Optional[ManifestResult] = None,
           trusted_fingerprints: Optional[Collection[str]] = None) -> VerificationOutcome:
    """
    record: result of watermark.extract (None if unsigned)
    manifest: result of the external manifest check, if any
    trusted_fingerprints: fingerprints the registry holds for the record's creator;
        None disables the comparison
    """
    manifest_status = manifest.status if manifest is not None else ManifestStatus.ABSENT

    if record is None:
        return VerificationOutcome(OutcomeKind.NO_SIGNATURE, manifest_status=manifest_status,
                                   manifest=manifest)

    if trusted_fingerprints is not None:
        trusted = {fp.lower() for fp in trusted_fingerprints}
        if record.content_fingerprint not in trusted:
            return VerificationOutcome(OutcomeKind.MODIFIED_SINCE_SIGNING,
                                       creator_id=record.creator_id,
                                       record=record,
                                       manifest_status=manifest_status,
                                       manifest=manifest)

    return VerificationOutcome(OUTCOME_BY_SOURCE[record.source_type],
                               creator_id=record.creator_id,
                               timestamp=record.timestamp,
                               record=record,
                               manifest_status=manifest_status,
                               manifest=manifest)


def _manifest_note(manifest: Optional[ManifestResult]) -> str:
    if manifest is None or not manifest.found:
        return ""
    if manifest.valid:
        return " (C2PA cryptographically verified)"
    if manifest.validation_status == "unknown":
        return " (C2PA present, self-signed certificate)"
    return " (C2PA manifest invalid: file bytes changed after signing)"


def describe(outcome: VerificationOutcome, display_name: Optional[str] = None,
             media_type: str = "image") -> str:
    name = display_name or outcome.creator_id or "Unknown"

    if outcome.kind is OutcomeKind.NO_SIGNATURE:
        manifest = outcome.manifest
        if manifest is None or not manifest.found:
            return f"No signature found in {media_type} - origin unknown"
        author = manifest.author or "Unknown"
        if manifest.valid:
            return (f"No watermark found; C2PA manifest verified for {author} "
                    f"({media_type} was re-encoded, LSB watermark lost)")
        return (f"No watermark found; C2PA manifest from {author} present "
                f"(signature status: {manifest.validation_status})")

    if outcome.kind is OutcomeKind.MODIFIED_SINCE_SIGNING:
        return f"Tampering suspected - {media_type} does not match any content signed by {name}"

    label = SOURCE_LABELS[outcome.record.source_type]
    message = f"Verified - {label} {'content' if media_type == 'image' else media_type} signed by {name}"
    if media_type == "video":
        message += " (first frame watermark)"
    return message + _manifest_note(outcome.manifest)


def format_timestamp(timestamp: Optional[int]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class VerificationReport:
    outcome: VerificationOutcome
    message: str
    display_name: Optional[str] = None
    media_type: str = "image"
    duration: Optional[float] = None

    def to_dict(self) -> dict:
        outcome = self.outcome
        record = outcome.record
        data = {
            "outcome": outcome.kind.value,
            "verified": outcome.verified,
            "tampered": outcome.tampered,
            "creator": outcome.creator_id,
            "creator_display_name": self.display_name,
            "timestamp": format_timestamp(outcome.timestamp),
            "source_type": record.source_type.label if record else None,
            "content_fingerprint": record.content_fingerprint if record else None,
            "message": self.message,
            "media_type": self.media_type,
            "c2pa": outcome.manifest.to_dict() if outcome.manifest else {"found": False},
            "manifest_status": outcome.manifest_status.value,
        }
        if self.duration is not None:
            data["duration"] = self.duration
        return data


def build_report(record: Optional[WatermarkRecord],
                 manifest: Optional[ManifestResult] = None,
                 registry: Optional[Registry] = None,
                 strict: bool = False,
                 media_type: str = "image",
                 duration: Optional[float] = None) -> VerificationReport:
    trusted = None
    if strict and registry is not None and record is not None:
        trusted = registry.fingerprints_for(record.creator_id)

    outcome = decide(record, manifest, trusted_fingerprints=trusted)

    display_name = None
    if record is not None:
        display_name = registry.display_name(record.creator_id) if registry else record.creator_id
    elif manifest is not None and manifest.found:
        display_name = manifest.author

    message = describe(outcome, display_name, media_type=media_type)
    logger.info(f"Verification outcome: {outcome.kind.value} ({message})")
    return VerificationReport(outcome=outcome, message=message, display_name=display_name,
                              media_type=media_type, duration=duration)


def verify_image(image: bytes,
                 provenance: Optional[ProvenanceService] = None,
                 registry: Optional[Registry] = None,
                 strict: bool = False) -> VerificationReport:
    """Extract the watermark, check any manifest, and classify. Raises MalformedInput."""
    record = watermark.extract(image)
    manifest = verify_best_effort(provenance, image)
    return build_report(record, manifest, registry=registry, strict=strict)
