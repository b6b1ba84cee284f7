# api.py: FastAPI server for signing and verifying media
#
# - /sign: POST an image or short video with a creator id; returns the
#   watermarked media (base64) and records the signature in the registry
# - /verify: POST an image or video; returns the verification outcome
# - /creators/{creator_id}: registry profile and signing history
# - /dev/tamper: deliberate edits for demos (only with api.enable_dev_routes)
# - Adds logging, request-ID middleware, API key check and metrics
#
# Decoding, embedding and ffmpeg work is blocking and runs in the threadpool.

import base64
import logging
import time
import uuid
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__, tamper, video, watermark
from .config import load_config
from .errors import CapacityExceeded, InvalidRecord, MalformedInput, MediaProcessingError
from .payload import SourceType
from .provenance import NullProvenanceService, SigningMetadata, sign_best_effort
from .registry import Registry
from .utils import media_kind
from .verification import format_timestamp, verify_image

# Load configuration
config = load_config()

app = FastAPI(
    title="Reclaim API",
    description="Invisible provenance watermarks for images and short videos",
    version=__version__,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Prometheus metrics
REQUESTS_TOTAL = Counter("reclaim_requests_total", "Total sign/verify requests", ["endpoint", "status"])
VERIFY_OUTCOMES = Counter("reclaim_verify_outcomes_total", "Verification outcomes", ["outcome", "media_type"])
REQUEST_LATENCY = Histogram("reclaim_request_latency_seconds", "Sign/verify latency", ["endpoint"])

# Logging setup
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("reclaim.api")

app.state.registry = Registry(config.registry.db_path)
app.state.provenance = NullProvenanceService(config.provenance)

PUBLIC_PATHS = ["/healthz", "/readyz", "/metrics", "/docs", "/openapi.json"]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class APIKeyMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if config.api.api_key and request.url.path not in PUBLIC_PATHS:
            if request.headers.get("x-api-key") != config.api.api_key:
                REQUESTS_TOTAL.labels(endpoint=request.url.path, status="unauthorized").inc()
                return JSONResponse({"detail": "Invalid API key"}, status_code=401)
        return await call_next(request)


app.add_middleware(RequestIDMiddleware)
app.add_middleware(APIKeyMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    if request.url.path in ("/sign", "/verify"):
        REQUEST_LATENCY.labels(endpoint=request.url.path).observe(duration)

    logger.info(f"{request.method} {request.url.path} [{getattr(request.state, 'request_id', '-')}] {response.status_code} {duration:.3f}s")
    return response


# Health endpoints
@app.get("/healthz")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/readyz")
async def readiness():
    """Readiness check - images always work, video needs ffmpeg"""
    return {
        "status": "ready",
        "video_enabled": video.ffmpeg_available(config.video),
        "provenance_enabled": app.state.provenance.available(),
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return PlainTextResponse(generate_latest(), media_type="text/plain")


def validate_file_upload(file: UploadFile) -> str:
    """Validate uploaded file, return its media kind"""
    kind = media_kind(content_type=file.content_type)
    if kind is None:
        raise HTTPException(status_code=400, detail="Invalid file type. Supported: PNG, JPEG, MP4, MOV, WebM.")

    if hasattr(file.file, 'seek') and hasattr(file.file, 'tell'):
        file.file.seek(0, 2)
        size = file.file.tell()
        file.file.seek(0)
        if size > config.api.max_file_size_mb * 1024 * 1024:
            raise HTTPException(status_code=413, detail=f"File too large (max {config.api.max_file_size_mb}MB)")
    return kind


def to_http_error(endpoint: str, e: Exception) -> HTTPException:
    """Map engine errors to HTTP errors and count them"""
    if isinstance(e, MediaProcessingError):
        status, detail = 502, f"Media processing failed: {e}"
    else:
        status, detail = 400, str(e)
    logger.error(f"{endpoint} failed: {detail}")
    REQUESTS_TOTAL.labels(endpoint=endpoint, status="error").inc()
    return HTTPException(status_code=status, detail=detail)


@app.post("/sign")
async def sign(
    file: UploadFile = File(...),
    creator_id: str = Form(...),
    source_type: str = Form("authentic"),
    prompt: Optional[str] = Form(None),
):
    """
    Embed a signature for `creator_id` into an image or the first frame of a video.

    Returns:
        {"success": true, "signed_media_base64": str, "media_type": str, "metadata": dict}

    Example:
        curl -F "file=@photo.png;type=image/png" -F "creator_id=abc123" http://localhost:8000/sign
    """
    kind = validate_file_upload(file)
    creator_id = creator_id.strip()
    if not creator_id:
        raise HTTPException(status_code=400, detail="Creator ID is required")
    try:
        parsed_source = SourceType.parse(source_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    content = await file.read()
    registry: Registry = app.state.registry

    try:
        if kind == "video":
            if not video.ffmpeg_available(config.video):
                raise HTTPException(status_code=503, detail="Video processing is not available on this server (ffmpeg required)")
            suffix = video.suffix_for(file.content_type, file.filename)
            signed = await run_in_threadpool(
                video.sign_video, content, creator_id, parsed_source, config.video, suffix
            )
            output, manifest_applied = signed.data, False
        else:
            signed = await run_in_threadpool(watermark.sign, content, creator_id, parsed_source)
            author = await run_in_threadpool(registry.display_name, creator_id)
            output, manifest_applied = await run_in_threadpool(
                sign_best_effort, app.state.provenance, signed.data,
                SigningMetadata(
                    author=author,
                    transaction_id=signed.record.content_fingerprint,
                    metadata={"sourceType": parsed_source.label, "platform": "Reclaim"},
                ),
            )
    except CapacityExceeded as e:
        side = watermark.minimum_dimension(creator_id)
        REQUESTS_TOTAL.labels(endpoint="/sign", status="error").inc()
        raise HTTPException(status_code=400, detail=f"Image too small for signature: {e}. Use at least {side}x{side} pixels.")
    except (MalformedInput, InvalidRecord, MediaProcessingError) as e:
        raise to_http_error("/sign", e)

    record = signed.record
    await run_in_threadpool(registry.upsert_creator, creator_id)
    await run_in_threadpool(registry.record_signature, creator_id, record.content_fingerprint,
                            record.source_type, prompt)
    REQUESTS_TOTAL.labels(endpoint="/sign", status="success").inc()

    return JSONResponse({
        "success": True,
        "signed_media_base64": base64.b64encode(output).decode(),
        "media_type": kind,
        "metadata": {
            "creator_id": record.creator_id,
            "timestamp": format_timestamp(record.timestamp),
            "original_hash": record.content_fingerprint,
            "version": record.version,
            "source_type": record.source_type.label,
            "c2pa_applied": manifest_applied,
        },
    })


@app.post("/verify")
async def verify(file: UploadFile = File(...)):
    """
    Check an image or video for a signature.

    Returns:
        {"outcome": str, "verified": bool, "tampered": bool, "creator": str, "message": str, ...}
    """
    kind = validate_file_upload(file)
    content = await file.read()
    registry: Registry = app.state.registry
    strict = config.verify.strict_registry_check

    try:
        if kind == "video":
            if not video.ffmpeg_available(config.video):
                raise HTTPException(status_code=503, detail="Video processing is not available on this server (ffmpeg required)")
            report = await run_in_threadpool(video.verify_video, content, config.video, registry, strict)
        else:
            report = await run_in_threadpool(verify_image, content, app.state.provenance, registry, strict)
    except (MalformedInput, MediaProcessingError) as e:
        raise to_http_error("/verify", e)

    VERIFY_OUTCOMES.labels(outcome=report.outcome.kind.value, media_type=kind).inc()
    REQUESTS_TOTAL.labels(endpoint="/verify", status="success").inc()
    return JSONResponse(report.to_dict())


@app.get("/creators/{creator_id}")
async def creator(creator_id: str):
    """Registry profile and signing history for a creator"""
    registry: Registry = app.state.registry
    profile = await run_in_threadpool(registry.lookup_creator, creator_id)
    signatures = await run_in_threadpool(registry.signatures_for, creator_id)
    if profile is None and not signatures:
        raise HTTPException(status_code=404, detail="Creator not found")

    return {
        "id": creator_id,
        "display_name": profile.display_name if profile else None,
        "created_at": profile.created_at if profile else None,
        "signatures": [
            {
                "id": s.id,
                "fingerprint": s.fingerprint,
                "source_type": s.source_type.label,
                "prompt": s.prompt,
                "signed_at": s.signed_at,
            }
            for s in signatures
        ],
    }


@app.post("/dev/tamper")
async def dev_tamper(file: UploadFile = File(...), mode: str = Form(...)):
    """Apply an attack preset to an image (development only)"""
    if not config.api.enable_dev_routes:
        raise HTTPException(status_code=404, detail="Not Found")
    if validate_file_upload(file) != "image":
        raise HTTPException(status_code=400, detail="Tampering is only supported for images")

    content = await file.read()
    try:
        tampered = await run_in_threadpool(tamper.apply_attack, content, mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MalformedInput as e:
        raise to_http_error("/dev/tamper", e)

    return {
        "success": True,
        "mode": mode,
        "tampered_media_base64": base64.b64encode(tampered).decode(),
        "original_size": len(content),
        "tampered_size": len(tampered),
    }
