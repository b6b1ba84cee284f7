# config.py: Configuration management with presets and validation

import os
import yaml
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field


class WatermarkConfig(BaseModel):
    version: int = Field(default=1, ge=1, le=255)
    default_source_type: str = Field(default="authentic")


class VerifyConfig(BaseModel):
    # Opt-in: compare the embedded fingerprint against the registry ledger
    strict_registry_check: bool = Field(default=False)


class VideoConfig(BaseModel):
    max_duration_seconds: float = Field(default=10.0, gt=0, le=600)
    timeout_seconds: float = Field(default=60.0, gt=0, le=3600)
    ffmpeg_bin: str = Field(default="ffmpeg")
    ffprobe_bin: str = Field(default="ffprobe")
    # Must be lossless in RGB or the first-frame watermark is destroyed
    video_codec: str = Field(default="libx264rgb")
    codec_args: List[str] = Field(default_factory=lambda: ["-qp", "0", "-preset", "ultrafast"])


class APIConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    api_key: Optional[str] = None
    cors_origins: list = Field(default_factory=lambda: ["http://localhost:3000"])
    max_file_size_mb: int = Field(default=50, ge=1, le=1000)
    enable_dev_routes: bool = Field(default=False)


class RegistryConfig(BaseModel):
    db_path: str = Field(default="reclaim.db")


class ProvenanceConfig(BaseModel):
    """Key material for the external manifest signer, passed explicitly to it"""
    enabled: bool = Field(default=False)
    private_key_path: Optional[str] = None
    certificate_path: Optional[str] = None
    tsa_url: Optional[str] = None
    claim_generator: str = Field(default="Reclaim/1.0")


class Config(BaseModel):
    watermark: WatermarkConfig = Field(default_factory=WatermarkConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)
    video: VideoConfig = Field(default_factory=VideoConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    provenance: ProvenanceConfig = Field(default_factory=ProvenanceConfig)


# Attacks used to demonstrate that edits destroy or expose the signature
ATTACK_PRESETS = {
    "jpeg_light": {"mode": "jpeg", "quality": 90},
    "jpeg_heavy": {"mode": "jpeg", "quality": 50},
    "pixel": {"mode": "pixel", "patch": 10},
    "byte": {"mode": "byte", "offsets": [50, 100, 150, 200, 250]},
}

# (section, key, env var, cast)
ENV_OVERRIDES = [
    ("api", "api_key", "API_KEY", str),
    ("api", "host", "API_HOST", str),
    ("api", "port", "API_PORT", int),
    ("api", "max_file_size_mb", "MAX_FILE_SIZE_MB", int),
    ("registry", "db_path", "RECLAIM_DB_PATH", str),
    ("video", "max_duration_seconds", "RECLAIM_MAX_VIDEO_SECONDS", float),
    ("video", "ffmpeg_bin", "FFMPEG_BIN", str),
    ("video", "ffprobe_bin", "FFPROBE_BIN", str),
]


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from file or environment variables"""
    config_data = {}

    if config_path and os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

    # Environment variables override the config file
    for section, key, env_var, cast in ENV_OVERRIDES:
        value = os.getenv(env_var)
        if value is None:
            continue
        config_data.setdefault(section, {})[key] = cast(value)

    return Config(**config_data)


def get_attack_preset(preset_name: str) -> Dict[str, Any]:
    """Get tamper parameters for an attack preset"""
    return ATTACK_PRESETS.get(preset_name, {})
