"""Configuration for the protection pipeline.

Settings come from, in increasing precedence: dataclass defaults, an optional
YAML file (explicit path or ``ASSETDRM_CONFIG``), and environment variables
(a ``.env`` file is honoured through python-dotenv).

Example YAML::

    chunk_size: 65536
    max_upload_mb: 500
    log_level: INFO
    preview:
      image_max_width: 600
      audio_max_seconds: 20
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

LOGGER = logging.getLogger(__name__)

ENV_CONFIG = "ASSETDRM_CONFIG"
ENV_LOG_LEVEL = "ASSETDRM_LOG_LEVEL"
ENV_FFMPEG = "ASSETDRM_FFMPEG"
ENV_FFPROBE = "ASSETDRM_FFPROBE"
ENV_MAX_UPLOAD_MB = "ASSETDRM_MAX_UPLOAD_MB"


@dataclass(frozen=True)
class PreviewSettings:
    watermark_text: str = "PREVIEW"
    banner_text: str = "WATERMARKED PREVIEW - PURCHASE TO UNLOCK"
    watermark_rows: int = 3
    watermark_cols: int = 3
    watermark_angle: float = 30.0

    image_max_width: int = 600
    image_max_height: int = 450
    image_quality: int = 30
    bar_height: int = 60

    audio_max_seconds: float = 20.0
    beep_first: float = 1.0
    beep_interval: float = 2.0
    beep_duration: float = 0.3
    beep_frequency: float = 1000.0
    beep_gain: float = 0.6

    video_sample_points: Tuple[float, ...] = (0.10, 0.35, 0.60, 0.85)
    video_tile_width: int = 320
    video_tile_height: int = 180
    video_columns: int = 2

    model_tile_size: int = 256
    model_views: Tuple[str, ...] = ("front", "back", "left", "right", "top", "bottom")
    model_columns: int = 3
    model_max_faces: int = 20000

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"


@dataclass(frozen=True)
class AppConfig:
    chunk_size: int = 64 * 1024
    max_upload_mb: int = 500
    log_level: str = "WARNING"
    preview: PreviewSettings = field(default_factory=PreviewSettings)


def _coerce(name: str, current: Any, value: Any) -> Any:
    """Coerce a YAML/env value to the type of the field's default."""
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be a boolean")
        return value
    if isinstance(current, tuple):
        if not isinstance(value, (list, tuple)) or not value:
            raise ValueError(f"{name} must be a non-empty list")
        item_type = type(current[0]) if current else str
        try:
            return tuple(item_type(v) for v in value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} items must be {item_type.__name__}")
    if isinstance(current, (int, float)):
        if isinstance(value, bool):
            raise ValueError(f"{name} must be a number")
        try:
            coerced = type(current)(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be {type(current).__name__}, got {value!r}")
        if coerced < 0:
            raise ValueError(f"{name} must not be negative")
        return coerced
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def _apply(obj, values: Dict[str, Any], prefix: str = ""):
    known = {f.name: f for f in fields(obj)}
    updates: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"Unknown configuration key: {prefix}{key}")
        current = getattr(obj, key)
        if key == "preview":
            if not isinstance(value, dict):
                raise ValueError("preview must be a mapping")
            updates[key] = _apply(current, value, prefix="preview.")
        else:
            updates[key] = _coerce(prefix + key, current, value)
    return replace(obj, **updates)


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text()
    except OSError as e:
        raise ValueError(f"Cannot read config file {path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"{path} is not valid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at top level")
    return data


def load_config(path: Optional[str] = None, use_env: bool = True) -> AppConfig:
    """Build an AppConfig from defaults, an optional YAML file and the environment.

    Raises:
        ValueError: On unreadable files, unknown keys or mistyped values.
    """
    if use_env:
        load_dotenv(find_dotenv(usecwd=True))
    config = AppConfig()

    source = path or (os.getenv(ENV_CONFIG) if use_env else None)
    if source:
        LOGGER.debug("Loading configuration from %s", source)
        config = _apply(config, _read_yaml(Path(source)))

    if use_env:
        env_top: Dict[str, Any] = {}
        env_preview: Dict[str, Any] = {}
        if os.getenv(ENV_LOG_LEVEL):
            env_top["log_level"] = os.environ[ENV_LOG_LEVEL]
        if os.getenv(ENV_MAX_UPLOAD_MB):
            env_top["max_upload_mb"] = os.environ[ENV_MAX_UPLOAD_MB]
        if os.getenv(ENV_FFMPEG):
            env_preview["ffmpeg_binary"] = os.environ[ENV_FFMPEG]
        if os.getenv(ENV_FFPROBE):
            env_preview["ffprobe_binary"] = os.environ[ENV_FFPROBE]
        if env_preview:
            env_top["preview"] = env_preview
        if env_top:
            config = _apply(config, env_top)

    if config.chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if logging.getLevelName(config.log_level.upper()) not in (
        logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL
    ):
        raise ValueError(f"Unknown log_level: {config.log_level}")
    return config
