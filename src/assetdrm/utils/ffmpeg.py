"""Thin wrappers around the ffmpeg / ffprobe command-line tools."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List

from ..errors import UnsupportedFormat

LOGGER = logging.getLogger(__name__)


def tools_available(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> bool:
    return bool(shutil.which(ffmpeg) and shutil.which(ffprobe))


def ensure_tools(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
    if tools_available(ffmpeg, ffprobe):
        return
    raise UnsupportedFormat(f"{ffmpeg}/{ffprobe} are required for audio/video processing")


def run(cmd: List[str]) -> bytes:
    """Run a tool and return its stdout bytes.

    Raises:
        UnsupportedFormat: If the tool is missing or exits non-zero.
    """
    LOGGER.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True)
    except FileNotFoundError as e:
        raise UnsupportedFormat(f"{cmd[0]} not found") from e
    if result.returncode != 0:
        message = result.stderr.decode("utf-8", "replace").strip()
        raise UnsupportedFormat(message or f"{cmd[0]} failed")
    return result.stdout


def probe(path: Path, ffprobe: str = "ffprobe") -> Dict[str, Any]:
    """Return duration, whether a video stream exists, and the first audio stream properties."""
    out = run([
        ffprobe,
        "-v", "error",
        "-show_entries",
        "format=duration:stream=codec_type,sample_rate,channels",
        "-of", "json",
        str(path),
    ])
    try:
        data = json.loads(out.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise UnsupportedFormat(f"ffprobe returned unreadable output: {e}") from e

    info: Dict[str, Any] = {}
    try:
        info["duration"] = float((data.get("format") or {}).get("duration") or 0.0)
    except (TypeError, ValueError):
        info["duration"] = 0.0
    for stream in data.get("streams", []) or []:
        kind = stream.get("codec_type")
        if kind == "video":
            info["has_video"] = True
        elif kind == "audio" and "audio" not in info:
            info["audio"] = {
                "sample_rate": int(stream.get("sample_rate") or 0),
                "channels": int(stream.get("channels") or 0),
            }
    return info
