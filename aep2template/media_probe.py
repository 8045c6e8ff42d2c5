"""
Best-effort media metadata: pixel dimensions from Pillow, duration and
stream dimensions from ffprobe. Both raise MediaProbeError on failure;
the asset scanner decides what a failure means.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from typing import Any, Dict, Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

FFPROBE_TIMEOUT = 15.0


class MediaProbeError(RuntimeError):
    pass


def probe_image(path: str) -> Dict[str, Any]:
    """Width and height from the image header; pixel data is not decoded."""
    try:
        with Image.open(path) as img:
            width, height = img.size
            return {"width": int(width), "height": int(height), "format": img.format}
    except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise MediaProbeError(f"Cannot read image header of {path}: {e}") from e


def ffprobe_available() -> Optional[str]:
    return shutil.which("ffprobe")


def probe_av(path: str, want_video: bool = True) -> Dict[str, Any]:
    """
    Container duration plus first video stream dimensions via ffprobe.

    Args:
        path: Media file path
        want_video: Also read width/height/frame rate of the first video stream

    Returns:
        dict with `duration` and, for video, `width`, `height`, `frameRate`
    """
    ffprobe = ffprobe_available()
    if not ffprobe:
        raise MediaProbeError("ffprobe is not installed")
    cmd = [
        ffprobe, "-v", "error",
        "-show_entries", "format=duration:stream=codec_type,width,height,r_frame_rate",
        "-of", "json",
        path,
    ]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=FFPROBE_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise MediaProbeError(f"ffprobe failed on {path}: {e}") from e
    if proc.returncode != 0:
        raise MediaProbeError(f"ffprobe exited {proc.returncode} on {path}: {proc.stderr.strip()}")
    try:
        data = json.loads(proc.stdout or "{}")
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"ffprobe printed invalid JSON for {path}") from e

    metadata: Dict[str, Any] = {}
    duration = (data.get("format") or {}).get("duration")
    if duration not in (None, "N/A"):
        metadata["duration"] = float(duration)
    if want_video:
        for stream in data.get("streams") or []:
            if stream.get("codec_type") != "video":
                continue
            if stream.get("width") and stream.get("height"):
                metadata["width"] = int(stream["width"])
                metadata["height"] = int(stream["height"])
            rate = _parse_rate(stream.get("r_frame_rate"))
            if rate:
                metadata["frameRate"] = rate
            break
    return metadata


def _parse_rate(value: Optional[str]) -> Optional[float]:
    if not value or value == "0/0":
        return None
    num, _, den = str(value).partition("/")
    try:
        return round(float(num) / float(den or 1), 3)
    except (ValueError, ZeroDivisionError):
        return None


def probe_media(path: str, media_type: str) -> Dict[str, Any]:
    if media_type == "image":
        return probe_image(path)
    if media_type == "video":
        return probe_av(path, want_video=True)
    if media_type == "audio":
        return probe_av(path, want_video=False)
    raise MediaProbeError(f"No probe for media type {media_type!r}")
