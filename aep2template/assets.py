"""
Asset scanning: catalogue companion media files for a template.

The cache is an explicit value owned by the caller. Assets are keyed by
(absolute path, size) so a changed file is re-read while an unchanged one
is served from the cache.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from aep2template.errors import AssetMissing, Diagnostic, ReasonCodes
from aep2template.media_probe import MediaProbeError, probe_media
from aep2template.models import Asset, AssetGroup

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mov", ".mp4", ".avi", ".mkv", ".webm")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif")
AUDIO_EXTENSIONS = (".mp3", ".wav", ".aac", ".m4a", ".ogg")


def classify(path: str) -> Optional[str]:
    ext = os.path.splitext(path)[1].lower()
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    return None


def asset_id(absolute_path: str) -> str:
    """Stable id derived from the absolute path."""
    return hashlib.md5(absolute_path.encode("utf-8")).hexdigest()[:16]


class AssetCache:
    """In-memory asset cache; lives as long as its owner keeps it."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, int], Asset] = {}

    def get(self, path: str, size: int) -> Optional[Asset]:
        return self._entries.get((path, size))

    def put(self, asset: Asset) -> None:
        if asset.absolute_path is None:
            return
        self._entries[(asset.absolute_path, asset.size)] = asset

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Asset]:
        return iter(list(self._entries.values()))

    def get_by_id(self, wanted: str) -> Optional[Asset]:
        for asset in self._entries.values():
            if asset.id == wanted:
                return asset
        return None

    def find(self, pattern: str) -> List[Asset]:
        """Cached assets whose file name matches `pattern` (regex, case-insensitive)."""
        regex = re.compile(pattern, re.IGNORECASE)
        return [
            a for a in self._entries.values()
            if regex.search(os.path.basename(a.absolute_path or a.name))
        ]


@dataclass
class AssetValidation:
    valid: bool
    reason: Optional[str] = None


@dataclass
class AssetScanReport:
    root: str
    assets: List[Asset] = field(default_factory=list)
    issues: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "assets": [a.to_dict() for a in self.assets],
            "issues": [i.to_dict() for i in self.issues],
        }


def validate_asset(path: str) -> AssetValidation:
    """Existence, regular file and read permission; the media itself is not opened."""
    if not os.path.exists(path):
        return AssetValidation(False, "File does not exist")
    if not os.path.isfile(path):
        return AssetValidation(False, "Path is not a regular file")
    if not os.access(path, os.R_OK):
        return AssetValidation(False, "File is not readable")
    return AssetValidation(True)


def _build_asset(full_path: str, root: str, media_type: str, stat: os.stat_result,
                 probe: bool, issues: List[Diagnostic]) -> Asset:
    name, ext = os.path.splitext(os.path.basename(full_path))
    metadata: Dict[str, Any] = {}
    if probe:
        try:
            metadata = probe_media(full_path, media_type)
        except MediaProbeError as e:
            logger.debug(f"No metadata for {full_path}: {e}")
            issues.append(Diagnostic(
                code=ReasonCodes.ASSET_METADATA,
                message=str(e),
                path=[full_path],
                severity="info",
            ))
    return Asset(
        id=asset_id(full_path),
        name=name,
        type=media_type,
        absolute_path=full_path,
        relative_path=os.path.relpath(full_path, root),
        size=stat.st_size,
        last_modified=datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
        extension=ext.lower(),
        metadata=metadata,
    )


def scan_report(directory: str, cache: Optional[AssetCache] = None, probe: bool = True) -> AssetScanReport:
    """
    Walk `directory` recursively and catalogue every supported media file.

    Args:
        directory: Root of the asset tree
        cache: Optional cache consulted and filled by this scan
        probe: Derive duration/dimensions (Pillow, ffprobe)

    Returns:
        AssetScanReport with assets in sorted path order and per-file issues
    """
    root = os.path.abspath(directory)
    report = AssetScanReport(root=root)
    if not os.path.isdir(root):
        logger.warning(f"Asset directory not found: {directory}")
        report.issues.append(AssetMissing(
            code=ReasonCodes.ASSET_MISSING, message=f"Asset directory not found: {directory}", path=[root],
        ))
        return report

    def on_error(err: OSError) -> None:
        report.issues.append(AssetMissing(
            code=ReasonCodes.ASSET_UNREADABLE, message=str(err), path=[str(err.filename)],
        ))

    hits = 0
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames.sort()
        for filename in sorted(filenames):
            media_type = classify(filename)
            if media_type is None:
                continue
            full_path = os.path.join(dirpath, filename)
            try:
                stat = os.stat(full_path)
            except OSError as e:
                report.issues.append(AssetMissing(
                    code=ReasonCodes.ASSET_MISSING, message=f"Cannot stat {full_path}: {e}", path=[full_path],
                ))
                continue
            if not os.access(full_path, os.R_OK):
                report.issues.append(AssetMissing(
                    code=ReasonCodes.ASSET_UNREADABLE, message=f"Not readable: {full_path}", path=[full_path],
                ))
                continue

            cached = cache.get(full_path, stat.st_size) if cache is not None else None
            if cached is not None:
                hits += 1
                report.assets.append(cached)
                continue
            asset = _build_asset(full_path, root, media_type, stat, probe, report.issues)
            if cache is not None:
                cache.put(asset)
            report.assets.append(asset)

    logger.info(f"Scanned {root}: {len(report.assets)} assets ({hits} from cache), {len(report.issues)} issues")
    return report


def scan(directory: str, cache: Optional[AssetCache] = None, probe: bool = True) -> List[Asset]:
    return scan_report(directory, cache=cache, probe=probe).assets


def scan_variants(kit_directory: str, cache: Optional[AssetCache] = None,
                  probe: bool = False) -> List[AssetGroup]:
    """
    Asset kits keep one variant per immediate subdirectory, each holding
    the video components of that variant. Empty variants are left out.
    """
    root = os.path.abspath(kit_directory)
    if not os.path.isdir(root):
        logger.warning(f"Variant kit directory not found: {kit_directory}")
        return []

    groups = []
    for entry in sorted(os.listdir(root)):
        variant_dir = os.path.join(root, entry)
        if not os.path.isdir(variant_dir):
            continue
        components = []
        for filename in sorted(os.listdir(variant_dir)):
            full_path = os.path.join(variant_dir, filename)
            if classify(filename) != "video" or not os.path.isfile(full_path):
                continue
            stat = os.stat(full_path)
            asset = cache.get(full_path, stat.st_size) if cache is not None else None
            if asset is None:
                asset = _build_asset(full_path, root, "video", stat, probe, [])
                if cache is not None:
                    cache.put(asset)
            components.append(replace(asset, name=asset.name.lower()))
        if components:
            groups.append(AssetGroup(id=entry, name=f"Variant {entry}", path=variant_dir, components=components))
    logger.info(f"Found {len(groups)} variants in {root}")
    return groups


def optimize_asset_paths(assets: List[Asset], root: str) -> List[Asset]:
    """
    Express asset locations relative to `root` for a portable template.
    Assets outside the root keep their paths; assets without an absolute
    path pass through untouched.
    """
    base = os.path.abspath(root)
    optimized = []
    for asset in assets:
        if not asset.absolute_path:
            optimized.append(asset)
            continue
        try:
            inside = os.path.commonpath([base, asset.absolute_path]) == base
        except ValueError:
            inside = False
        if not inside:
            optimized.append(asset)
            continue
        relative = os.path.relpath(asset.absolute_path, base)
        optimized.append(replace(asset, relative_path=relative, render_path=relative.replace(os.sep, "/")))
    return optimized


def asset_report(assets: List[Asset]) -> Dict[str, Any]:
    by_type: Dict[str, int] = {}
    for asset in assets:
        by_type[asset.type] = by_type.get(asset.type, 0) + 1

    def summary(asset: Optional[Asset]) -> Optional[Dict[str, Any]]:
        if asset is None:
            return None
        return {"id": asset.id, "name": asset.name, "size": asset.size, "lastModified": asset.last_modified}

    dated = [a for a in assets if a.last_modified]
    return {
        "totalAssets": len(assets),
        "byType": by_type,
        "totalSize": sum(a.size for a in assets),
        "largest": summary(max(assets, key=lambda a: a.size, default=None)),
        "oldest": summary(min(dated, key=lambda a: a.last_modified, default=None)),
        "newest": summary(max(dated, key=lambda a: a.last_modified, default=None)),
    }
