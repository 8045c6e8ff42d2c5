"""
Timeline construction and optimisation.

build_timeline() turns one composition into tracks of clips:

1. preprocess layers (drop disabled, guide and empty text layers; clamp timing;
   default position and scale)
2. convert layers to clips and group them by clip type
3. one track per type, in TRACK_PRIORITY order, other types after in discovery order
4. stable sort by start inside each track
5. optimise each track: deduplicate, merge adjacent, resolve collisions, prune short

When a composition carries no layer graph of its own but the analysis has
flattened layers for it, each of those layers gets its own track instead.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from aep2template.colors import rgb_to_hex
from aep2template.config import ParserConfig
from aep2template.errors import Diagnostic, ReasonCodes
from aep2template.layers import clip_type_for, group_by_type, process_layers, to_clip, validate_layer
from aep2template.models import Clip, Composition, RawLayer, Timeline, Track

logger = logging.getLogger(__name__)

TRACK_PRIORITY = ("background", "video", "image", "shape", "text")
REAL_LAYER_PRIORITY = {"background": 0, "shape": 1, "image": 2, "video": 3, "audio": 4, "text": 5}

MERGE_GAP = 0.1
MIN_CLIP_DURATION = 0.1
MIN_TIMELINE_DURATION = 1.0


# ========================= PREPROCESS =========================

def preprocess_layers(layers: List[RawLayer], composition: Composition,
                      diagnostics: Optional[List[Diagnostic]] = None) -> List[RawLayer]:
    """New layer values ready for conversion; the input list is not modified."""
    diagnostics = diagnostics if diagnostics is not None else []
    center = {"x": composition.width / 2.0, "y": composition.height / 2.0}
    kept = []
    for layer in layers:
        if not layer.enabled:
            logger.debug(f"Skipping disabled layer '{layer.name}'")
            continue
        if layer.is_guide:
            logger.debug(f"Skipping guide layer '{layer.name}'")
            continue
        if clip_type_for(layer) == "text" and not (layer.text or "").strip():
            found = [i for i in validate_layer(layer) if i.path[-1] == "text"]
            for issue in found:
                logger.warning(issue.message)
            diagnostics.extend(found)
            continue

        start = max(0.0, layer.start_time or 0.0)
        duration = layer.duration if layer.duration is not None else composition.duration - start
        transform = layer.transform
        kept.append(replace(
            layer,
            start_time=start,
            duration=max(MIN_CLIP_DURATION, duration),
            transform=replace(
                transform,
                position=transform.position if transform.position is not None else dict(center),
                scale=transform.scale if transform.scale is not None else {"x": 100.0, "y": 100.0},
            ),
        ))
    logger.debug(f"Preprocess kept {len(kept)} of {len(layers)} layers")
    return kept


# ========================= OPTIMISATION =========================

def _content(clip: Clip) -> Any:
    return clip.src or clip.text or clip.color or clip.fill


def identity(clip: Clip) -> Optional[Tuple[Any, ...]]:
    """What must match for two clips to merge; None means never mergeable."""
    if clip.type == "text":
        return (clip.text, clip.font_family, clip.font_size, clip.color)
    if clip.type == "background":
        return (clip.color,)
    if clip.type == "shape":
        return (clip.shape_type, clip.fill, clip.stroke, clip.stroke_width)
    if clip.src:
        return (clip.src,)
    return None


def dedupe_clips(clips: List[Clip]) -> List[Clip]:
    seen = set()
    unique = []
    for clip in clips:
        key = (clip.type, clip.start, clip.duration, _content(clip))
        if key in seen:
            logger.debug(f"Dropping duplicate clip '{clip.name}' at {clip.start}")
            continue
        seen.add(key)
        unique.append(clip)
    return unique


def can_merge(first: Clip, second: Clip) -> bool:
    if first.type != second.type:
        return False
    if second.start - first.end > MERGE_GAP:
        return False
    key = identity(first)
    return key is not None and key == identity(second)


def merge_adjacent(clips: List[Clip]) -> List[Clip]:
    merged: List[Clip] = []
    for clip in clips:
        if merged and can_merge(merged[-1], clip):
            prev = merged[-1]
            end = max(prev.end, clip.end)
            merged[-1] = replace(prev, duration=end - prev.start, name=f"{prev.name} + {clip.name}")
        else:
            merged.append(clip)
    return merged


def resolve_collisions(clips: List[Clip]) -> List[Clip]:
    """Truncate any clip that still runs into its successor."""
    resolved = list(clips)
    for i in range(len(resolved) - 1):
        current, following = resolved[i], resolved[i + 1]
        if current.end <= following.start:
            continue
        duration = max(0.0, following.start - current.start)
        while duration > 0 and current.start + duration > following.start:
            duration = math.nextafter(duration, 0.0)
        logger.debug(f"Truncating '{current.name}' to {duration:.3f}s to clear '{following.name}'")
        resolved[i] = replace(current, duration=duration)
    return resolved


def prune_short(clips: List[Clip]) -> List[Clip]:
    return [c for c in clips if c.duration >= MIN_CLIP_DURATION]


def _signature(clips: List[Clip]) -> List[Tuple[str, float, float, str]]:
    return [(c.id, c.start, c.duration, c.name) for c in clips]


def optimize_clips(clips: List[Clip]) -> List[Clip]:
    """
    Deduplicate, merge, resolve collisions and prune, repeated until the
    list stops changing. The result never has more clips than the input and
    optimising it again returns it unchanged.
    """
    current = sorted(clips, key=lambda c: c.start)
    for _ in range(len(current) + 2):
        optimized = prune_short(resolve_collisions(merge_adjacent(dedupe_clips(current))))
        if _signature(optimized) == _signature(current):
            return optimized
        current = optimized
    return current


# ========================= TRACKS =========================

def _track(track_id: int, name: str, track_type: str, clips: List[Clip]) -> Track:
    optimized = optimize_clips(clips)
    original, kept = len(clips), len(optimized)
    return Track(
        id=track_id,
        name=name,
        type=track_type,
        clips=optimized,
        metadata={
            "layerCount": original,
            "duration": max((c.end for c in optimized), default=0.0),
            "hasAnimations": any(c.animations for c in optimized),
            "hasEffects": any(c.effects for c in optimized),
            "optimizations": {
                "originalCount": original,
                "optimizedCount": kept,
                "clipsRemoved": original - kept,
                "optimizationRatio": (kept / original) if original else 1.0,
            },
        },
    )


def build_tracks(clips: List[Clip]) -> List[Track]:
    """One track per clip type in priority order."""
    groups = group_by_type(clips)
    order = [t for t in TRACK_PRIORITY if t in groups] + [t for t in groups if t not in TRACK_PRIORITY]
    tracks = []
    for track_type in order:
        ordered = sorted(groups[track_type], key=lambda c: c.start)
        tracks.append(_track(len(tracks), f"{track_type.capitalize()} Track", track_type, ordered))
    return tracks


def build_tracks_from_real_layers(layers: List[RawLayer], config: Optional[ParserConfig] = None,
                                  diagnostics: Optional[List[Diagnostic]] = None) -> List[Track]:
    """One track per already-classified layer, sorted by type priority then start."""
    diagnostics = diagnostics if diagnostics is not None else []
    candidates = []
    for layer in layers:
        issues = validate_layer(layer)
        if issues:
            for issue in issues:
                logger.warning(issue.message)
            diagnostics.extend(issues)
            continue
        clip = to_clip(layer, config)
        candidates.append((layer.name, clip))

    candidates.sort(key=lambda pair: (REAL_LAYER_PRIORITY.get(pair[1].type, len(REAL_LAYER_PRIORITY)), pair[1].start))
    tracks = []
    for name, clip in candidates:
        track = _track(len(tracks), name, clip.type, [clip])
        if track.clips:
            tracks.append(track)
        else:
            logger.debug(f"Layer '{name}' was pruned as too short")
    return tracks


def timeline_duration(tracks: List[Track]) -> float:
    longest = max((c.end for t in tracks for c in t.clips), default=0.0)
    return max(MIN_TIMELINE_DURATION, longest)


def build_timeline(composition: Composition, config: Optional[ParserConfig] = None,
                   real_layers: Optional[List[RawLayer]] = None,
                   diagnostics: Optional[List[Diagnostic]] = None) -> Timeline:
    """
    Build the Timeline for one composition.

    Args:
        composition: Normalised composition
        config: Parser configuration (fallback values)
        real_layers: Flattened layers used when the composition has none of its own
        diagnostics: Receives layer validation problems

    Returns:
        Timeline whose tracks hold non-overlapping, start-ordered clips
    """
    config = config or ParserConfig()
    diagnostics = diagnostics if diagnostics is not None else []

    if composition.layers:
        layers = preprocess_layers(composition.layers, composition, diagnostics)
        tracks = build_tracks(process_layers(layers, config, diagnostics))
    elif real_layers:
        logger.info(f"Composition '{composition.name}' has no layer graph; using {len(real_layers)} flattened layers")
        tracks = build_tracks_from_real_layers(real_layers, config, diagnostics)
    else:
        tracks = []
        diagnostics.append(Diagnostic(
            code=ReasonCodes.EMPTY_COMPOSITION,
            message=f"Composition '{composition.name}' produced no layers",
            path=["compositions", composition.name],
        ))

    timeline = Timeline(
        tracks=tracks,
        duration=timeline_duration(tracks),
        width=composition.width,
        height=composition.height,
        frame_rate=composition.frame_rate,
        background_color=rgb_to_hex(composition.background_color),
    )
    logger.info(
        f"Timeline for '{composition.name}': {len(tracks)} tracks, "
        f"{sum(len(t.clips) for t in tracks)} clips, {timeline.duration:g}s"
    )
    return timeline


def timeline_stats(timeline: Timeline) -> Dict[str, Any]:
    stats: Dict[str, Any] = {
        "totalTracks": len(timeline.tracks),
        "totalClips": 0,
        "duration": timeline.duration,
        "resolution": {"width": timeline.width, "height": timeline.height},
        "frameRate": timeline.frame_rate,
        "trackStats": {},
        "clipTypes": {},
        "hasAnimations": False,
        "hasEffects": False,
    }
    for track in timeline.tracks:
        stats["totalClips"] += len(track.clips)
        entry = stats["trackStats"].setdefault(track.type, {"clipCount": 0, "duration": 0.0})
        entry["clipCount"] += len(track.clips)
        entry["duration"] = max(entry["duration"], track.metadata.get("duration", 0.0))
        for clip in track.clips:
            stats["clipTypes"][clip.type] = stats["clipTypes"].get(clip.type, 0) + 1
            stats["hasAnimations"] = stats["hasAnimations"] or bool(clip.animations)
            stats["hasEffects"] = stats["hasEffects"] or bool(clip.effects)
    return stats
