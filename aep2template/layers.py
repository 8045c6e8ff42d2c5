"""
Layer to Clip conversion.

Each RawLayer kind has its own property rules. Optional properties that a
layer does not carry stay absent on the Clip instead of being defaulted.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict, List, Optional

from aep2template.colors import normalize_color
from aep2template.config import ParserConfig
from aep2template.errors import Diagnostic, ReasonCodes
from aep2template.models import Animation, Clip, Effect, RawLayer

logger = logging.getLogger(__name__)

LAYER_TYPE_MAP = {
    "text": "text",
    "textlayer": "text",
    "av": "video",
    "avlayer": "video",
    "video": "video",
    "footage": "video",
    "image": "image",
    "still": "image",
    "shape": "shape",
    "shapelayer": "shape",
    "null": "background",
    "nulllayer": "background",
    "solid": "background",
    "solidlayer": "background",
    "background": "background",
    "audio": "audio",
}

MEDIA_TYPES = ("video", "image", "audio")
STILL_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff", ".psd", ".ai")

EFFECT_MAP = {
    "Scale": "scale",
    "Position": "position",
    "Rotation": "rotation",
    "Opacity": "opacity",
    "Drop Shadow": "dropShadow",
    "Glow": "glow",
    "Color Correction": "colorCorrection",
    "Blur & Sharpen": "blur",
    "Gaussian Blur": "blur",
}


def clip_type_for(layer: RawLayer) -> str:
    """Clip type for a layer; unrecognised kinds stay 'unknown'."""
    clip_type = LAYER_TYPE_MAP.get((layer.type or "").lower(), "unknown")
    if clip_type == "video":
        source = layer.source or layer.source_info.get("name") or ""
        if os.path.splitext(str(source))[1].lower() in STILL_EXTENSIONS:
            return "image"
    return clip_type


def validate_layer(layer: RawLayer) -> List[Diagnostic]:
    """Per-field problems that make a layer unusable; empty when valid."""
    issues: List[Diagnostic] = []
    label = layer.name or f"#{layer.index}"

    def issue(field: str, message: str) -> None:
        issues.append(Diagnostic(
            code=ReasonCodes.LAYER_INVALID,
            message=f"Layer '{label}': {message}",
            path=["layers", label, field],
        ))

    if not layer.name:
        issue("name", "name is missing")
    clip_type = clip_type_for(layer)
    if clip_type == "text" and not (layer.text or "").strip():
        issue("text", "text layer has no text")
    if clip_type in MEDIA_TYPES and not layer.source:
        issue("source", f"{clip_type} layer has no source")
    return issues


def convert_effects(effects: List[Any]) -> List[Effect]:
    converted = []
    for effect in effects:
        if isinstance(effect, str):
            converted.append(Effect(type=EFFECT_MAP.get(effect, effect.lower())))
        elif isinstance(effect, dict):
            name = str(effect.get("type") or effect.get("name") or "unknown")
            converted.append(Effect(
                type=EFFECT_MAP.get(name, name.lower()),
                strength=effect.get("strength") or 1.0,
                properties=dict(effect.get("properties") or {}),
            ))
    return converted


def convert_animations(animations: List[Any]) -> List[Animation]:
    converted = []
    for animation in animations:
        if isinstance(animation, str):
            converted.append(Animation(type=animation))
        elif isinstance(animation, dict) and animation.get("type"):
            converted.append(Animation(
                type=str(animation["type"]),
                duration=animation.get("duration") or 1.0,
                easing=animation.get("easing") or "ease-in-out",
                delay=animation.get("delay") or 0.0,
                direction=animation.get("direction") or "normal",
                iterations=animation.get("iterations") or 1,
                keyframes=list(animation.get("keyframes") or []),
            ))
    return converted


def _opacity(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return max(0.0, min(1.0, value / 100.0))


def to_clip(layer: RawLayer, config: Optional[ParserConfig] = None, clip_id: Optional[str] = None) -> Clip:
    """
    Convert one layer. Callers validate first (validate_layer); this function
    only applies property rules and fallbacks.
    """
    config = config or ParserConfig()
    clip_type = clip_type_for(layer)
    duration = layer.duration if layer.duration is not None else config.defaults.layer.duration
    clip = Clip(
        id=clip_id or str(uuid.uuid4()),
        name=layer.name,
        type=clip_type,
        start=max(0.0, layer.start_time or 0.0),
        duration=duration,
    )

    if clip_type == "text":
        text_defaults = config.defaults.text
        clip.text = layer.text
        clip.font_size = layer.font_size or text_defaults.font_size
        clip.font_family = layer.font_family or text_defaults.font_family
        clip.color = normalize_color(layer.text_color, text_defaults.color)
    elif clip_type in MEDIA_TYPES:
        clip.src = layer.source
        if layer.crop:
            clip.crop = dict(layer.crop)
        if layer.source_info:
            clip.source = dict(layer.source_info)
    elif clip_type == "shape":
        clip.shape_type = layer.shape_type or "rectangle"
        clip.fill = normalize_color(layer.fill, "#FFFFFF")
        clip.stroke = normalize_color(layer.stroke, "#000000")
        clip.stroke_width = layer.stroke_width if layer.stroke_width is not None else 0.0
    elif clip_type == "background":
        clip.color = normalize_color(layer.color, "#000000")
    else:
        clip.source_type = layer.type

    transform = layer.transform
    if transform.position is not None:
        clip.position = dict(transform.position)
    if transform.scale is not None:
        clip.scale = transform.scale["x"] / 100.0
    if transform.rotation is not None:
        clip.rotation = transform.rotation
    if transform.anchor_point is not None:
        clip.anchor_point = dict(transform.anchor_point)
    clip.opacity = _opacity(transform.opacity)
    if layer.blend_mode:
        clip.blend_mode = layer.blend_mode

    clip.effects = convert_effects(layer.effects)
    clip.animations = convert_animations(layer.animations)
    return clip


def process_layers(layers: List[RawLayer], config: Optional[ParserConfig] = None,
                   diagnostics: Optional[List[Diagnostic]] = None) -> List[Clip]:
    """
    Validate and convert a batch of layers. Invalid layers are left out and
    their problems appended to `diagnostics`; the batch itself never fails.
    """
    diagnostics = diagnostics if diagnostics is not None else []
    clips = []
    for layer in layers:
        issues = validate_layer(layer)
        if issues:
            for found in issues:
                logger.warning(found.message)
            diagnostics.extend(issues)
            continue
        clips.append(to_clip(layer, config))
    logger.debug(f"Converted {len(clips)} of {len(layers)} layers")
    return clips


def group_by_type(clips: List[Clip]) -> Dict[str, List[Clip]]:
    """Clips bucketed by type, buckets in order of first appearance."""
    groups: Dict[str, List[Clip]] = {}
    for clip in clips:
        groups.setdefault(clip.type, []).append(clip)
    return groups
