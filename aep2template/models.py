"""
Data model for the conversion pipeline.

Analysis-side values (RawLayer, Composition, ProjectAnalysis) are frozen;
normalisation builds new values with dataclasses.replace. Template-side
values serialise to the camelCase JSON document through to_dict() and
come back through from_dict().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from aep2template.errors import Diagnostic


def _num(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_point(value: Any) -> Optional[Dict[str, float]]:
    """[x, y(, z)], {x, y} or a scalar to {"x", "y"}; None when not derivable."""
    if value is None:
        return None
    if isinstance(value, dict):
        x, y = _num(value.get("x")), _num(value.get("y"))
        if x is None or y is None:
            return None
        return {"x": x, "y": y}
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        x, y = _num(value[0]), _num(value[1])
        if x is None or y is None:
            return None
        return {"x": x, "y": y}
    scalar = _num(value)
    if scalar is None:
        return None
    return {"x": scalar, "y": scalar}


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# ========================= ANALYSIS SIDE =========================

@dataclass(frozen=True)
class Transform:
    position: Optional[Dict[str, float]] = None
    scale: Optional[Dict[str, float]] = None
    rotation: Optional[float] = None
    opacity: Optional[float] = None
    anchor_point: Optional[Dict[str, float]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Transform":
        data = data or {}
        return cls(
            position=to_point(data.get("position")),
            scale=to_point(data.get("scale")),
            rotation=_num(data.get("rotation")),
            opacity=_num(data.get("opacity")),
            anchor_point=to_point(data.get("anchorPoint")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "position": self.position,
            "scale": self.scale,
            "rotation": self.rotation,
            "opacity": self.opacity,
            "anchorPoint": self.anchor_point,
        })


@dataclass(frozen=True)
class RawLayer:
    """One layer as a strategy reported it."""

    name: str
    type: str = "unknown"
    enabled: bool = True
    is_guide: bool = False
    start_time: Optional[float] = None
    duration: Optional[float] = None
    transform: Transform = field(default_factory=Transform)
    composition: Optional[str] = None
    index: Optional[int] = None
    layer_id: Optional[str] = None
    blend_mode: Optional[str] = None
    # text
    text: Optional[str] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None
    text_color: Any = None
    # media
    source: Optional[str] = None
    source_info: Dict[str, Any] = field(default_factory=dict)
    crop: Optional[Dict[str, float]] = None
    # shape / solid
    shape_type: Optional[str] = None
    fill: Any = None
    stroke: Any = None
    stroke_width: Optional[float] = None
    color: Any = None
    effects: List[Any] = field(default_factory=list)
    animations: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawLayer":
        """Decode the wire format; nested payloads and flattened keys are both accepted."""
        text_block = data.get("text")
        if isinstance(text_block, dict):
            text = text_block.get("sourceText", text_block.get("text"))
            font_size = text_block.get("fontSize")
            font_family = text_block.get("fontFamily", text_block.get("font"))
            text_color = text_block.get("color", text_block.get("fillColor"))
        else:
            text = text_block if text_block is not None else data.get("sourceText")
            font_size = data.get("fontSize")
            font_family = data.get("fontFamily")
            text_color = data.get("textColor")

        source_block = data.get("source")
        if isinstance(source_block, dict):
            source = source_block.get("path") or source_block.get("file") or source_block.get("name")
            source_info = dict(source_block)
        else:
            source = source_block if source_block else data.get("src")
            source_info = {}

        shape_block = data.get("shape") if isinstance(data.get("shape"), dict) else {}
        transform = data.get("transform")
        if not isinstance(transform, dict):
            transform = {k: data[k] for k in ("position", "scale", "rotation", "opacity", "anchorPoint") if k in data}

        start = data.get("startTime", data.get("inPoint"))
        duration = data.get("duration")
        out_point = _num(data.get("outPoint"))
        if duration is None and out_point is not None:
            duration = out_point - (_num(start) or 0.0)

        return cls(
            name=str(data.get("name") or ""),
            type=str(data.get("type") or "unknown"),
            enabled=bool(data.get("enabled", True)),
            is_guide=bool(data.get("isGuide", data.get("guideLayer", False))),
            start_time=_num(start),
            duration=_num(duration),
            transform=Transform.from_dict(transform),
            composition=data.get("composition"),
            index=data.get("index"),
            layer_id=None if data.get("id") is None else str(data.get("id")),
            blend_mode=data.get("blendMode"),
            text=None if text is None else str(text),
            font_size=_num(font_size),
            font_family=font_family,
            text_color=text_color,
            source=None if not source else str(source),
            source_info=source_info,
            crop=data.get("crop") if isinstance(data.get("crop"), dict) else None,
            shape_type=shape_block.get("type", data.get("shapeType")),
            fill=shape_block.get("fill", data.get("fill")),
            stroke=shape_block.get("stroke", data.get("stroke")),
            stroke_width=_num(shape_block.get("strokeWidth", data.get("strokeWidth"))),
            color=data.get("color", data.get("solidColor")),
            effects=list(data.get("effects") or []),
            animations=list(data.get("animations") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.layer_id,
            "index": self.index,
            "name": self.name,
            "type": self.type,
            "composition": self.composition,
            "enabled": self.enabled,
            "isGuide": self.is_guide,
            "startTime": self.start_time,
            "duration": self.duration,
            "transform": self.transform.to_dict(),
            "blendMode": self.blend_mode,
            "color": self.color,
            "crop": self.crop,
        }
        if self.text is not None or self.font_size is not None or self.font_family is not None:
            payload["text"] = _drop_none({
                "sourceText": self.text,
                "fontSize": self.font_size,
                "fontFamily": self.font_family,
                "color": self.text_color,
            })
        if self.source or self.source_info:
            payload["source"] = dict(self.source_info, path=self.source)
        if any(v is not None for v in (self.shape_type, self.fill, self.stroke, self.stroke_width)):
            payload["shape"] = _drop_none({
                "type": self.shape_type,
                "fill": self.fill,
                "stroke": self.stroke,
                "strokeWidth": self.stroke_width,
            })
        payload["effects"] = list(self.effects)
        payload["animations"] = list(self.animations)
        return _drop_none(payload)


@dataclass(frozen=True)
class Expression:
    expression: str
    layer: Optional[str] = None
    composition: Optional[str] = None
    property: Optional[str] = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> "Expression":
        if isinstance(data, str):
            return cls(expression=data)
        return cls(
            expression=str(data.get("expression") or ""),
            layer=data.get("layer"),
            composition=data.get("composition"),
            property=data.get("property"),
            enabled=bool(data.get("enabled", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "expression": self.expression,
            "layer": self.layer,
            "composition": self.composition,
            "property": self.property,
            "enabled": self.enabled,
        })


@dataclass(frozen=True)
class Composition:
    name: str
    width: int
    height: int
    duration: float
    frame_rate: float
    background_color: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    layers: List[RawLayer] = field(default_factory=list)
    layer_count: Optional[int] = None
    comp_id: Optional[str] = None

    @property
    def effective_layer_count(self) -> int:
        """Own layers when present, else the count the strategy declared."""
        if self.layers:
            return len(self.layers)
        return int(self.layer_count or 0)

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.comp_id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "duration": self.duration,
            "frameRate": self.frame_rate,
            "backgroundColor": list(self.background_color),
            "layerCount": self.effective_layer_count,
            "layers": [layer.to_dict() for layer in self.layers],
        })


@dataclass(frozen=True)
class AnalysisMetadata:
    method: str
    analysis_time: str
    app_version: Optional[str] = None
    correlation_id: Optional[str] = None
    warnings: List[Diagnostic] = field(default_factory=list)
    attempts: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appVersion": self.app_version,
            "method": self.method,
            "analysisTime": self.analysis_time,
            "correlationId": self.correlation_id,
            "warnings": [w.to_dict() for w in self.warnings],
            "attempts": list(self.attempts),
        }


@dataclass(frozen=True)
class ProjectAnalysis:
    compositions: List[Composition]
    layers: List[RawLayer]
    expressions: List[Expression]
    metadata: AnalysisMetadata
    footage: List[Dict[str, Any]] = field(default_factory=list)

    def iter_layers(self) -> Iterator[RawLayer]:
        """Every layer once: composition-owned layers first, then flattened ones."""
        for comp in self.compositions:
            yield from comp.layers
        yield from self.layers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compositions": [c.to_dict() for c in self.compositions],
            "layers": [layer.to_dict() for layer in self.layers],
            "expressions": [e.to_dict() for e in self.expressions],
            "footage": list(self.footage),
            "metadata": self.metadata.to_dict(),
        }


# ========================= TEMPLATE SIDE =========================

@dataclass
class Effect:
    type: str
    strength: float = 1.0
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "strength": self.strength, "properties": dict(self.properties)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Effect":
        return cls(
            type=data["type"],
            strength=data.get("strength", 1.0),
            properties=dict(data.get("properties") or {}),
        )


@dataclass
class Animation:
    type: str
    duration: float = 1.0
    easing: str = "ease-in-out"
    delay: float = 0.0
    direction: str = "normal"
    iterations: int = 1
    keyframes: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "type": self.type,
            "duration": self.duration,
            "easing": self.easing,
            "delay": self.delay,
            "direction": self.direction,
            "iterations": self.iterations,
        }
        if self.keyframes:
            payload["keyframes"] = [dict(k) for k in self.keyframes]
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Animation":
        return cls(
            type=data["type"],
            duration=data.get("duration", 1.0),
            easing=data.get("easing", "ease-in-out"),
            delay=data.get("delay", 0.0),
            direction=data.get("direction", "normal"),
            iterations=data.get("iterations", 1),
            keyframes=list(data.get("keyframes") or []),
        )


# python attribute -> JSON key for the optional clip fields
_CLIP_FIELDS = {
    "position": "position",
    "scale": "scale",
    "rotation": "rotation",
    "opacity": "opacity",
    "anchor_point": "anchorPoint",
    "blend_mode": "blendMode",
    "text": "text",
    "font_size": "fontSize",
    "font_family": "fontFamily",
    "color": "color",
    "src": "src",
    "crop": "crop",
    "volume": "volume",
    "shape_type": "shapeType",
    "fill": "fill",
    "stroke": "stroke",
    "stroke_width": "strokeWidth",
    "source_type": "sourceType",
    "source": "source",
}


@dataclass
class Clip:
    id: str
    name: str
    type: str
    start: float
    duration: float
    position: Optional[Dict[str, float]] = None
    scale: Optional[float] = None
    rotation: Optional[float] = None
    opacity: Optional[float] = None
    anchor_point: Optional[Dict[str, float]] = None
    blend_mode: Optional[str] = None
    text: Optional[str] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None
    color: Optional[str] = None
    src: Optional[str] = None
    crop: Optional[Dict[str, float]] = None
    volume: Optional[float] = None
    shape_type: Optional[str] = None
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[float] = None
    source_type: Optional[str] = None
    source: Optional[Dict[str, Any]] = None
    effects: List[Effect] = field(default_factory=list)
    animations: List[Animation] = field(default_factory=list)

    @property
    def end(self) -> float:
        return self.start + self.duration

    @property
    def animation(self) -> Optional[Animation]:
        """Single-animation view for consumers that only understand one."""
        return self.animations[0] if self.animations else None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "start": self.start,
            "duration": self.duration,
        }
        for attr, key in _CLIP_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                payload[key] = value
        payload["effects"] = [e.to_dict() for e in self.effects]
        payload["animations"] = [a.to_dict() for a in self.animations]
        if self.animation is not None:
            payload["animation"] = self.animation.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Clip":
        kwargs = {attr: data.get(key) for attr, key in _CLIP_FIELDS.items()}
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            type=data["type"],
            start=float(data["start"]),
            duration=float(data["duration"]),
            effects=[Effect.from_dict(e) for e in data.get("effects") or []],
            animations=[Animation.from_dict(a) for a in data.get("animations") or []],
            **kwargs,
        )


@dataclass
class Track:
    id: int
    name: str
    type: str
    clips: List[Clip] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "clips": [c.to_dict() for c in self.clips],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=data["type"],
            clips=[Clip.from_dict(c) for c in data.get("clips") or []],
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Timeline:
    tracks: List[Track]
    duration: float
    width: int
    height: int
    frame_rate: float
    background_color: str = "#000000"

    def iter_clips(self) -> Iterator[Clip]:
        for track in self.tracks:
            yield from track.clips

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tracks": [t.to_dict() for t in self.tracks],
            "duration": self.duration,
            "resolution": {"width": self.width, "height": self.height},
            "frameRate": self.frame_rate,
            "background": {"color": self.background_color},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Timeline":
        resolution = data.get("resolution") or {}
        return cls(
            tracks=[Track.from_dict(t) for t in data.get("tracks") or []],
            duration=float(data.get("duration", 0)),
            width=resolution.get("width", 0),
            height=resolution.get("height", 0),
            frame_rate=data.get("frameRate", 0),
            background_color=(data.get("background") or {}).get("color", "#000000"),
        )


@dataclass
class MergeField:
    key: str
    type: str = "text"
    default_value: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "type": self.type,
            "defaultValue": self.default_value,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergeField":
        return cls(
            key=data["key"],
            type=data.get("type", "text"),
            default_value=data.get("defaultValue", ""),
            description=data.get("description", ""),
        )


@dataclass
class Asset:
    id: str
    name: str
    type: str
    absolute_path: Optional[str]
    relative_path: Optional[str]
    size: int
    last_modified: Optional[str] = None
    extension: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    render_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "extension": self.extension,
            "absolutePath": self.absolute_path,
            "relativePath": self.relative_path,
            "renderPath": self.render_path,
            "size": self.size,
            "lastModified": self.last_modified,
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=data.get("type", "image"),
            absolute_path=data.get("absolutePath"),
            relative_path=data.get("relativePath"),
            size=int(data.get("size", 0)),
            last_modified=data.get("lastModified"),
            extension=data.get("extension"),
            metadata=dict(data.get("metadata") or {}),
            render_path=data.get("renderPath"),
        )


@dataclass
class AssetGroup:
    id: str
    name: str
    path: str
    components: List[Asset] = field(default_factory=list)
    type: str = "asset-variant"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "path": self.path,
            "components": [a.to_dict() for a in self.components],
        }


@dataclass
class TemplateMetadata:
    source_file: str
    analysis_method: str
    created_at: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self.extra)
        payload.update({
            "sourceFile": self.source_file,
            "analysisMethod": self.analysis_method,
            "createdAt": self.created_at,
        })
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplateMetadata":
        extra = {k: v for k, v in data.items() if k not in ("sourceFile", "analysisMethod", "createdAt")}
        return cls(
            source_file=data.get("sourceFile", ""),
            analysis_method=data.get("analysisMethod", ""),
            created_at=data.get("createdAt", ""),
            extra=extra,
        )


@dataclass
class Template:
    id: str
    name: str
    description: str
    timeline: Timeline
    merge_fields: List[MergeField]
    assets: List[Asset]
    metadata: TemplateMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "timeline": self.timeline.to_dict(),
            "mergeFields": [m.to_dict() for m in self.merge_fields],
            "assets": [a.to_dict() for a in self.assets],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Template":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            timeline=Timeline.from_dict(data["timeline"]),
            merge_fields=[MergeField.from_dict(m) for m in data.get("mergeFields") or []],
            assets=[Asset.from_dict(a) for a in data.get("assets") or []],
            metadata=TemplateMetadata.from_dict(data.get("metadata") or {}),
        )
