"""
Composition normalisation and structural validation.

Strategy output arrives as a loosely shaped mapping. normalize() turns it
into a ProjectAnalysis, filling defaults and recording a ValidationWarning
for each repair. validate_analysis_structure() and validate_compositions()
are the strict checks that make a result unusable.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jsonschema.validators import Draft7Validator

from aep2template.colors import hex_to_rgb, to_linear_rgb
from aep2template.config import ParserConfig
from aep2template.errors import (
    Diagnostic,
    ProjectValidationError,
    ReasonCodes,
    ValidationWarning,
)
from aep2template.models import (
    AnalysisMetadata,
    Composition,
    Expression,
    ProjectAnalysis,
    RawLayer,
)

logger = logging.getLogger(__name__)

COMMON_FRAME_RATES = (23.976, 24.0, 25.0, 29.97, 30.0, 50.0, 59.94, 60.0)
MAX_COMMON_WIDTH = 7680
MAX_COMMON_HEIGHT = 4320
MAX_COMMON_DURATION = 3600.0


def get_analysis_json_schema() -> Dict[str, Any]:
    """Minimum shape a strategy's document must have to be usable."""
    return {
        "type": "object",
        "properties": {
            "compositions": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "pattern": r"\S"},
                        "layers": {"type": ["array", "null"]},
                    },
                    "required": ["name"],
                },
            },
            "layers": {"type": "array"},
            "expressions": {"type": "array"},
        },
        "required": ["compositions", "layers"],
    }


def _structure_code(err) -> str:
    path = list(err.absolute_path)
    if err.validator == "required":
        if "'layers'" in err.message and not path:
            return ReasonCodes.MISSING_LAYERS_ARRAY
        if "'name'" in err.message:
            return ReasonCodes.COMPOSITION_WITHOUT_NAME
        return ReasonCodes.NO_COMPOSITIONS
    if path and path[0] == "compositions" and "name" in path:
        return ReasonCodes.COMPOSITION_WITHOUT_NAME
    if "layers" in path:
        return ReasonCodes.MISSING_LAYERS_ARRAY
    return ReasonCodes.NO_COMPOSITIONS


def validate_analysis_structure(raw: Any) -> List[Diagnostic]:
    """Schema check of a raw strategy document; empty list when usable."""
    validator = Draft7Validator(get_analysis_json_schema())
    issues = []
    for err in validator.iter_errors(raw):
        issues.append(Diagnostic(
            code=_structure_code(err),
            message=err.message,
            path=[str(p) for p in err.absolute_path],
            severity="error",
        ))
    return issues


def _warn(warnings: List[Diagnostic], code: str, message: str, path: List[str]) -> None:
    logger.warning(message)
    warnings.append(ValidationWarning(code=code, message=message, path=path))


def _positive(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def repair_composition(comp: Composition, config: ParserConfig, warnings: List[Diagnostic]) -> Composition:
    """Replace non-positive dimensions, frame rate and duration with defaults."""
    defaults = config.defaults.composition
    where = ["compositions", comp.name]
    changes: Dict[str, Any] = {}
    if _positive(comp.duration) is None:
        _warn(warnings, ReasonCodes.DEFAULTED_DURATION,
              f"Composition '{comp.name}' has duration {comp.duration}; using {defaults.duration}s",
              where + ["duration"])
        changes["duration"] = float(defaults.duration)
    if _positive(comp.width) is None:
        _warn(warnings, ReasonCodes.DEFAULTED_PROPERTY,
              f"Composition '{comp.name}' has no usable width; using {defaults.width}", where + ["width"])
        changes["width"] = int(defaults.width)
    if _positive(comp.height) is None:
        _warn(warnings, ReasonCodes.DEFAULTED_PROPERTY,
              f"Composition '{comp.name}' has no usable height; using {defaults.height}", where + ["height"])
        changes["height"] = int(defaults.height)
    if _positive(comp.frame_rate) is None:
        _warn(warnings, ReasonCodes.DEFAULTED_PROPERTY,
              f"Composition '{comp.name}' has no usable frame rate; using {defaults.frame_rate}",
              where + ["frameRate"])
        changes["frame_rate"] = float(defaults.frame_rate)
    return replace(comp, **changes) if changes else comp


def review_composition_properties(comp: Composition) -> List[Diagnostic]:
    """Soft findings about values that are legal but unusual."""
    issues: List[Diagnostic] = []
    where = ["compositions", comp.name]
    if not any(abs(comp.frame_rate - rate) < 0.01 for rate in COMMON_FRAME_RATES):
        issues.append(ValidationWarning(
            code=ReasonCodes.UNCOMMON_FRAME_RATE,
            message=f"Composition '{comp.name}' uses an uncommon frame rate: {comp.frame_rate}",
            path=where + ["frameRate"],
        ))
    if comp.width > MAX_COMMON_WIDTH or comp.height > MAX_COMMON_HEIGHT:
        issues.append(ValidationWarning(
            code=ReasonCodes.HIGH_RESOLUTION,
            message=f"Composition '{comp.name}' is {comp.width}x{comp.height}, above 8K",
            path=where,
        ))
    if comp.duration > MAX_COMMON_DURATION:
        issues.append(ValidationWarning(
            code=ReasonCodes.LONG_DURATION,
            message=f"Composition '{comp.name}' lasts {comp.duration}s",
            path=where + ["duration"],
        ))
    return issues


def validate_compositions(compositions: List[Composition], config: Optional[ParserConfig] = None,
                          warnings: Optional[List[Diagnostic]] = None) -> List[Composition]:
    """
    Strict pass over normalised compositions.

    Args:
        compositions: Compositions to check
        config: Supplies the repair defaults
        warnings: Receives a ValidationWarning for each repair or soft finding

    Returns:
        The repaired compositions, in input order

    Raises:
        ProjectValidationError: If the list is empty or a composition has no name
    """
    config = config or ParserConfig()
    warnings = warnings if warnings is not None else []
    if not compositions:
        raise ProjectValidationError(
            "Project contains no compositions",
            diagnostics=[Diagnostic(ReasonCodes.NO_COMPOSITIONS, "compositions is empty", ["compositions"], "error")],
            code=ReasonCodes.NO_COMPOSITIONS,
        )
    unnamed = [i for i, c in enumerate(compositions) if not (c.name or "").strip()]
    if unnamed:
        raise ProjectValidationError(
            f"{len(unnamed)} composition(s) have no name",
            diagnostics=[
                Diagnostic(ReasonCodes.COMPOSITION_WITHOUT_NAME, "composition has no name",
                           ["compositions", str(i)], "error")
                for i in unnamed
            ],
            code=ReasonCodes.COMPOSITION_WITHOUT_NAME,
        )

    repaired = []
    for comp in compositions:
        comp = repair_composition(comp, config, warnings)
        if not comp.layers and not comp.layer_count:
            _warn(warnings, ReasonCodes.EMPTY_COMPOSITION,
                  f"Composition '{comp.name}' has no layers", ["compositions", comp.name, "layers"])
        warnings.extend(review_composition_properties(comp))
        repaired.append(comp)
    return repaired


def _coerce_layers(entries: Any, composition: Optional[str], config: ParserConfig,
                   warnings: List[Diagnostic], where: List[str]) -> List[RawLayer]:
    layers: List[RawLayer] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            _warn(warnings, ReasonCodes.MALFORMED_ENTRY,
                  f"Skipping malformed layer entry #{i} ({type(entry).__name__})", where + [str(i)])
            continue
        layer = RawLayer.from_dict(entry)
        if composition and not layer.composition:
            layer = replace(layer, composition=composition)
        if layer.index is None:
            layer = replace(layer, index=i + 1)
        layers.append(layer)
    if len(layers) > config.limits.max_layers:
        _warn(warnings, ReasonCodes.MALFORMED_ENTRY,
              f"{len(layers)} layers exceed the limit of {config.limits.max_layers}; extra layers ignored", where)
        layers = layers[:config.limits.max_layers]
    return layers


def _coerce_composition(raw: Dict[str, Any], index: int, config: ParserConfig,
                        warnings: List[Diagnostic]) -> Composition:
    defaults = config.defaults.composition
    name = str(raw.get("name") or "").strip()
    if not name:
        name = f"Composition {index + 1}"
        _warn(warnings, ReasonCodes.DEFAULTED_NAME,
              f"Composition #{index} has no name; using '{name}'", ["compositions", str(index), "name"])

    raw_layers = raw.get("layers")
    if raw_layers is None:
        _warn(warnings, ReasonCodes.DEFAULTED_LAYERS,
              f"Composition '{name}' has no layers array; using an empty list", ["compositions", name, "layers"])
        raw_layers = []
    elif not isinstance(raw_layers, list):
        _warn(warnings, ReasonCodes.MALFORMED_ENTRY,
              f"Composition '{name}' layers is {type(raw_layers).__name__}; using an empty list",
              ["compositions", name, "layers"])
        raw_layers = []

    background = raw.get("backgroundColor", raw.get("bgColor"))
    layer_count = raw.get("layerCount", raw.get("numLayers"))
    comp = Composition(
        name=name,
        width=int(_positive(raw.get("width")) or 0),
        height=int(_positive(raw.get("height")) or 0),
        duration=_positive(raw.get("duration")) or 0.0,
        frame_rate=_positive(raw.get("frameRate")) or 0.0,
        background_color=to_linear_rgb(background, fallback=hex_to_rgb(defaults.background_color)),
        layers=_coerce_layers(raw_layers, name, config, warnings, ["compositions", name, "layers"]),
        layer_count=int(layer_count) if isinstance(layer_count, (int, float)) else None,
        comp_id=None if raw.get("id") is None else str(raw.get("id")),
    )
    return repair_composition(comp, config, warnings)


def normalize(raw: Any, config: Optional[ParserConfig] = None, method: str = "unknown",
              correlation_id: Optional[str] = None,
              attempts: Optional[List[Dict[str, Any]]] = None) -> ProjectAnalysis:
    """
    Turn a strategy document into a ProjectAnalysis. Never raises on bad data;
    every repair is recorded in metadata.warnings.
    """
    config = config or ParserConfig()
    warnings: List[Diagnostic] = []
    if not isinstance(raw, dict):
        _warn(warnings, ReasonCodes.MALFORMED_ENTRY, f"Analysis document is {type(raw).__name__}", [])
        raw = {}

    raw_comps = raw.get("compositions")
    if not isinstance(raw_comps, list):
        _warn(warnings, ReasonCodes.NO_COMPOSITIONS, "Analysis has no compositions array", ["compositions"])
        raw_comps = []
    if len(raw_comps) > config.limits.max_compositions:
        _warn(warnings, ReasonCodes.MALFORMED_ENTRY,
              f"{len(raw_comps)} compositions exceed the limit of {config.limits.max_compositions}",
              ["compositions"])
        raw_comps = raw_comps[:config.limits.max_compositions]

    compositions = []
    for i, entry in enumerate(raw_comps):
        if not isinstance(entry, dict):
            _warn(warnings, ReasonCodes.MALFORMED_ENTRY, f"Skipping malformed composition #{i}",
                  ["compositions", str(i)])
            continue
        compositions.append(_coerce_composition(entry, i, config, warnings))

    raw_layers = raw.get("layers")
    if not isinstance(raw_layers, list):
        _warn(warnings, ReasonCodes.DEFAULTED_LAYERS, "Analysis has no layers array; using an empty list",
              ["layers"])
        raw_layers = []
    layers = _coerce_layers(raw_layers, None, config, warnings, ["layers"])

    expressions = []
    for entry in raw.get("expressions") or []:
        if isinstance(entry, (str, dict)):
            expression = Expression.from_dict(entry)
            if expression.expression:
                expressions.append(expression)

    footage = [f for f in raw.get("footage") or [] if isinstance(f, dict)]
    raw_meta = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}
    metadata = AnalysisMetadata(
        method=method,
        analysis_time=datetime.now(timezone.utc).isoformat(),
        app_version=raw_meta.get("appVersion"),
        correlation_id=correlation_id,
        warnings=warnings,
        attempts=list(attempts or []),
    )
    logger.info(
        f"Normalized analysis: {len(compositions)} compositions, "
        f"{sum(len(c.layers) for c in compositions) + len(layers)} layers, {len(expressions)} expressions"
    )
    return ProjectAnalysis(
        compositions=compositions,
        layers=layers,
        expressions=expressions,
        metadata=metadata,
        footage=footage,
    )


def select_main_composition(compositions: List[Composition]) -> Composition:
    """
    Heuristic choice of the primary composition: the largest duration x layer
    count, first one on ties. Not guaranteed to be the one a user would pick.
    """
    if not compositions:
        raise ProjectValidationError("Project contains no compositions", code=ReasonCodes.NO_COMPOSITIONS)
    best = compositions[0]
    best_score = best.duration * best.effective_layer_count
    for comp in compositions[1:]:
        score = comp.duration * comp.effective_layer_count
        if score > best_score:
            best, best_score = comp, score
    logger.info(f"Main composition: '{best.name}' (score {best_score:g})")
    return best
