from __future__ import annotations

from typing import Any, Dict

import pytest

from aep2template.compositions import (
    normalize,
    select_main_composition,
    validate_analysis_structure,
    validate_compositions,
)
from aep2template.errors import ProjectValidationError, ReasonCodes
from aep2template.models import Composition, RawLayer


def _codes(issues) -> set:
    return {i.code for i in issues}


def _comp(name: str, duration: float, layers: int = 0, layer_count=None) -> Composition:
    return Composition(
        name=name,
        width=1920,
        height=1080,
        duration=duration,
        frame_rate=24.0,
        layers=[RawLayer(name=f"{name} {i}", type="text", text="x") for i in range(layers)],
        layer_count=layer_count,
    )


def test_structure_ok(overlap_analysis: Dict[str, Any]) -> None:
    assert validate_analysis_structure(overlap_analysis) == []


def test_structure_no_compositions() -> None:
    issues = validate_analysis_structure({"compositions": [], "layers": []})
    assert ReasonCodes.NO_COMPOSITIONS in _codes(issues)


def test_structure_missing_layers_array() -> None:
    issues = validate_analysis_structure({"compositions": [{"name": "A"}]})
    assert _codes(issues) == {ReasonCodes.MISSING_LAYERS_ARRAY}


def test_structure_composition_without_name() -> None:
    issues = validate_analysis_structure({"compositions": [{"layers": []}], "layers": []})
    assert ReasonCodes.COMPOSITION_WITHOUT_NAME in _codes(issues)

    issues = validate_analysis_structure({"compositions": [{"name": "  ", "layers": []}], "layers": []})
    assert ReasonCodes.COMPOSITION_WITHOUT_NAME in _codes(issues)


def test_normalize_repairs_zero_duration(overlap_analysis: Dict[str, Any]) -> None:
    analysis = normalize(overlap_analysis, method="test")
    comp = analysis.compositions[0]
    assert comp.duration == 10.0
    assert comp.frame_rate == 30.0
    assert ReasonCodes.DEFAULTED_DURATION in _codes(analysis.metadata.warnings)
    assert analysis.metadata.method == "test"
    # layers remember the composition they came from
    assert {layer.composition for layer in comp.layers} == {"Main"}


def test_normalize_is_total() -> None:
    analysis = normalize({"compositions": [{"width": "wide", "layers": None}, "junk"]})
    comp = analysis.compositions[0]
    assert comp.name == "Composition 1"
    assert comp.width == 1920
    assert comp.layers == []
    codes = _codes(analysis.metadata.warnings)
    assert ReasonCodes.DEFAULTED_NAME in codes
    assert ReasonCodes.DEFAULTED_LAYERS in codes
    assert ReasonCodes.MALFORMED_ENTRY in codes


def test_normalize_background_color() -> None:
    analysis = normalize({"compositions": [{"name": "A", "backgroundColor": "#FF0000", "layers": []}], "layers": []})
    assert analysis.compositions[0].background_color == [1.0, 0.0, 0.0]


def test_validate_compositions_empty() -> None:
    with pytest.raises(ProjectValidationError) as exc:
        validate_compositions([])
    assert exc.value.code == ReasonCodes.NO_COMPOSITIONS


def test_validate_compositions_unnamed() -> None:
    with pytest.raises(ProjectValidationError) as exc:
        validate_compositions([_comp("", 5.0, layers=1)])
    assert exc.value.code == ReasonCodes.COMPOSITION_WITHOUT_NAME
    assert exc.value.diagnostics[0].path == ["compositions", "0"]


def test_validate_compositions_review() -> None:
    warnings = []
    odd = Composition(name="Odd", width=10000, height=5000, duration=4000.0, frame_rate=12.0)
    validate_compositions([odd], warnings=warnings)
    codes = _codes(warnings)
    assert ReasonCodes.UNCOMMON_FRAME_RATE in codes
    assert ReasonCodes.HIGH_RESOLUTION in codes
    assert ReasonCodes.LONG_DURATION in codes
    assert ReasonCodes.EMPTY_COMPOSITION in codes


def test_select_main_composition() -> None:
    short_busy = _comp("Short", 10.0, layers=2)
    long_sparse = _comp("Long", 30.0, layers=1)
    assert select_main_composition([short_busy, long_sparse]).name == "Long"


def test_select_main_composition_tie_keeps_first() -> None:
    first = _comp("First", 10.0, layers=2)
    second = _comp("Second", 20.0, layers=1)
    assert select_main_composition([first, second]).name == "First"


def test_select_main_uses_declared_layer_count() -> None:
    declared = _comp("Declared", 10.0, layer_count=5)
    own = _comp("Own", 10.0, layers=2)
    assert select_main_composition([own, declared]).name == "Declared"


def test_select_main_composition_empty() -> None:
    with pytest.raises(ProjectValidationError):
        select_main_composition([])
