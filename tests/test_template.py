from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from aep2template import merge_fields
from aep2template.assets import AssetCache
from aep2template.config import ParserConfig
from aep2template.errors import ProjectValidationError, ReasonCodes
from aep2template.orchestrator import AnalysisOrchestrator, HostCapabilities, StrategyEntry
from aep2template.strategies.base import NATIVE, NativeResult
from aep2template.template import (
    convert_project,
    default_description,
    generate_template_name,
    load_template,
    write_template,
)
from aep2template.validate_template import validate_template_document


def _doc_orchestrator(doc: Dict[str, Any]) -> AnalysisOrchestrator:
    entry = StrategyEntry(NATIVE, True, lambda path, cid: NativeResult(data=doc, module="fake"))
    return AnalysisOrchestrator(ParserConfig(), capabilities=HostCapabilities(binary=False), strategies=[entry])


@pytest.mark.parametrize("filename, expected", [
    ("promo_video-final.aep", "Promo Video Final"),
    ("/projects/my__summer  sale.aet", "My Summer Sale"),
    ("intro.aep", "Intro"),
])
def test_generate_template_name(filename: str, expected: str) -> None:
    assert generate_template_name(filename) == expected


def test_default_description() -> None:
    assert default_description("/x/promo.aep") == "Template generated from After Effects project: promo.aep"


def test_convert_binary_project(project_file: Path, binary_only: HostCapabilities) -> None:
    orchestrator = AnalysisOrchestrator(ParserConfig(), capabilities=binary_only)
    result = convert_project(str(project_file), orchestrator=orchestrator, correlation_id="cid-42")
    template = result.template

    assert template.name == "Promo Video Final"
    assert template.description == "Template generated from After Effects project: promo_video-final.aep"
    assert template.metadata.source_file == "promo_video-final.aep"
    assert template.metadata.analysis_method == "binary-heuristic"
    assert template.metadata.extra["correlationId"] == "cid-42"
    assert template.metadata.extra["mainComposition"] == "Main Comp"

    assert [f.key for f in template.merge_fields] == ["SUBTITLE", "TITLE"]

    types = [t.type for t in template.timeline.tracks]
    assert types == ["video", "text"]
    text_clip = template.timeline.tracks[1].clips[0]
    assert text_clip.text == "{{TITLE}}"
    assert (text_clip.start, text_clip.duration) == (0.0, 10.0)
    video_clip = template.timeline.tracks[0].clips[0]
    assert video_clip.src == "/media/footage/clip.mov"

    assert template.timeline.width == 1920
    assert template.timeline.frame_rate == 24.0
    assert template.assets == []

    assert result.report["tracks"] == 2
    assert result.report["clips"] == 2
    assert result.report["mergeFields"] == 2
    assert result.report["validation"]["failed"] == 0
    assert ReasonCodes.DEFAULTED_DURATION in result.report["diagnostics"]
    assert validate_template_document(template.to_dict()).ok


def test_convert_then_apply(project_file: Path, binary_only: HostCapabilities) -> None:
    orchestrator = AnalysisOrchestrator(ParserConfig(), capabilities=binary_only)
    template = convert_project(str(project_file), orchestrator=orchestrator).template
    merged = merge_fields.apply(template, {"TITLE": 'Big "Summer" Sale'})
    assert merged.timeline.tracks[1].clips[0].text == 'Big "Summer" Sale'
    assert merged.id == template.id


def test_convert_with_assets(project_file: Path, binary_only: HostCapabilities, tmp_path: Path) -> None:
    assets = tmp_path / "media"
    assets.mkdir()
    (assets / "clip.mov").write_bytes(b"\x00" * 64)
    (assets / "ignored.doc").write_bytes(b"\x00")
    cache = AssetCache()
    orchestrator = AnalysisOrchestrator(ParserConfig(), capabilities=binary_only)

    result = convert_project(
        str(project_file), assets_dir=str(assets), orchestrator=orchestrator,
        cache=cache, probe_assets=False, asset_root=str(tmp_path), name="Custom",
    )
    assert result.template.name == "Custom"
    assert [a.render_path for a in result.template.assets] == ["media/clip.mov"]
    assert len(cache) == 1
    assert result.report["assets"]["totalAssets"] == 1


def test_missing_asset_directory_is_a_diagnostic(project_file: Path, binary_only: HostCapabilities,
                                                   tmp_path: Path) -> None:
    orchestrator = AnalysisOrchestrator(ParserConfig(), capabilities=binary_only)
    result = convert_project(str(project_file), assets_dir=str(tmp_path / "nope"), orchestrator=orchestrator)
    assert result.template.assets == []
    assert ReasonCodes.ASSET_MISSING in {d.code for d in result.diagnostics}


def test_real_layers_used_for_empty_composition(project_file: Path) -> None:
    doc = {
        "compositions": [{"name": "Main", "duration": 6, "width": 1280, "height": 720, "frameRate": 30,
                          "layers": [], "layerCount": 2}],
        "layers": [
            {"name": "Caption", "type": "text", "text": "[HEADLINE]", "composition": "Main",
             "startTime": 1, "duration": 3},
            {"name": "Plate", "type": "solid", "color": "#336699", "startTime": 0, "duration": 6},
            {"name": "Other", "type": "text", "text": "elsewhere", "composition": "Side"},
        ],
    }
    result = convert_project(str(project_file), orchestrator=_doc_orchestrator(doc))
    tracks = result.template.timeline.tracks
    assert [t.name for t in tracks] == ["Plate", "Caption"]
    assert tracks[0].clips[0].color == "#336699"
    assert [f.key for f in result.template.merge_fields] == ["HEADLINE"]


def test_all_layers_invalid(project_file: Path) -> None:
    doc = {
        "compositions": [{"name": "Main", "duration": 5, "layers": [
            {"name": "Footage", "type": "av"},
            {"name": "Still", "type": "image"},
        ]}],
        "layers": [],
    }
    with pytest.raises(ProjectValidationError) as exc:
        convert_project(str(project_file), orchestrator=_doc_orchestrator(doc))
    assert exc.value.code == ReasonCodes.NO_USABLE_LAYERS
    assert {d.path[-1] for d in exc.value.diagnostics} == {"source"}


def test_write_and_load(project_file: Path, binary_only: HostCapabilities, tmp_path: Path) -> None:
    orchestrator = AnalysisOrchestrator(ParserConfig(), capabilities=binary_only)
    template = convert_project(str(project_file), orchestrator=orchestrator).template
    out = tmp_path / "out.json"
    write_template(template, str(out))

    data = json.loads(out.read_text(encoding="utf-8"))
    assert set(data) == {"id", "name", "description", "timeline", "mergeFields", "assets", "metadata"}
    assert data["timeline"]["resolution"] == {"width": 1920, "height": 1080}
    assert data["mergeFields"][1]["defaultValue"] == "Title"

    loaded = load_template(str(out))
    assert loaded.to_dict() == template.to_dict()
