from __future__ import annotations

from pathlib import Path

import pytest

from aep2template.errors import ReasonCodes, StrategyFailure
from aep2template.strategies import binary
from aep2template.strategies.base import BINARY

from conftest import chunk, composition, list_chunk, rifx, text_layer


def test_walk_container(project_bytes: bytes) -> None:
    form_type, root = binary.walk_container(project_bytes)
    assert form_type == b"Egg!"
    lists = [c.list_type for c in root.walk() if c.is_list()]
    assert b"Fold" in lists
    assert b"Item" in lists
    assert b"Layr" in lists


def test_walk_rejects_non_rifx() -> None:
    with pytest.raises(StrategyFailure) as exc:
        binary.walk_container(b"RIFF" + b"\x00" * 64)
    assert exc.value.code == ReasonCodes.STRATEGY_MALFORMED


def test_truncated_chunk_does_not_raise() -> None:
    buf = rifx(composition("Cut", text_layer("T", "x")), pad_to=0)
    form_type, root = binary.walk_container(buf[:-6])
    assert form_type == b"Egg!"
    assert root.children


def test_analyze_container(project_bytes: bytes) -> None:
    doc, chunk_count = binary.analyze_container(project_bytes)
    assert chunk_count > 0

    comps = doc["compositions"]
    assert [c["name"] for c in comps] == ["Main Comp"]
    assert (comps[0]["width"], comps[0]["height"]) == (1920, 1080)

    title, footage = comps[0]["layers"]
    assert title["type"] == "text"
    assert title["name"] == "Title"
    assert title["text"]["sourceText"] == "{{TITLE}}"
    assert title["composition"] == "Main Comp"
    assert footage["type"] == "av"
    assert footage["source"]["path"] == "/media/footage/clip.mov"

    assert doc["layers"] == []
    assert doc["expressions"] == [{"expression": "text = '${SUBTITLE}';"}]
    assert doc["footage"] == [{"name": "clip.mov", "path": "/media/footage/clip.mov"}]


def test_implausible_dimensions_are_dropped() -> None:
    doc, _ = binary.analyze_container(rifx(composition("Big", width=40000, height=0)))
    assert doc["compositions"][0]["width"] is None
    assert doc["compositions"][0]["height"] is None


def test_orphan_layers_are_top_level() -> None:
    buf = rifx(
        composition("Main"),
        list_chunk(b"Fold", text_layer("Loose", "hello")),
    )
    doc, _ = binary.analyze_container(buf)
    assert [layer["name"] for layer in doc["layers"]] == ["Loose"]
    assert doc["layers"][0]["composition"] is None


def test_shape_layer_kind() -> None:
    shape = list_chunk(b"Layr", chunk(b"Utf8", b"Box"), chunk(b"tdmn", b"ADBE Root Vectors Group\x00"))
    doc, _ = binary.analyze_container(rifx(composition("Main", shape)))
    assert doc["compositions"][0]["layers"][0]["type"] == "shape"


def test_no_composition_fails() -> None:
    with pytest.raises(StrategyFailure) as exc:
        binary.analyze_container(rifx(list_chunk(b"Fold", chunk(b"Utf8", b"nothing here"))))
    assert exc.value.code == ReasonCodes.STRATEGY_FAILURE


def test_extract(project_file: Path) -> None:
    result = binary.extract(str(project_file), "cid-1", max_bytes=10 * 1024 * 1024)
    assert result.method == BINARY
    assert result.chunks_scanned > 0
    assert result.data["compositions"][0]["name"] == "Main Comp"


def test_extract_unreadable(tmp_path: Path) -> None:
    with pytest.raises(StrategyFailure):
        binary.extract(str(tmp_path / "gone.aep"), "cid-1", max_bytes=1024)
