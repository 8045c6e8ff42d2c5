from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from aep2template.config import ParserConfig
from aep2template.orchestrator import HostCapabilities

ROOT = Path(__file__).resolve().parents[1]
SAMPLES = ROOT / "tests" / "samples"


def chunk(chunk_id: bytes, data: bytes) -> bytes:
    out = chunk_id + len(data).to_bytes(4, "big") + data
    if len(data) % 2:
        out += b"\x00"
    return out


def list_chunk(list_type: bytes, *children: bytes) -> bytes:
    return chunk(b"LIST", list_type + b"".join(children))


def rifx(*children: bytes, pad_to: int = 2048) -> bytes:
    body = b"Egg!" + b"".join(children)
    filler = pad_to - len(body) - 16
    if filler > 0:
        body += chunk(b"fill", b"\x00" * filler)
    return b"RIFX" + len(body).to_bytes(4, "big") + body


def cdta(width: int, height: int) -> bytes:
    data = bytearray(160)
    data[140:142] = width.to_bytes(2, "big")
    data[142:144] = height.to_bytes(2, "big")
    return bytes(data)


def text_layer(name: str, text: str) -> bytes:
    return list_chunk(
        b"Layr",
        chunk(b"Utf8", name.encode("utf-8")),
        chunk(b"tdmn", b"ADBE Text Properties\x00"),
        chunk(b"btdk", b"<< /Text (\xfe\xff" + text.encode("utf-16-be") + b") >>"),
    )


def footage_layer(name: str) -> bytes:
    return list_chunk(b"Layr", chunk(b"Utf8", name.encode("utf-8")), chunk(b"ldta", b"\x00" * 16))


def composition(name: str, *layers: bytes, width: int = 1920, height: int = 1080) -> bytes:
    return list_chunk(b"Item", chunk(b"Utf8", name.encode("utf-8")), chunk(b"cdta", cdta(width, height)), *layers)


def alias(path: str) -> bytes:
    return chunk(b"alas", json.dumps({"fullpath": path, "target_is_folder": False}).encode("utf-8"))


@pytest.fixture
def project_bytes() -> bytes:
    """A small project: one composition with a text layer and a footage layer."""
    return rifx(
        list_chunk(
            b"Fold",
            composition(
                "Main Comp",
                text_layer("Title", "{{TITLE}}"),
                footage_layer("clip.mov"),
            ),
            list_chunk(b"Item", alias("/media/footage/clip.mov")),
            chunk(b"Utf8", b"text = '${SUBTITLE}';"),
        )
    )


@pytest.fixture
def project_file(tmp_path: Path, project_bytes: bytes) -> Path:
    path = tmp_path / "promo_video-final.aep"
    path.write_bytes(project_bytes)
    return path


@pytest.fixture
def binary_only() -> HostCapabilities:
    return HostCapabilities(scripted_executable=None, native_module=None, binary=True)


@pytest.fixture
def config() -> ParserConfig:
    return ParserConfig()


@pytest.fixture
def overlap_analysis() -> Dict[str, Any]:
    """Composition with a zero duration and two overlapping, identical text layers."""
    text = {"sourceText": "Hello", "fontSize": 60, "fontFamily": "Helvetica", "color": "#FFCC00"}
    return {
        "compositions": [
            {
                "name": "Main",
                "width": 1920,
                "height": 1080,
                "duration": 0,
                "frameRate": 30,
                "layers": [
                    {"name": "Hello A", "type": "text", "startTime": 0, "duration": 5, "text": dict(text)},
                    {"name": "Hello B", "type": "text", "startTime": 3, "duration": 5, "text": dict(text)},
                ],
            }
        ],
        "layers": [],
        "expressions": [],
    }
