"""
Binary heuristic extraction: last-resort scan of the RIFX container.

An .aep file is a big-endian RIFF ("RIFX") container. This module walks
its chunk tree and reads only what it can recognise without a format
description:

- compositions: `LIST Item` chunks that hold a `cdta` chunk
- names: the first `Utf8` child of an item or layer list
- layers: `LIST Layr` chunks; text when the "ADBE Text Properties" match
  name occurs inside, shape for "ADBE Root Vectors Group", else footage (av)
- text content: the first UTF-16 string inside a text layer
- footage paths: `"fullpath"` entries of the JSON alias records, linked to
  layers whose name equals the footage file name
- expressions: `Utf8` strings that contain merge-field tokens

Composition dimensions come from fixed `cdta` offsets and are discarded
when implausible. Timing and frame rate are not decoded; normalisation
defaults them and records a warning. When no composition is found the
strategy fails instead of inventing one.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from aep2template.errors import ReasonCodes, StrategyFailure
from aep2template.merge_fields import TOKEN_PATTERNS
from aep2template.strategies.base import BinaryResult

logger = logging.getLogger(__name__)

RIFX = b"RIFX"
LIST = b"LIST"
MAX_DEPTH = 64

# Match names that identify a layer's kind
TEXT_MARKER = b"ADBE Text Properties"
SHAPE_MARKER = b"ADBE Root Vectors Group"
CAMERA_MARKER = b"ADBE Camera Options Group"
LIGHT_MARKER = b"ADBE Light Options Group"

# cdta offsets observed in CC-era projects
CDTA_WIDTH_OFFSET = 140
CDTA_HEIGHT_OFFSET = 142
MAX_DIMENSION = 16384

_UTF16_STRING_RE = re.compile(rb"\(\xfe\xff((?:[^\\)]|\\.)*)\)", re.S)
_FULLPATH_RE = re.compile(rb'"fullpath"\s*:\s*"((?:[^"\\]|\\.)*)"')


@dataclass
class Chunk:
    id: bytes
    start: int
    end: int
    list_type: Optional[bytes] = None
    data: bytes = b""
    children: List["Chunk"] = field(default_factory=list)

    def is_list(self, list_type: Optional[bytes] = None) -> bool:
        if self.id != LIST:
            return False
        return list_type is None or self.list_type == list_type

    def child(self, chunk_id: bytes) -> Optional["Chunk"]:
        for c in self.children:
            if c.id == chunk_id:
                return c
        return None

    def walk(self) -> Iterator["Chunk"]:
        yield self
        for c in self.children:
            yield from c.walk()


def _parse_chunks(buf: bytes, pos: int, end: int, depth: int) -> List[Chunk]:
    chunks: List[Chunk] = []
    while pos + 8 <= end:
        chunk_id = buf[pos:pos + 4]
        size = int.from_bytes(buf[pos + 4:pos + 8], "big")
        data_start = pos + 8
        data_end = min(data_start + size, end)
        if chunk_id == LIST and depth < MAX_DEPTH and data_end - data_start >= 4:
            list_type = buf[data_start:data_start + 4]
            children = _parse_chunks(buf, data_start + 4, data_end, depth + 1)
            chunks.append(Chunk(chunk_id, pos, data_end, list_type=list_type, children=children))
        else:
            chunks.append(Chunk(chunk_id, pos, data_end, data=buf[data_start:data_end]))
        if data_start + size > end:
            logger.debug(f"Chunk {chunk_id!r} at {pos} runs past the scanned range; stopping")
            break
        pos = data_start + size + (size & 1)
    return chunks


def walk_container(buf: bytes) -> Tuple[bytes, Chunk]:
    """
    Parse the RIFX header and chunk tree.

    Returns:
        (form_type, root) where root is a synthetic LIST holding the top-level chunks

    Raises:
        StrategyFailure: If the buffer is not a RIFX container
    """
    if len(buf) < 12 or buf[:4] != RIFX:
        raise StrategyFailure("Not a RIFX container", code=ReasonCodes.STRATEGY_MALFORMED)
    declared = int.from_bytes(buf[4:8], "big")
    form_type = buf[8:12]
    end = min(8 + declared, len(buf))
    root = Chunk(LIST, 0, end, list_type=form_type, children=_parse_chunks(buf, 12, end, 0))
    return form_type, root


def _utf8(chunk: Optional[Chunk]) -> Optional[str]:
    if chunk is None:
        return None
    text = chunk.data.decode("utf-8", errors="replace").strip("\x00").strip()
    return text or None


def _u16(data: bytes, offset: int) -> Optional[int]:
    if len(data) < offset + 2:
        return None
    return int.from_bytes(data[offset:offset + 2], "big")


def _plausible(value: Optional[int]) -> Optional[int]:
    if value is None or not 0 < value <= MAX_DIMENSION:
        return None
    return value


def _unescape_cos(raw: bytes) -> bytes:
    return re.sub(rb"\\(.)", rb"\1", raw)


def extract_text(span: bytes) -> Optional[str]:
    """First UTF-16BE string literal in a text document chunk."""
    match = _UTF16_STRING_RE.search(span)
    if not match:
        return None
    raw = _unescape_cos(match.group(1))
    if len(raw) % 2:
        raw = raw[:-1]
    text = raw.decode("utf-16-be", errors="ignore").replace("\r", "\n").strip("\x00\n ")
    return text or None


def find_footage(buf: bytes) -> List[Dict[str, str]]:
    footage: List[Dict[str, str]] = []
    seen = set()
    for match in _FULLPATH_RE.finditer(buf):
        try:
            path = json.loads(b'"' + match.group(1) + b'"')
        except ValueError:
            continue
        if path in seen:
            continue
        seen.add(path)
        footage.append({"name": os.path.basename(path.replace("\\", "/")), "path": path})
    return footage


def _layer_kind(span: bytes) -> str:
    if TEXT_MARKER in span:
        return "text"
    if SHAPE_MARKER in span:
        return "shape"
    if CAMERA_MARKER in span:
        return "camera"
    if LIGHT_MARKER in span:
        return "light"
    return "av"


def _footage_for(name: str, footage: List[Dict[str, str]]) -> Optional[str]:
    for entry in footage:
        base = entry["name"]
        if name == base or name == os.path.splitext(base)[0]:
            return entry["path"]
    return None


def _describe_layer(buf: bytes, chunk: Chunk, ordinal: int, composition: Optional[str],
                    footage: List[Dict[str, str]]) -> Dict[str, Any]:
    span = buf[chunk.start:chunk.end]
    name = _utf8(chunk.child(b"Utf8")) or f"Layer {ordinal}"
    kind = _layer_kind(span)
    layer: Dict[str, Any] = {
        "index": ordinal,
        "name": name,
        "type": kind,
        "composition": composition,
        "enabled": True,
    }
    if kind == "text":
        layer["text"] = {"sourceText": extract_text(span)}
    elif kind == "av":
        source = _footage_for(name, footage)
        if source:
            layer["source"] = {"name": os.path.basename(source), "path": source}
    return layer


def _has_tokens(text: str) -> bool:
    return any(p.search(text) for p in TOKEN_PATTERNS)


def analyze_container(buf: bytes) -> Tuple[Dict[str, Any], int]:
    """
    Build an analysis document from container bytes.

    Returns:
        (document, chunk_count)

    Raises:
        StrategyFailure: If the buffer is not RIFX or holds no composition
    """
    form_type, root = walk_container(buf)
    chunk_count = sum(1 for _ in root.walk()) - 1
    footage = find_footage(buf)

    compositions: List[Dict[str, Any]] = []
    owned_layers = set()
    for chunk in root.walk():
        if not chunk.is_list(b"Item") or chunk.child(b"cdta") is None:
            continue
        name = _utf8(chunk.child(b"Utf8")) or f"Composition {len(compositions) + 1}"
        cdta = chunk.child(b"cdta").data
        layer_chunks = [c for c in chunk.children if c.is_list(b"Layr")]
        owned_layers.update(id(c) for c in layer_chunks)
        compositions.append({
            "name": name,
            "width": _plausible(_u16(cdta, CDTA_WIDTH_OFFSET)),
            "height": _plausible(_u16(cdta, CDTA_HEIGHT_OFFSET)),
            "layers": [
                _describe_layer(buf, c, i, name, footage) for i, c in enumerate(layer_chunks, start=1)
            ],
        })

    if not compositions:
        raise StrategyFailure(
            f"No composition markers in {chunk_count} chunks (form {form_type!r})",
            code=ReasonCodes.STRATEGY_FAILURE,
        )

    orphans = [c for c in root.walk() if c.is_list(b"Layr") and id(c) not in owned_layers]
    layers = [_describe_layer(buf, c, i, None, footage) for i, c in enumerate(orphans, start=1)]

    expressions = []
    for chunk in root.walk():
        if chunk.id != b"Utf8":
            continue
        text = _utf8(chunk)
        if text and _has_tokens(text):
            expressions.append({"expression": text})

    document = {
        "compositions": compositions,
        "layers": layers,
        "expressions": expressions,
        "footage": footage,
        "metadata": {"method": "binary-heuristic", "formType": form_type.decode("latin-1")},
    }
    return document, chunk_count


def extract(path: str, correlation_id: str, max_bytes: int) -> BinaryResult:
    """Read at most `max_bytes` of the project and analyse them."""
    try:
        with open(path, "rb") as f:
            buf = f.read(max_bytes)
    except OSError as e:
        raise StrategyFailure(f"Could not read project: {e}", path=path, correlation_id=correlation_id) from e

    document, chunk_count = analyze_container(buf)
    logger.debug(
        f"Binary scan of {len(buf)} bytes: {chunk_count} chunks, "
        f"{len(document['compositions'])} compositions, {len(document['footage'])} footage paths",
        extra={"correlation_id": correlation_id},
    )
    return BinaryResult(data=document, chunks_scanned=chunk_count)
