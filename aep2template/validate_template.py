#!/usr/bin/env python3

"""
Validation utilities for Template JSON documents.

Draft-07 JSON Schema for the document shape, plus the timeline checks a
schema cannot express (per-track clip ordering and overlap, unique merge
keys, content each clip type must carry).
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from jsonschema.validators import Draft7Validator

CLIP_TYPES = ["text", "video", "image", "audio", "shape", "background", "unknown"]
MEDIA_CLIP_TYPES = ("video", "image", "audio")
MERGE_FIELD_TYPES = ["text", "color", "url", "number"]

# Float slack when comparing clip boundaries
_EPSILON = 1e-9


class ReasonCodes:
    """Reason codes for Template validation failures."""

    # File level (CLI exit code 2)
    FILE_NOT_FOUND = "TPL-FILE-001"
    PARSE_ERROR = "TPL-PARSE-001"

    # Schema
    SCHEMA = "TPL-SCHEMA-001"

    # Tracks
    CLIP_OVERLAP = "TPL-TRACK-001"
    CLIP_ORDER = "TPL-TRACK-002"
    DUPLICATE_TRACK_ID = "TPL-TRACK-003"

    # Clips
    TEXT_WITHOUT_CONTENT = "TPL-CLIP-001"
    MEDIA_WITHOUT_SOURCE = "TPL-CLIP-002"
    OPACITY_RANGE = "TPL-CLIP-003"

    # Merge fields
    DUPLICATE_MERGE_KEY = "TPL-MERGE-001"


@dataclass
class ValidationErrorReport:
    code: str
    path: List[Any]
    message: str


@dataclass
class ValidationReport:
    ok: bool
    errors: List[ValidationErrorReport] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)


def get_template_json_schema() -> Dict[str, Any]:
    """Return JSON Schema (draft-07) for a Template document."""
    point = {
        "type": "object",
        "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
        "required": ["x", "y"],
    }
    hex_color = {"type": "string", "pattern": "^#[0-9A-Fa-f]{6}$"}

    clip = {
        "type": "object",
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "name": {"type": "string"},
            "type": {"enum": CLIP_TYPES},
            "start": {"type": "number", "minimum": 0},
            "duration": {"type": "number", "exclusiveMinimum": 0},
            "position": point,
            "anchorPoint": point,
            "scale": {"type": "number"},
            "rotation": {"type": "number"},
            "opacity": {"type": "number"},
            "text": {"type": "string"},
            "fontSize": {"type": "number", "exclusiveMinimum": 0},
            "fontFamily": {"type": "string"},
            "color": hex_color,
            "fill": hex_color,
            "stroke": hex_color,
            "strokeWidth": {"type": "number", "minimum": 0},
            "src": {"type": "string"},
            "effects": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "type": {"type": "string"},
                        "strength": {"type": "number"},
                        "properties": {"type": "object"},
                    },
                    "required": ["type"],
                },
            },
            "animations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "type": {"type": "string"},
                        "duration": {"type": "number", "minimum": 0},
                        "delay": {"type": "number", "minimum": 0},
                        "keyframes": {"type": "array"},
                    },
                    "required": ["type"],
                },
            },
        },
        "required": ["id", "type", "start", "duration"],
    }

    track = {
        "type": "object",
        "properties": {
            "id": {"type": "integer", "minimum": 0},
            "name": {"type": "string"},
            "type": {"type": "string"},
            "clips": {"type": "array", "items": clip},
            "metadata": {"type": "object"},
        },
        "required": ["id", "type", "clips"],
    }

    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "title": "Template",
        "type": "object",
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "name": {"type": "string", "minLength": 1},
            "description": {"type": "string"},
            "timeline": {
                "type": "object",
                "properties": {
                    "tracks": {"type": "array", "items": track},
                    "duration": {"type": "number", "exclusiveMinimum": 0},
                    "resolution": {
                        "type": "object",
                        "properties": {
                            "width": {"type": "number", "exclusiveMinimum": 0},
                            "height": {"type": "number", "exclusiveMinimum": 0},
                        },
                        "required": ["width", "height"],
                    },
                    "frameRate": {"type": "number", "exclusiveMinimum": 0},
                    "background": {
                        "type": "object",
                        "properties": {"color": hex_color},
                    },
                },
                "required": ["tracks", "duration", "resolution", "frameRate"],
            },
            "mergeFields": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "key": {"type": "string", "pattern": "^[A-Z_]+$"},
                        "type": {"enum": MERGE_FIELD_TYPES},
                        "defaultValue": {"type": "string"},
                        "description": {"type": "string"},
                    },
                    "required": ["key", "type", "defaultValue"],
                },
            },
            "assets": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "type": {"enum": ["video", "image", "audio"]},
                        "size": {"type": "integer", "minimum": 0},
                    },
                    "required": ["id", "type", "size"],
                },
            },
            "metadata": {
                "type": "object",
                "properties": {
                    "sourceFile": {"type": "string"},
                    "analysisMethod": {"type": "string"},
                    "createdAt": {"type": "string"},
                },
                "required": ["sourceFile", "analysisMethod", "createdAt"],
                "additionalProperties": True,
            },
        },
        "required": ["id", "name", "timeline", "mergeFields", "assets", "metadata"],
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_track(track: Dict[str, Any], t_idx: int) -> List[ValidationErrorReport]:
    errors: List[ValidationErrorReport] = []
    clips = [c for c in track.get("clips") or [] if isinstance(c, dict)]
    base = ["timeline", "tracks", t_idx, "clips"]

    for c_idx, clip in enumerate(clips):
        path = base + [c_idx]
        clip_type = clip.get("type")
        if clip_type == "text" and not str(clip.get("text") or "").strip():
            errors.append(ValidationErrorReport(
                code=ReasonCodes.TEXT_WITHOUT_CONTENT,
                path=path + ["text"],
                message=f"Text clip '{clip.get('name', clip.get('id'))}' has no text.",
            ))
        if clip_type in MEDIA_CLIP_TYPES and not clip.get("src"):
            errors.append(ValidationErrorReport(
                code=ReasonCodes.MEDIA_WITHOUT_SOURCE,
                path=path + ["src"],
                message=f"{clip_type} clip '{clip.get('name', clip.get('id'))}' has no src.",
            ))
        opacity = clip.get("opacity")
        if _is_number(opacity) and not 0.0 <= opacity <= 1.0:
            errors.append(ValidationErrorReport(
                code=ReasonCodes.OPACITY_RANGE,
                path=path + ["opacity"],
                message=f"Opacity {opacity} outside [0, 1].",
            ))

    timed = [
        (i, c) for i, c in enumerate(clips)
        if _is_number(c.get("start")) and _is_number(c.get("duration"))
    ]
    for (i, earlier), (j, later) in zip(timed, timed[1:]):
        if earlier["start"] > later["start"] + _EPSILON:
            errors.append(ValidationErrorReport(
                code=ReasonCodes.CLIP_ORDER,
                path=base + [j, "start"],
                message=f"Clip starts at {later['start']} before its predecessor at {earlier['start']}.",
            ))
        elif earlier["start"] + earlier["duration"] > later["start"] + _EPSILON:
            errors.append(ValidationErrorReport(
                code=ReasonCodes.CLIP_OVERLAP,
                path=base + [i],
                message=(
                    f"Clip ending at {earlier['start'] + earlier['duration']:g} overlaps "
                    f"the next clip starting at {later['start']:g}."
                ),
            ))
    return errors


def _run_additional_validations(data: Dict[str, Any]) -> List[ValidationErrorReport]:
    """Checks not expressible in JSON Schema."""
    errors: List[ValidationErrorReport] = []
    if not isinstance(data, dict):
        return errors

    timeline = data.get("timeline")
    tracks = timeline.get("tracks") if isinstance(timeline, dict) else None
    seen_ids = set()
    for t_idx, track in enumerate(tracks if isinstance(tracks, list) else []):
        if not isinstance(track, dict):
            continue
        track_id = track.get("id")
        if track_id in seen_ids:
            errors.append(ValidationErrorReport(
                code=ReasonCodes.DUPLICATE_TRACK_ID,
                path=["timeline", "tracks", t_idx, "id"],
                message=f"Track id {track_id} is used more than once.",
            ))
        seen_ids.add(track_id)
        errors.extend(_check_track(track, t_idx))

    fields = data.get("mergeFields")
    keys = set()
    for f_idx, merge_field in enumerate(fields if isinstance(fields, list) else []):
        key = merge_field.get("key") if isinstance(merge_field, dict) else None
        if key is None:
            continue
        if key in keys:
            errors.append(ValidationErrorReport(
                code=ReasonCodes.DUPLICATE_MERGE_KEY,
                path=["mergeFields", f_idx, "key"],
                message=f"Merge field {key} is declared more than once.",
            ))
        keys.add(key)
    return errors


def validate_template_document(data: Any, verbose: bool = False) -> ValidationReport:
    """Validate a Template document against the schema and the timeline checks."""
    validator = Draft7Validator(get_template_json_schema())

    errors: List[ValidationErrorReport] = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(map(str, e.absolute_path))):
        errors.append(ValidationErrorReport(
            code=ReasonCodes.SCHEMA,
            path=list(err.absolute_path),
            message=err.message,
        ))
    errors.extend(_run_additional_validations(data))

    summary = {
        "failed": len(errors),
        "reason_codes": sorted({e.code for e in errors}),
    }
    if verbose:
        print("Passed" if not errors else f"Failed with {len(errors)} errors", file=sys.stderr)
    return ValidationReport(ok=not errors, errors=errors, summary=summary)


def load_and_validate_json_file(file_path: str, verbose: bool = False) -> ValidationReport:
    """Like validate_template_document, but unreadable input becomes a TPL-FILE/TPL-PARSE report."""
    try:
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        error = ValidationErrorReport(ReasonCodes.FILE_NOT_FOUND, [], f"File not found: {file_path}")
        return ValidationReport(ok=False, errors=[error], summary={"failed": 1, "reason_codes": [error.code]})
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        error = ValidationErrorReport(ReasonCodes.PARSE_ERROR, [], f"Invalid JSON in {file_path}: {e}")
        return ValidationReport(ok=False, errors=[error], summary={"failed": 1, "reason_codes": [error.code]})
    return validate_template_document(data, verbose=verbose)


def write_validation_report(report: ValidationReport, output_path: Optional[str] = None) -> None:
    payload = {
        "ok": report.ok,
        "errors": [{"code": e.code, "path": e.path, "message": e.message} for e in report.errors],
        "summary": report.summary,
    }
    out = json.dumps(payload, indent=2)
    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(out)
    else:
        print(out)


def exit_code(report: ValidationReport) -> int:
    if report.ok:
        return 0
    if any(e.code.startswith(("TPL-PARSE", "TPL-FILE")) for e in report.errors):
        return 2
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(
        description="Validate a Template JSON file against schema and timeline rules"
    )
    parser.add_argument("json_file", help="Path to Template JSON file to validate")
    parser.add_argument("--report", "-r", help="Write JSON validation report to file (default: stdout)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output to stderr")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress stdout")
    args = parser.parse_args(argv)

    report = load_and_validate_json_file(args.json_file, verbose=args.verbose)
    if not args.quiet or args.report:
        write_validation_report(report, output_path=args.report)
    return exit_code(report)


if __name__ == "__main__":
    sys.exit(main())
