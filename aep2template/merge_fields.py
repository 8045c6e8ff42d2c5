"""
Merge fields: placeholder discovery in a project and value substitution in a Template.

Four token grammars are recognised, all with upper-case/underscore keys:
{{KEY}}, ${KEY}, [KEY] and %KEY%.
"""

from __future__ import annotations

import json
import logging
import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Tuple

from aep2template.errors import Diagnostic, ReasonCodes
from aep2template.models import MergeField, ProjectAnalysis, Template

logger = logging.getLogger(__name__)

TOKEN_PATTERNS = [
    re.compile(r"\{\{([A-Z_]+)\}\}"),
    re.compile(r"\$\{([A-Z_]+)\}"),
    re.compile(r"\[([A-Z_]+)\]"),
    re.compile(r"%([A-Z_]+)%"),
]

TOKEN_FORMS = ("{{%s}}", "${%s}", "[%s]", "%%%s%%")

# Checked in order; the first substring found wins
_TYPE_RULES = [
    ("color", ("COLOR", "COLOUR")),
    ("url", ("URL", "IMAGE")),
    ("number", ("SIZE", "WIDTH", "HEIGHT", "DURATION")),
]

_DEFAULT_VALUES = [
    ("BACKGROUND_COLOR", "#000000"),
    ("BG_COLOR", "#000000"),
    ("COLOR", "#FFFFFF"),
    ("SUBTITLE", "Subtitle"),
    ("TITLE", "Title"),
    ("TEXT", "Text"),
    ("NAME", "Name"),
    ("URL", "https://example.com"),
    ("DURATION", "5"),
    ("SIZE", "100"),
]

_HEX_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def find_tokens(text: str) -> List[str]:
    """Keys referenced in `text`, in order of appearance, duplicates kept."""
    hits: List[Tuple[int, str]] = []
    for pattern in TOKEN_PATTERNS:
        hits.extend((m.start(), m.group(1)) for m in pattern.finditer(text))
    return [key for _, key in sorted(hits, key=lambda h: h[0])]


def infer_type(key: str) -> str:
    upper = key.upper()
    for field_type, needles in _TYPE_RULES:
        if any(n in upper for n in needles):
            return field_type
    return "text"


def default_value(key: str) -> str:
    upper = key.upper()
    for needle, value in _DEFAULT_VALUES:
        if needle in upper:
            return value
    return ""


def make_field(key: str) -> MergeField:
    return MergeField(
        key=key,
        type=infer_type(key),
        default_value=default_value(key),
        description=f"Field extracted from After Effects project: {key}",
    )


def _sources(analysis: ProjectAnalysis) -> Iterable[str]:
    for expression in analysis.expressions:
        if expression.expression:
            yield expression.expression
    for layer in analysis.iter_layers():
        if layer.text:
            yield layer.text


def extract(analysis: ProjectAnalysis) -> "OrderedDict[str, MergeField]":
    """
    Catalogue every placeholder found in expressions and text-layer content.

    Returns:
        Ordered mapping key -> MergeField, in order of first discovery
    """
    fields: "OrderedDict[str, MergeField]" = OrderedDict()
    for text in _sources(analysis):
        for key in find_tokens(text):
            if key not in fields:
                fields[key] = make_field(key)
    logger.info(f"Extracted {len(fields)} merge fields")
    return fields


def _escape(value: str) -> str:
    """Value as it must appear inside a JSON string literal."""
    return json.dumps(str(value), ensure_ascii=False)[1:-1]


def apply_with_report(template: Template, values: Mapping[str, str]) -> Tuple[Template, Dict[str, int]]:
    """
    Substitute values into every token form, returning the new Template and
    the number of replacements made per key.

    Substitution is literal on the serialized document and happens in one pass,
    so a value that itself contains a token is never substituted again. Values
    are JSON-escaped first, so quotes or backslashes in a value cannot break the
    document. Keys without a value are untouched and stay as placeholders.
    """
    text = json.dumps(template.to_dict(), ensure_ascii=False)
    counts: Dict[str, int] = {key: 0 for key in values}
    # token text -> (key, escaped value)
    tokens = {form % key: (key, _escape(value)) for key, value in values.items() for form in TOKEN_FORMS}

    if tokens:
        pattern = re.compile("|".join(re.escape(token) for token in tokens))

        def substitute(match: "re.Match[str]") -> str:
            key, replacement = tokens[match.group(0)]
            counts[key] += 1
            return replacement

        text = pattern.sub(substitute, text)

    for key, total in counts.items():
        if total == 0:
            logger.debug(f"Merge value for {key} matched no placeholder")
    result = Template.from_dict(json.loads(text))
    logger.info(f"Applied {sum(counts.values())} merge replacements across {len(counts)} keys")
    return result, counts


def apply(template: Template, values: Mapping[str, str]) -> Template:
    return apply_with_report(template, values)[0]


def check_values(fields: Iterable[MergeField], values: Mapping[str, str]) -> List[Diagnostic]:
    """Warn about values that do not look like their field's inferred type."""
    issues: List[Diagnostic] = []
    for f in fields:
        if f.key not in values:
            continue
        value = str(values[f.key])
        problem = None
        if f.type == "color" and not _HEX_RE.match(value):
            problem = "is not a hex colour"
        elif f.type == "number":
            try:
                float(value)
            except ValueError:
                problem = "is not a number"
        elif f.type == "url" and value and "://" not in value:
            problem = "has no URL scheme"
        if problem:
            issues.append(Diagnostic(
                code=ReasonCodes.MERGE_VALUE,
                message=f"Value {value!r} for {f.key} {problem}",
                path=["mergeFields", f.key],
            ))
    return issues
