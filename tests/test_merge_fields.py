from __future__ import annotations

import json

from aep2template import merge_fields
from aep2template.compositions import normalize
from aep2template.errors import ReasonCodes
from aep2template.models import Clip, MergeField, Template, TemplateMetadata, Timeline, Track


def _template(*texts: str) -> Template:
    clips = [
        Clip(id=f"c{i}", name=f"Text {i}", type="text", start=float(i), duration=1.0, text=text)
        for i, text in enumerate(texts)
    ]
    return Template(
        id="tpl-1",
        name="Promo",
        description="",
        timeline=Timeline(
            tracks=[Track(id=0, name="Text Track", type="text", clips=clips)],
            duration=10.0, width=1920, height=1080, frame_rate=24.0,
        ),
        merge_fields=[],
        assets=[],
        metadata=TemplateMetadata(source_file="promo.aep", analysis_method="test", created_at="2024-01-01T00:00:00+00:00"),
    )


def _texts(template: Template) -> list:
    return [c.text for c in template.timeline.iter_clips()]


def test_find_tokens_all_grammars() -> None:
    text = "{{TITLE}} by ${AUTHOR_NAME} on [BG_COLOR] at %LOGO_URL%"
    assert merge_fields.find_tokens(text) == ["TITLE", "AUTHOR_NAME", "BG_COLOR", "LOGO_URL"]


def test_lower_case_is_not_a_token() -> None:
    assert merge_fields.find_tokens("{{title}} [x] %Name%") == []


def test_type_inference() -> None:
    assert merge_fields.infer_type("BRAND_COLOR") == "color"
    assert merge_fields.infer_type("HERO_IMAGE") == "url"
    assert merge_fields.infer_type("FONT_SIZE") == "number"
    assert merge_fields.infer_type("HEADLINE") == "text"


def test_default_values() -> None:
    assert merge_fields.default_value("BACKGROUND_COLOR") == "#000000"
    assert merge_fields.default_value("TEXT_COLOR") == "#FFFFFF"
    assert merge_fields.default_value("TITLE") == "Title"
    assert merge_fields.default_value("SUBTITLE") == "Subtitle"
    assert merge_fields.default_value("HEADLINE") == ""


def test_extract_dedupes_in_discovery_order() -> None:
    analysis = normalize({
        "compositions": [{
            "name": "Main",
            "layers": [
                {"name": "A", "type": "text", "text": "{{TITLE}} - {{SUBTITLE}}"},
                {"name": "B", "type": "text", "text": "[TITLE]"},
            ],
        }],
        "layers": [],
        "expressions": [{"expression": "text = '%BG_COLOR%'"}],
    })
    fields = merge_fields.extract(analysis)
    assert list(fields) == ["BG_COLOR", "TITLE", "SUBTITLE"]
    assert fields["BG_COLOR"] == MergeField(
        key="BG_COLOR",
        type="color",
        default_value="#000000",
        description="Field extracted from After Effects project: BG_COLOR",
    )


def test_apply_replaces_every_form() -> None:
    template = _template("{{TITLE}}", "${TITLE}!", "[TITLE] / %TITLE%")
    result, counts = merge_fields.apply_with_report(template, {"TITLE": "Summer Sale"})
    assert _texts(result) == ["Summer Sale", "Summer Sale!", "Summer Sale / Summer Sale"]
    assert counts == {"TITLE": 4}
    # the input template is not modified
    assert _texts(template)[0] == "{{TITLE}}"


def test_apply_leaves_unknown_keys() -> None:
    template = _template("{{TITLE}} {{SUBTITLE}}")
    result = merge_fields.apply(template, {"TITLE": "Hi", "MISSING": "x"})
    assert _texts(result) == ["Hi {{SUBTITLE}}"]


def test_apply_escapes_values() -> None:
    value = 'Say "hi" \\ then\nleave'
    result = merge_fields.apply(_template("{{TITLE}}"), {"TITLE": value})
    assert _texts(result) == [value]
    json.dumps(result.to_dict())


def test_apply_does_not_substitute_inserted_tokens() -> None:
    template = _template("{{TITLE}} | [SUB]")
    result, counts = merge_fields.apply_with_report(template, {"TITLE": "{{SUB}}", "SUB": "x"})
    assert _texts(result) == ["{{SUB}} | x"]
    assert counts == {"TITLE": 1, "SUB": 1}


def test_check_values() -> None:
    fields = [
        merge_fields.make_field("BRAND_COLOR"),
        merge_fields.make_field("FONT_SIZE"),
        merge_fields.make_field("LOGO_URL"),
        merge_fields.make_field("TITLE"),
    ]
    issues = merge_fields.check_values(fields, {
        "BRAND_COLOR": "red",
        "FONT_SIZE": "big",
        "LOGO_URL": "example.com/logo.png",
        "TITLE": "anything",
    })
    assert {i.path[-1] for i in issues} == {"BRAND_COLOR", "FONT_SIZE", "LOGO_URL"}
    assert all(i.code == ReasonCodes.MERGE_VALUE for i in issues)
    assert merge_fields.check_values(fields, {"BRAND_COLOR": "#ff00aa", "FONT_SIZE": "12.5"}) == []
