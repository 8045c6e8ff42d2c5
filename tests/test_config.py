from __future__ import annotations

from pathlib import Path

import pytest

from aep2template.config import ParserConfig, load_config, validate_config
from aep2template.errors import ConfigError, ReasonCodes


def test_defaults() -> None:
    config = load_config(environ={})
    assert config.defaults.composition.width == 1920
    assert config.defaults.composition.height == 1080
    assert config.defaults.composition.frame_rate == 24.0
    assert config.defaults.composition.duration == 10.0
    assert config.defaults.text.font_family == "Arial"
    assert config.limits.min_file_size == 1024
    assert config.supported_extensions == (".aep", ".aet")
    assert validate_config(config) == []


def test_yaml_overlay(tmp_path: Path) -> None:
    path = tmp_path / "aep2template.yaml"
    path.write_text(
        "defaults:\n"
        "  composition:\n"
        "    width: 1280\n"
        "    height: 720\n"
        "scripted:\n"
        "  timeout: 5\n",
        encoding="utf-8",
    )
    config = load_config(str(path), environ={})
    assert config.defaults.composition.width == 1280
    assert config.defaults.composition.height == 720
    assert config.scripted.timeout == 5
    # untouched sections keep their defaults
    assert config.native.module == "aep_native"


def test_unknown_key_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("limits:\n  max_bananas: 3\n", encoding="utf-8")
    with pytest.raises(ConfigError) as exc:
        load_config(str(path), environ={})
    assert "max_bananas" in str(exc.value)
    assert exc.value.code == ReasonCodes.CONFIG_INVALID


def test_non_mapping_rejected(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- one\n- two\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path), environ={})


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "nope.yaml"), environ={})


def test_environment_overrides() -> None:
    config = load_config(environ={
        "AE_DEFAULT_WIDTH": "3840",
        "AE_DEFAULT_FPS": "29.97",
        "AEP2TPL_STRATEGY_TIMEOUT": "12",
        "AEP2TPL_NATIVE_MODULE": "my_binding",
    })
    assert config.defaults.composition.width == 3840
    assert config.defaults.composition.frame_rate == 29.97
    assert config.scripted.timeout == 12.0
    assert config.native.timeout == 12.0
    assert config.native.module == "my_binding"


def test_environment_override_must_parse() -> None:
    with pytest.raises(ConfigError):
        load_config(environ={"AE_DEFAULT_WIDTH": "wide"})


def test_invalid_values_reported() -> None:
    config = ParserConfig()
    config.defaults.composition.frame_rate = 0
    config.limits.max_file_size = 10
    problems = validate_config(config)
    assert any("frame rate" in p for p in problems)
    assert any("max_file_size" in p for p in problems)
