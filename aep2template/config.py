"""
Parser configuration: built-in defaults, optional YAML overlay, environment overrides.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from aep2template.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class CompositionDefaults:
    width: int = 1920
    height: int = 1080
    frame_rate: float = 24.0
    duration: float = 10.0
    background_color: str = "#000000"


@dataclass
class LayerDefaults:
    duration: float = 5.0
    opacity: float = 100.0
    rotation: float = 0.0
    min_duration: float = 0.1


@dataclass
class TextDefaults:
    font_size: float = 48.0
    font_family: str = "Arial"
    color: str = "#FFFFFF"


@dataclass
class Defaults:
    composition: CompositionDefaults = field(default_factory=CompositionDefaults)
    layer: LayerDefaults = field(default_factory=LayerDefaults)
    text: TextDefaults = field(default_factory=TextDefaults)


@dataclass
class Limits:
    max_file_size: int = 100 * 1024 * 1024
    min_file_size: int = 1024
    max_analysis_size: int = 10 * 1024 * 1024
    max_layers: int = 1000
    max_compositions: int = 100


@dataclass
class ScriptedSettings:
    enabled: bool = True
    executable: Optional[str] = None
    timeout: float = 30.0


@dataclass
class NativeSettings:
    enabled: bool = True
    module: str = "aep_native"
    entry_point: str = "analyze_project"
    timeout: float = 30.0


@dataclass
class BinarySettings:
    enabled: bool = True
    timeout: float = 30.0


@dataclass
class ParserConfig:
    defaults: Defaults = field(default_factory=Defaults)
    limits: Limits = field(default_factory=Limits)
    scripted: ScriptedSettings = field(default_factory=ScriptedSettings)
    native: NativeSettings = field(default_factory=NativeSettings)
    binary: BinarySettings = field(default_factory=BinarySettings)
    supported_extensions: Tuple[str, ...] = (".aep", ".aet")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# env var -> (section paths, converter)
ENV_OVERRIDES = {
    "AE_DEFAULT_WIDTH": ((("defaults", "composition", "width"),), int),
    "AE_DEFAULT_HEIGHT": ((("defaults", "composition", "height"),), int),
    "AE_DEFAULT_FPS": ((("defaults", "composition", "frame_rate"),), float),
    "AE_MAX_FILE_SIZE": ((("limits", "max_file_size"),), int),
    "AEP2TPL_AFTERFX": ((("scripted", "executable"),), str),
    "AEP2TPL_NATIVE_MODULE": ((("native", "module"),), str),
    "AEP2TPL_STRATEGY_TIMEOUT": ((("scripted", "timeout"), ("native", "timeout")), float),
}


def _overlay(target: Any, values: Dict[str, Any], where: str) -> None:
    """Copy a YAML mapping onto a dataclass tree, rejecting unknown keys."""
    known = {f.name: f for f in fields(target)}
    for key, value in values.items():
        name = str(key).replace("-", "_")
        if name not in known:
            raise ConfigError(f"Unknown configuration key: {where}{key}")
        current = getattr(target, name)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ConfigError(f"Configuration section {where}{key} must be a mapping")
            _overlay(current, value, f"{where}{key}.")
        elif name == "supported_extensions":
            setattr(target, name, tuple(str(v).lower() for v in value))
        else:
            setattr(target, name, value)


def _set_path(config: ParserConfig, path: Tuple[str, ...], value: Any) -> None:
    target: Any = config
    for part in path[:-1]:
        target = getattr(target, part)
    setattr(target, path[-1], value)


def validate_config(config: ParserConfig) -> List[str]:
    """Return human-readable problems; empty when the config is usable."""
    problems: List[str] = []
    comp = config.defaults.composition
    if comp.width <= 0 or comp.height <= 0:
        problems.append("Default composition dimensions must be positive")
    if comp.frame_rate <= 0:
        problems.append("Default frame rate must be positive")
    if comp.duration <= 0:
        problems.append("Default composition duration must be positive")
    if config.limits.max_file_size <= config.limits.min_file_size:
        problems.append("max_file_size must exceed min_file_size")
    if config.limits.max_analysis_size <= 0:
        problems.append("max_analysis_size must be positive")
    for section in (config.scripted, config.native, config.binary):
        if section.timeout <= 0:
            problems.append(f"{type(section).__name__}.timeout must be positive")
    for ext in config.supported_extensions:
        if not ext.startswith("."):
            problems.append(f"Extension {ext!r} must start with '.'")
    return problems


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> ParserConfig:
    """
    Build a ParserConfig.

    Args:
        path: Optional YAML file whose mapping overlays the defaults
        environ: Environment to read overrides from (defaults to os.environ)

    Returns:
        A validated ParserConfig

    Raises:
        ConfigError: If the file is unreadable, malformed or yields invalid values
    """
    config = ParserConfig()
    env = os.environ if environ is None else environ

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {path}", path=path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {e}", path=path) from e
        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping", path=path)
        _overlay(config, data, "")
        logger.debug(f"Loaded configuration overlay from {path}")

    for var, (targets, convert) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            value = convert(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {var}: {raw!r}") from e
        for target in targets:
            _set_path(config, target, value)
        logger.debug(f"Config override from {var}")

    problems = validate_config(config)
    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems), path=path)
    return config
