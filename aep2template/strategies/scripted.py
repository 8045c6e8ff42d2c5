"""
Scripted extraction: drive an installed After Effects through the bundled
ExtendScript and read back the JSON document it prints.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from aep2template.config import ScriptedSettings
from aep2template.errors import ReasonCodes, StrategyFailure, StrategyTimeout
from aep2template.strategies.base import ScriptedResult

logger = logging.getLogger(__name__)

SCRIPT_RESOURCE = Path(__file__).resolve().parents[1] / "resources" / "analyze_project.jsx"

_YEARS = ("2025", "2024", "2023", "2022", "2021")
COMMON_INSTALL_PATHS: List[str] = [
    f"C:/Program Files/Adobe/Adobe After Effects {y}/Support Files/AfterFX.exe" for y in _YEARS
] + [
    f"/Applications/Adobe After Effects {y}/Adobe After Effects {y}.app/Contents/MacOS/AfterEffects"
    for y in _YEARS
]


def find_host_executable(settings: ScriptedSettings) -> Optional[str]:
    """Locate the After Effects executable; None when the host is not installed."""
    if not settings.enabled:
        return None
    if settings.executable:
        if os.path.isfile(settings.executable):
            return settings.executable
        logger.warning(f"Configured After Effects executable not found: {settings.executable}")
        return None
    for candidate in COMMON_INSTALL_PATHS:
        if os.path.isfile(candidate):
            return candidate
    return shutil.which("AfterFX") or shutil.which("AfterFX.exe")


def load_script() -> str:
    with open(SCRIPT_RESOURCE, "r", encoding="utf-8") as f:
        return f.read()


def render_script(project_path: str, output_path: str) -> str:
    """Bundled script with the project and output paths bound in front of it."""
    header = (
        f"var __aepProjectPath = {json.dumps(os.path.abspath(project_path))};\n"
        f"var __aepOutputPath = {json.dumps(output_path)};\n"
    )
    return header + load_script()


def parse_script_output(stdout: str) -> Dict[str, Any]:
    """
    Pull the JSON document out of the host's stdout.

    The host may print banner lines around the document, so the outermost
    {...} span is taken.

    Raises:
        StrategyFailure: If no JSON object can be decoded
    """
    text = (stdout or "").strip()
    start, end = text.find("{"), text.rfind("}")
    if start < 0 or end <= start:
        raise StrategyFailure("Script produced no JSON output", code=ReasonCodes.STRATEGY_MALFORMED)
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise StrategyFailure(f"Script output is not valid JSON: {e}", code=ReasonCodes.STRATEGY_MALFORMED) from e
    if not isinstance(data, dict):
        raise StrategyFailure("Script output is not a JSON object", code=ReasonCodes.STRATEGY_MALFORMED)
    return data


def extract(path: str, correlation_id: str, executable: str, timeout: float) -> ScriptedResult:
    """
    Run the analysis script against `path` in the host application.

    Args:
        path: Project file to analyse
        correlation_id: Id of the surrounding conversion, for log records
        executable: After Effects executable found by capability probing
        timeout: Seconds before the host process is killed

    Returns:
        ScriptedResult wrapping the decoded document

    Raises:
        StrategyTimeout: If the host did not finish in time (the process is killed)
        StrategyFailure: If the host exits non-zero or prints no usable JSON
    """
    with tempfile.TemporaryDirectory(prefix="aep2template_") as tmp:
        script_path = Path(tmp) / "analyze_project.jsx"
        output_path = Path(tmp) / "analysis.json"
        script_path.write_text(render_script(path, str(output_path)), encoding="utf-8")

        cmd = [executable, "-r", str(script_path)]
        logger.debug(f"Running host script: {' '.join(cmd)}", extra={"correlation_id": correlation_id})
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise StrategyTimeout(
                f"Host script exceeded {timeout}s and was terminated",
                path=path, correlation_id=correlation_id,
            ) from e
        except OSError as e:
            raise StrategyFailure(
                f"Could not launch host application: {e}", path=path, correlation_id=correlation_id,
            ) from e

        if proc.returncode != 0:
            detail = (proc.stderr or "").strip().splitlines()[-1:] or ["no stderr"]
            raise StrategyFailure(
                f"Host exited with status {proc.returncode}: {detail[0]}",
                path=path, correlation_id=correlation_id,
            )

        stdout = proc.stdout or ""
        if "{" not in stdout and output_path.exists():
            stdout = output_path.read_text(encoding="utf-8")
        data = parse_script_output(stdout)

    return ScriptedResult(data=data, executable=executable)

