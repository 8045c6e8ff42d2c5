from __future__ import annotations

import subprocess
import sys
import textwrap
import time
from pathlib import Path
from typing import Any, Dict

import pytest

from aep2template.config import ParserConfig
from aep2template.errors import AllStrategiesFailed, InvalidFileError, ReasonCodes, StrategyFailure
from aep2template.orchestrator import (
    AnalysisOrchestrator,
    HostCapabilities,
    StrategyEntry,
    build_strategy_table,
    validate_project_file,
)
from aep2template.strategies.base import BINARY, NATIVE, SCRIPTED, NativeResult, ScriptedResult

ROOT = Path(__file__).resolve().parents[1]

GOOD_DOC: Dict[str, Any] = {
    "compositions": [{"name": "Main", "duration": 5, "width": 1280, "height": 720, "frameRate": 25, "layers": []}],
    "layers": [],
}


def _fail(message: str):
    def run(path: str, cid: str):
        raise StrategyFailure(message)
    return run


def _orchestrator(*entries: StrategyEntry) -> AnalysisOrchestrator:
    caps = HostCapabilities(binary=False)
    return AnalysisOrchestrator(ParserConfig(), capabilities=caps, strategies=list(entries))


# ----------------------------- file checks -----------------------------

def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(InvalidFileError) as exc:
        validate_project_file(str(tmp_path / "missing.aep"), ParserConfig(), "cid")
    assert exc.value.code == ReasonCodes.FILE_MISSING
    assert exc.value.correlation_id == "cid"


def test_directory_is_not_a_project(tmp_path: Path) -> None:
    folder = tmp_path / "folder.aep"
    folder.mkdir()
    with pytest.raises(InvalidFileError) as exc:
        validate_project_file(str(folder), ParserConfig())
    assert exc.value.code == ReasonCodes.FILE_NOT_REGULAR


def test_wrong_extension(tmp_path: Path, project_bytes: bytes) -> None:
    path = tmp_path / "project.txt"
    path.write_bytes(project_bytes)
    with pytest.raises(InvalidFileError) as exc:
        validate_project_file(str(path), ParserConfig())
    assert exc.value.code == ReasonCodes.FILE_EXTENSION


def test_size_limits(tmp_path: Path, project_bytes: bytes) -> None:
    small = tmp_path / "small.aep"
    small.write_bytes(project_bytes[:100])
    with pytest.raises(InvalidFileError) as exc:
        validate_project_file(str(small), ParserConfig())
    assert exc.value.code == ReasonCodes.FILE_TOO_SMALL

    config = ParserConfig()
    config.limits.max_file_size = 1500
    big = tmp_path / "big.aep"
    big.write_bytes(project_bytes)
    with pytest.raises(InvalidFileError) as exc:
        validate_project_file(str(big), config)
    assert exc.value.code == ReasonCodes.FILE_TOO_LARGE


def test_header_check(tmp_path: Path) -> None:
    path = tmp_path / "fake.aep"
    path.write_bytes(b"RIFF" + b"\x00" * 2044)
    with pytest.raises(InvalidFileError) as exc:
        validate_project_file(str(path), ParserConfig())
    assert exc.value.code == ReasonCodes.FILE_HEADER


def test_aet_is_accepted(tmp_path: Path, project_bytes: bytes) -> None:
    path = tmp_path / "template.AET"
    path.write_bytes(project_bytes)
    assert validate_project_file(str(path), ParserConfig()) == len(project_bytes)


def test_invalid_file_runs_no_strategy(tmp_path: Path) -> None:
    calls = []

    def run(path: str, cid: str):
        calls.append(path)
        return ScriptedResult(data=GOOD_DOC, executable="fake")

    orchestrator = _orchestrator(StrategyEntry(SCRIPTED, True, run))
    with pytest.raises(InvalidFileError):
        orchestrator.analyze(str(tmp_path / "missing.aep"))
    assert calls == []


# ----------------------------- strategy fallback -----------------------------

def test_first_success_wins(project_file: Path) -> None:
    calls = []

    def scripted_run(path: str, cid: str):
        calls.append(SCRIPTED)
        return ScriptedResult(data=GOOD_DOC, executable="fake")

    def native_run(path: str, cid: str):
        calls.append(NATIVE)
        return NativeResult(data=GOOD_DOC, module="fake")

    analysis = _orchestrator(
        StrategyEntry(SCRIPTED, True, scripted_run),
        StrategyEntry(NATIVE, True, native_run),
    ).analyze(str(project_file), "cid-7")
    assert calls == [SCRIPTED]
    assert analysis.metadata.method == SCRIPTED
    assert analysis.metadata.correlation_id == "cid-7"
    assert analysis.metadata.attempts[-1]["outcome"] == "success"


def test_falls_back_after_failure(project_file: Path) -> None:
    analysis = _orchestrator(
        StrategyEntry(SCRIPTED, True, _fail("host crashed")),
        StrategyEntry(NATIVE, True, lambda p, c: NativeResult(data=GOOD_DOC, module="fake")),
    ).analyze(str(project_file))
    assert analysis.metadata.method == NATIVE
    outcomes = [(a["method"], a["outcome"]) for a in analysis.metadata.attempts]
    assert outcomes == [(SCRIPTED, "failure"), (NATIVE, "success")]


def test_malformed_output_falls_back(project_file: Path) -> None:
    analysis = _orchestrator(
        StrategyEntry(SCRIPTED, True, lambda p, c: ScriptedResult(data={"compositions": []}, executable="fake")),
        StrategyEntry(NATIVE, True, lambda p, c: NativeResult(data=GOOD_DOC, module="fake")),
    ).analyze(str(project_file))
    assert analysis.metadata.method == NATIVE
    assert analysis.compositions[0].name == "Main"


def test_all_strategies_failed(project_file: Path) -> None:
    orchestrator = _orchestrator(
        StrategyEntry(SCRIPTED, True, _fail("host crashed")),
        StrategyEntry(NATIVE, False, _fail("never called")),
        StrategyEntry(BINARY, True, lambda p, c: ScriptedResult(data={"layers": []}, executable="x")),
    )
    with pytest.raises(AllStrategiesFailed) as exc:
        orchestrator.analyze(str(project_file), "cid-9")
    error = exc.value
    assert error.attempted_methods == [SCRIPTED, BINARY]
    assert error.skipped == [NATIVE]
    assert error.correlation_id == "cid-9"
    assert "extendscript: host crashed" in str(error)
    assert BINARY in str(error)
    assert error.failures[1].code == ReasonCodes.STRATEGY_MALFORMED
    assert error.to_dict()["failures"][0]["method"] == SCRIPTED


def test_unexpected_exception_is_recorded(project_file: Path) -> None:
    def boom(path: str, cid: str):
        raise KeyError("layers")

    with pytest.raises(AllStrategiesFailed) as exc:
        _orchestrator(StrategyEntry(SCRIPTED, True, boom)).analyze(str(project_file))
    assert exc.value.failures[0].code == ReasonCodes.STRATEGY_FAILURE
    assert "KeyError" in exc.value.failures[0].reason


def test_generic_timeout(project_file: Path) -> None:
    def slow(path: str, cid: str):
        time.sleep(0.5)
        return NativeResult(data=GOOD_DOC, module="slow")

    with pytest.raises(AllStrategiesFailed) as exc:
        _orchestrator(StrategyEntry(BINARY, True, slow, timeout=0.05)).analyze(str(project_file))
    assert exc.value.failures[0].code == ReasonCodes.STRATEGY_TIMEOUT


def test_timed_out_strategy_does_not_block_exit(project_file: Path) -> None:
    script = textwrap.dedent("""
        import sys
        import time

        from aep2template.config import ParserConfig
        from aep2template.errors import AllStrategiesFailed
        from aep2template.orchestrator import AnalysisOrchestrator, HostCapabilities, StrategyEntry

        entry = StrategyEntry("binary-heuristic", True, lambda p, c: time.sleep(30), timeout=0.2)
        orchestrator = AnalysisOrchestrator(ParserConfig(), HostCapabilities(binary=False), [entry])
        try:
            orchestrator.analyze(sys.argv[1])
        except AllStrategiesFailed as e:
            print(e.failures[0].code)
    """)
    started = time.perf_counter()
    p = subprocess.run([sys.executable, "-c", script, str(project_file)], capture_output=True, text=True,
                       cwd=ROOT, timeout=20)
    elapsed = time.perf_counter() - started
    assert p.returncode == 0, p.stderr
    assert p.stdout.strip() == ReasonCodes.STRATEGY_TIMEOUT
    assert elapsed < 10


def test_no_strategy_available(project_file: Path) -> None:
    with pytest.raises(AllStrategiesFailed) as exc:
        _orchestrator(StrategyEntry(SCRIPTED, False, _fail("x"))).analyze(str(project_file))
    assert exc.value.failures == []
    assert "no analysis strategy is available" in str(exc.value)


# ----------------------------- real table -----------------------------

def test_strategy_table_order() -> None:
    caps = HostCapabilities(scripted_executable=None, native_module="aep_native", binary=True)
    table = build_strategy_table(ParserConfig(), caps)
    assert [(e.method, e.available) for e in table] == [(SCRIPTED, False), (NATIVE, True), (BINARY, True)]


def test_binary_fallback_end_to_end(project_file: Path, binary_only: HostCapabilities) -> None:
    analysis = AnalysisOrchestrator(ParserConfig(), capabilities=binary_only).analyze(str(project_file))
    assert analysis.metadata.method == BINARY
    comp = analysis.compositions[0]
    assert comp.name == "Main Comp"
    assert comp.duration == 10.0
    assert comp.frame_rate == 24.0
    assert [a["method"] for a in analysis.metadata.attempts] == [SCRIPTED, NATIVE, BINARY]
    assert [a["outcome"] for a in analysis.metadata.attempts] == ["unavailable", "unavailable", "success"]
    assert [a.get("code") for a in analysis.metadata.attempts] == [
        ReasonCodes.STRATEGY_UNAVAILABLE, ReasonCodes.STRATEGY_UNAVAILABLE, None]
