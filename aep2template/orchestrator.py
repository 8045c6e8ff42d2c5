"""
Analysis orchestration: validate the project file, then try the usable
strategies in priority order until one yields a structurally sound result.

    scripted host (ExtendScript)  ->  native module  ->  binary heuristic

Host capabilities are probed once, when the orchestrator is created, and
kept as an immutable value. Strategies run one at a time; each failure is
recorded and the next strategy is tried. If none succeeds,
AllStrategiesFailed carries every recorded reason.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from aep2template.compositions import normalize, validate_analysis_structure, validate_compositions
from aep2template.config import ParserConfig
from aep2template.errors import (
    AllStrategiesFailed,
    InvalidFileError,
    ProjectValidationError,
    ReasonCodes,
    StrategyFailure,
    StrategyTimeout,
)
from aep2template.log_utils import get_logger, log_event, new_correlation_id
from aep2template.models import ProjectAnalysis
from aep2template.strategies import binary, native, scripted
from aep2template.strategies.base import (
    BINARY,
    NATIVE,
    SCRIPTED,
    Failure,
    StrategyOutcome,
    StrategyRunner,
    call_with_deadline,
    with_duration,
)

logger = logging.getLogger(__name__)

RIFX_HEADER = b"RIFX"


@dataclass(frozen=True)
class HostCapabilities:
    scripted_executable: Optional[str] = None
    native_module: Optional[str] = None
    binary: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            SCRIPTED: self.scripted_executable,
            NATIVE: self.native_module,
            BINARY: self.binary,
        }


@dataclass(frozen=True)
class StrategyEntry:
    method: str
    available: bool
    run: StrategyRunner
    # None when the strategy enforces its own deadline
    timeout: Optional[float] = None


def detect_capabilities(config: ParserConfig) -> HostCapabilities:
    caps = HostCapabilities(
        scripted_executable=scripted.find_host_executable(config.scripted),
        native_module=native.find_native_module(config.native),
        binary=config.binary.enabled,
    )
    logger.info(f"Host capabilities: {caps.to_dict()}")
    return caps


def build_strategy_table(config: ParserConfig, caps: HostCapabilities) -> List[StrategyEntry]:
    """Strategies in priority order, each bound to its settings."""
    return [
        StrategyEntry(
            method=SCRIPTED,
            available=caps.scripted_executable is not None,
            run=lambda path, cid: scripted.extract(
                path, cid, caps.scripted_executable, config.scripted.timeout),
        ),
        StrategyEntry(
            method=NATIVE,
            available=caps.native_module is not None,
            run=lambda path, cid: native.extract(
                path, cid, caps.native_module, config.native.entry_point, config.native.timeout),
        ),
        StrategyEntry(
            method=BINARY,
            available=caps.binary,
            run=lambda path, cid: binary.extract(path, cid, config.limits.max_analysis_size),
            timeout=config.binary.timeout,
        ),
    ]


def validate_project_file(path: str, config: ParserConfig, correlation_id: Optional[str] = None) -> int:
    """
    Fail fast on input that no strategy should see.

    Returns:
        File size in bytes

    Raises:
        InvalidFileError: Missing, not a file, wrong extension, too large,
            too small, or not a RIFX container
    """
    def invalid(message: str, code: str) -> InvalidFileError:
        logger.error(message)
        return InvalidFileError(message, path=path, correlation_id=correlation_id, code=code)

    if not os.path.exists(path):
        raise invalid(f"Project file not found: {path}", ReasonCodes.FILE_MISSING)
    if not os.path.isfile(path):
        raise invalid(f"Project path is not a regular file: {path}", ReasonCodes.FILE_NOT_REGULAR)
    ext = os.path.splitext(path)[1].lower()
    if ext not in config.supported_extensions:
        raise invalid(
            f"Unsupported extension {ext or '(none)'}; expected one of {', '.join(config.supported_extensions)}",
            ReasonCodes.FILE_EXTENSION,
        )
    size = os.path.getsize(path)
    if size > config.limits.max_file_size:
        raise invalid(
            f"Project is {size} bytes, above the {config.limits.max_file_size} byte limit",
            ReasonCodes.FILE_TOO_LARGE,
        )
    if size < config.limits.min_file_size:
        raise invalid(
            f"Project is {size} bytes, below the {config.limits.min_file_size} byte minimum",
            ReasonCodes.FILE_TOO_SMALL,
        )
    with open(path, "rb") as f:
        header = f.read(4)
    if header != RIFX_HEADER:
        raise invalid(f"Not an After Effects project (header {header!r})", ReasonCodes.FILE_HEADER)
    return size


def _call_with_timeout(entry: StrategyEntry, path: str, correlation_id: str) -> StrategyOutcome:
    if entry.timeout is None:
        return entry.run(path, correlation_id)
    finished, outcome = call_with_deadline(entry.run, (path, correlation_id), entry.timeout, f"aep-{entry.method}")
    if not finished:
        raise StrategyTimeout(
            f"{entry.method} exceeded {entry.timeout}s", path=path, correlation_id=correlation_id,
        )
    return outcome


class AnalysisOrchestrator:
    """
    Holds the configuration and the strategy table; keeps no per-call state,
    so one instance can serve any number of conversions.
    """

    def __init__(self, config: Optional[ParserConfig] = None,
                 capabilities: Optional[HostCapabilities] = None,
                 strategies: Optional[List[StrategyEntry]] = None):
        self.config = config or ParserConfig()
        self.capabilities = capabilities or detect_capabilities(self.config)
        self.strategies = strategies if strategies is not None else build_strategy_table(
            self.config, self.capabilities)

    def _post_process(self, outcome: StrategyOutcome, correlation_id: str,
                      attempts: List[Dict[str, Any]]) -> ProjectAnalysis:
        issues = validate_analysis_structure(outcome.data)
        if issues:
            summary = "; ".join(f"{'/'.join(i.path) or '<root>'}: {i.message}" for i in issues[:3])
            raise ProjectValidationError(
                f"Unusable analysis document: {summary}",
                diagnostics=issues,
                code=issues[0].code,
            )
        analysis = normalize(outcome.data, self.config, method=outcome.method,
                             correlation_id=correlation_id, attempts=attempts)
        compositions = validate_compositions(analysis.compositions, self.config, analysis.metadata.warnings)
        return replace(analysis, compositions=compositions)

    def analyze(self, path: str, correlation_id: Optional[str] = None) -> ProjectAnalysis:
        """
        Analyse a project file.

        Args:
            path: .aep/.aet project
            correlation_id: Id threaded through every log record (generated if omitted)

        Returns:
            ProjectAnalysis with at least one composition

        Raises:
            InvalidFileError: Before any strategy runs, if the file is unusable
            AllStrategiesFailed: If no strategy produced a usable result
        """
        cid = correlation_id or new_correlation_id()
        log = get_logger(__name__, cid)
        validate_project_file(path, self.config, cid)
        log.info(f"Analyzing {path}")

        failures: List[Failure] = []
        skipped: List[str] = []
        attempts: List[Dict[str, Any]] = []

        for entry in self.strategies:
            if not entry.available:
                skipped.append(entry.method)
                attempts.append({"method": entry.method, "outcome": "unavailable",
                                 "code": ReasonCodes.STRATEGY_UNAVAILABLE, "durationMs": 0.0})
                log.debug(f"Strategy {entry.method} unavailable on this host")
                continue

            started = time.perf_counter()
            try:
                outcome = _call_with_timeout(entry, path, cid)
                elapsed = round((time.perf_counter() - started) * 1000.0, 3)
                outcome = with_duration(outcome, elapsed)
                analysis = self._post_process(outcome, cid, attempts)
            except StrategyTimeout as e:
                failure = Failure(entry.method, e.message, ReasonCodes.STRATEGY_TIMEOUT,
                                  round((time.perf_counter() - started) * 1000.0, 3))
            except StrategyFailure as e:
                failure = Failure(entry.method, e.message, e.code,
                                  round((time.perf_counter() - started) * 1000.0, 3))
            except ProjectValidationError as e:
                failure = Failure(entry.method, e.message, ReasonCodes.STRATEGY_MALFORMED,
                                  round((time.perf_counter() - started) * 1000.0, 3),
                                  details={"diagnostics": [d.to_dict() for d in e.diagnostics]})
            except Exception as e:
                # any other crash is one more failed attempt
                log.debug(f"Strategy {entry.method} crashed", exc_info=True)
                failure = Failure(entry.method, f"{type(e).__name__}: {e}", ReasonCodes.STRATEGY_FAILURE,
                                  round((time.perf_counter() - started) * 1000.0, 3))
            else:
                analysis.metadata.attempts.append(
                    {"method": entry.method, "outcome": "success", "durationMs": outcome.duration_ms})
                log_event(log, "strategy_attempt", method=entry.method,
                          duration_ms=outcome.duration_ms, outcome="success")
                log.info(f"Analysis succeeded with {entry.method}")
                return analysis

            failures.append(failure)
            attempts.append({
                "method": failure.method,
                "outcome": "timeout" if failure.code == ReasonCodes.STRATEGY_TIMEOUT else "failure",
                "code": failure.code,
                "durationMs": failure.duration_ms,
                "reason": failure.reason,
            })
            log_event(log, "strategy_attempt", level=logging.WARNING, method=entry.method,
                      duration_ms=failure.duration_ms, outcome="failure", reason=failure.reason)

        error = AllStrategiesFailed(failures, path=path, correlation_id=cid, skipped=skipped)
        log.error(str(error))
        raise error


def analyze(path: str, config: Optional[ParserConfig] = None, correlation_id: Optional[str] = None) -> ProjectAnalysis:
    """One-shot analysis with freshly probed capabilities."""
    return AnalysisOrchestrator(config).analyze(path, correlation_id)
