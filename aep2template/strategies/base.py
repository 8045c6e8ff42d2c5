"""
Tagged results shared by the analysis strategies.

A strategy returns exactly one of ScriptedResult, NativeResult or
BinaryResult on success. The orchestrator turns any StrategyFailure it
catches into a Failure record; nothing else crosses strategy boundaries.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Dict, Protocol, Tuple, Union

SCRIPTED = "extendscript"
NATIVE = "native-module"
BINARY = "binary-heuristic"


@dataclass(frozen=True)
class ScriptedResult:
    data: Dict[str, Any]
    executable: str
    duration_ms: float = 0.0
    method: ClassVar[str] = SCRIPTED


@dataclass(frozen=True)
class NativeResult:
    data: Dict[str, Any]
    module: str
    duration_ms: float = 0.0
    method: ClassVar[str] = NATIVE


@dataclass(frozen=True)
class BinaryResult:
    data: Dict[str, Any]
    chunks_scanned: int = 0
    duration_ms: float = 0.0
    method: ClassVar[str] = BINARY


@dataclass(frozen=True)
class Failure:
    method: str
    reason: str
    code: str
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "reason": self.reason,
            "code": self.code,
            "durationMs": self.duration_ms,
            "details": dict(self.details),
        }


StrategyOutcome = Union[ScriptedResult, NativeResult, BinaryResult]


class StrategyRunner(Protocol):
    """What the orchestrator calls: project path and correlation id in, tagged result out."""

    def __call__(self, path: str, correlation_id: str) -> StrategyOutcome: ...


def with_duration(result: StrategyOutcome, duration_ms: float) -> StrategyOutcome:
    """Copy of a tagged result stamped with its measured duration."""
    return replace(result, duration_ms=duration_ms)


def call_with_deadline(func: Callable[..., Any], args: Tuple[Any, ...], timeout: float,
                       name: str) -> Tuple[bool, Any]:
    """
    Run func(*args) on a daemon thread and wait at most `timeout` seconds.

    Returns:
        (True, result) when the call finished in time, (False, None) when it
        is still running. An overrunning call is abandoned; being a daemon,
        it never holds up interpreter exit.

    Raises:
        Whatever func raised, when it finished in time
    """
    box: Dict[str, Any] = {}

    def target() -> None:
        try:
            box["result"] = func(*args)
        except Exception as e:
            box["error"] = e

    worker = threading.Thread(target=target, name=name, daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        return False, None
    if "error" in box:
        raise box["error"]
    return True, box.get("result")
