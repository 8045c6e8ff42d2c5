"""
Native-module extraction: hand the project to an in-process binding.

The binding is any importable module exposing a callable (configured as
`native.entry_point`, `analyze_project` by default) that takes the project
path and returns a mapping shaped like the scripted host's JSON document.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
from typing import Any, Callable, Dict, Optional

from aep2template.config import NativeSettings
from aep2template.errors import ReasonCodes, StrategyFailure, StrategyTimeout
from aep2template.strategies.base import NativeResult, call_with_deadline

logger = logging.getLogger(__name__)


def find_native_module(settings: NativeSettings) -> Optional[str]:
    """Module name when the binding is importable here, else None. Does not import it."""
    if not settings.enabled or not settings.module:
        return None
    try:
        spec = importlib.util.find_spec(settings.module)
    except (ImportError, ValueError):
        return None
    return settings.module if spec is not None else None


def _resolve_entry_point(module_name: str, entry_point: str) -> Callable[[str], Any]:
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise StrategyFailure(f"Native module {module_name!r} failed to import: {e}") from e
    func = getattr(module, entry_point, None)
    if not callable(func):
        raise StrategyFailure(f"Native module {module_name!r} has no callable {entry_point!r}")
    return func


def extract(path: str, correlation_id: str, module_name: str, entry_point: str,
            timeout: float) -> NativeResult:
    """
    Call the binding on a worker thread and wait at most `timeout` seconds.

    A binding that overruns is abandoned, not interrupted. It runs on a daemon
    thread, so it never keeps the process alive after the caller gives up.

    Raises:
        StrategyTimeout: If the binding did not return in time
        StrategyFailure: If the binding raised or returned something other than a mapping
    """
    func = _resolve_entry_point(module_name, entry_point)
    try:
        finished, data = call_with_deadline(func, (path,), timeout, "aep-native")
    except Exception as e:
        raise StrategyFailure(
            f"Native module raised {type(e).__name__}: {e}", path=path, correlation_id=correlation_id,
        ) from e
    if not finished:
        raise StrategyTimeout(
            f"Native module exceeded {timeout}s", path=path, correlation_id=correlation_id,
        )

    if not isinstance(data, dict):
        raise StrategyFailure(
            f"Native module returned {type(data).__name__}, expected a mapping",
            path=path, correlation_id=correlation_id, code=ReasonCodes.STRATEGY_MALFORMED,
        )
    logger.debug(f"Native module {module_name} returned {len(data.get('compositions') or [])} compositions")
    return NativeResult(data=_plain(data), module=module_name)


def _plain(data: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow copy so later normalisation never shares state with the binding."""
    return {k: (list(v) if isinstance(v, list) else v) for k, v in data.items()}
