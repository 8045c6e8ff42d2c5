"""
Error kinds, reason codes and diagnostic records for the conversion pipeline.

Fatal problems are exceptions derived from AEPError and always carry the
correlation id and the project path. Recoverable problems are Diagnostic
records that accumulate on the result instead of being raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ========================= REASON CODES =========================

class ReasonCodes:
    # Input file checks (fatal, before any strategy)
    FILE_MISSING = "AEP-FILE-001"
    FILE_NOT_REGULAR = "AEP-FILE-002"
    FILE_EXTENSION = "AEP-FILE-003"
    FILE_TOO_LARGE = "AEP-FILE-004"
    FILE_TOO_SMALL = "AEP-FILE-005"
    FILE_HEADER = "AEP-FILE-006"

    # Strategy attempts (recorded, never raised past the orchestrator)
    STRATEGY_TIMEOUT = "AEP-STRAT-001"
    STRATEGY_FAILURE = "AEP-STRAT-002"
    STRATEGY_MALFORMED = "AEP-STRAT-003"
    STRATEGY_UNAVAILABLE = "AEP-STRAT-004"
    ALL_STRATEGIES_FAILED = "AEP-STRAT-010"

    # Structural validation (fatal)
    NO_COMPOSITIONS = "AEP-VAL-001"
    MISSING_LAYERS_ARRAY = "AEP-VAL-002"
    COMPOSITION_WITHOUT_NAME = "AEP-VAL-003"
    NO_USABLE_LAYERS = "AEP-VAL-004"

    # Repairs and soft findings
    DEFAULTED_DURATION = "AEP-WARN-001"
    DEFAULTED_NAME = "AEP-WARN-002"
    DEFAULTED_LAYERS = "AEP-WARN-003"
    EMPTY_COMPOSITION = "AEP-WARN-004"
    DEFAULTED_PROPERTY = "AEP-WARN-005"
    UNCOMMON_FRAME_RATE = "AEP-WARN-006"
    HIGH_RESOLUTION = "AEP-WARN-007"
    LONG_DURATION = "AEP-WARN-008"
    LAYER_INVALID = "AEP-WARN-010"
    MALFORMED_ENTRY = "AEP-WARN-012"
    MERGE_VALUE = "AEP-WARN-020"

    # Asset scanning
    ASSET_MISSING = "AEP-ASSET-001"
    ASSET_UNREADABLE = "AEP-ASSET-002"
    ASSET_METADATA = "AEP-ASSET-003"

    # Configuration
    CONFIG_INVALID = "AEP-CFG-001"


@dataclass
class Diagnostic:
    """One non-fatal finding, attached to results rather than raised."""

    code: str
    message: str
    path: List[str] = field(default_factory=list)
    severity: str = "warning"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "path": list(self.path),
            "severity": self.severity,
        }


@dataclass
class ValidationWarning(Diagnostic):
    """Missing-but-defaultable data that was repaired."""


@dataclass
class AssetMissing(Diagnostic):
    """An asset that could not be catalogued; scanning carries on."""


# ========================= EXCEPTIONS =========================

class AEPError(Exception):
    """Base class for fatal pipeline errors."""

    code = "AEP-ERR"

    def __init__(self, message: str, *, path: Optional[str] = None,
                 correlation_id: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path
        self.correlation_id = correlation_id
        if code:
            self.code = code

    def __str__(self) -> str:
        context = []
        if self.path:
            context.append(f"path={self.path}")
        if self.correlation_id:
            context.append(f"correlation_id={self.correlation_id}")
        suffix = f" ({', '.join(context)})" if context else ""
        return f"[{self.code}] {self.message}{suffix}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "path": self.path,
            "correlation_id": self.correlation_id,
        }


class ConfigError(AEPError):
    code = ReasonCodes.CONFIG_INVALID


class InvalidFileError(AEPError):
    code = ReasonCodes.FILE_MISSING


class StrategyFailure(AEPError):
    code = ReasonCodes.STRATEGY_FAILURE


class StrategyTimeout(StrategyFailure):
    code = ReasonCodes.STRATEGY_TIMEOUT


class AllStrategiesFailed(AEPError):
    """Every available strategy was tried and none produced usable output."""

    code = ReasonCodes.ALL_STRATEGIES_FAILED

    def __init__(self, failures: List[Any], *, path: Optional[str] = None,
                 correlation_id: Optional[str] = None, skipped: Optional[List[str]] = None):
        self.failures = list(failures)
        self.skipped = list(skipped or [])
        if self.failures:
            reasons = "; ".join(f"{f.method}: {f.reason}" for f in self.failures)
        else:
            reasons = "no analysis strategy is available on this host"
        super().__init__(
            f"All analysis strategies failed: {reasons}",
            path=path,
            correlation_id=correlation_id,
        )

    @property
    def attempted_methods(self) -> List[str]:
        return [f.method for f in self.failures]

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["failures"] = [f.to_dict() for f in self.failures]
        payload["skipped"] = list(self.skipped)
        return payload


class ProjectValidationError(AEPError):
    """Structurally unusable project data."""

    code = ReasonCodes.NO_COMPOSITIONS

    def __init__(self, message: str, diagnostics: Optional[List[Diagnostic]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.diagnostics = list(diagnostics or [])

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["diagnostics"] = [d.to_dict() for d in self.diagnostics]
        return payload
