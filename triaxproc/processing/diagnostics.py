"""
Diagnostics
===========
Structured diagnostics emitted by the processing stages.

Every stage returns its diagnostics alongside its output so callers can
inspect them; each record is also mirrored to the standard logging module.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Type


logger = logging.getLogger(__name__)


class Severity(Enum):
    """Diagnostic severity."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Diagnostic:
    """A single diagnostic record."""
    category: Type[Warning]
    severity: Severity
    message: str
    channel: Optional[str] = None
    stage: Optional[str] = None

    @property
    def code(self) -> str:
        return self.category.__name__

    def to_dict(self) -> Dict:
        return {
            'code': self.code,
            'severity': self.severity.value,
            'message': self.message,
            'channel': self.channel,
            'stage': self.stage,
        }

    def __str__(self) -> str:
        where = f"[{self.channel}] " if self.channel else ""
        return f"{self.code}: {where}{self.message}"


@dataclass
class DiagnosticLog:
    """Ordered collection of diagnostics with per-severity counts."""
    records: List[Diagnostic] = field(default_factory=list)
    stage: Optional[str] = None
    logger_name: Optional[str] = None

    def add(
        self,
        category: Type[Warning],
        message: str,
        channel: Optional[str] = None,
        severity: Severity = Severity.WARN
    ) -> Diagnostic:
        """
        Record a diagnostic and mirror it to the logger.

        Args:
            category: Warning class naming the kind of problem
            message: Human readable description
            channel: Affected channel, if any
            severity: Diagnostic severity

        Returns:
            The recorded Diagnostic
        """
        record = Diagnostic(
            category=category,
            severity=severity,
            message=message,
            channel=channel,
            stage=self.stage,
        )
        self.records.append(record)
        log = logging.getLogger(self.logger_name) if self.logger_name else logger
        log.log(_LOG_LEVELS[severity], str(record))
        return record

    def info(self, category: Type[Warning], message: str, channel: Optional[str] = None) -> Diagnostic:
        return self.add(category, message, channel, Severity.INFO)

    def warn(self, category: Type[Warning], message: str, channel: Optional[str] = None) -> Diagnostic:
        return self.add(category, message, channel, Severity.WARN)

    def error(self, category: Type[Warning], message: str, channel: Optional[str] = None) -> Diagnostic:
        return self.add(category, message, channel, Severity.ERROR)

    def extend(self, other: Iterable[Diagnostic]) -> None:
        """Append already-emitted records without logging them again."""
        self.records.extend(other)

    def of_category(self, category: Type[Warning]) -> List[Diagnostic]:
        return [r for r in self.records if issubclass(r.category, category)]

    def for_channel(self, channel: str) -> List[Diagnostic]:
        return [r for r in self.records if r.channel == channel]

    def count(self, severity: Severity) -> int:
        return sum(1 for r in self.records if r.severity == severity)

    @property
    def has_errors(self) -> bool:
        return self.count(Severity.ERROR) > 0

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            'total': len(self.records),
            'info': self.count(Severity.INFO),
            'warn': self.count(Severity.WARN),
            'error': self.count(Severity.ERROR),
            'records': [r.to_dict() for r in self.records],
        }
