"""
Guardian Data Models.

Core dataclass definitions shared across the scan pipeline.

Classes:
    ThreatLevel: Finding severity
    ScanMode: Speed/thoroughness tier selected for a scan
    IssueType: Finding family
    PatternRule: One signature rule of the heuristic engine
    SecurityIssue: One detected concern
    AnalysisResult: Per-file analysis output
    ScanTask: One file queued for analysis
    CapabilityResult: Value returned from an AI capability, with its error if any
    FileOutcome: What happened to one file in a batch
    BatchReport: Ordered outcomes of a whole batch
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

SCORE_PENALTY_PER_ISSUE = 15


class ThreatLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ScanMode(str, Enum):
    TURBO = "TURBO"
    STANDARD = "STANDARD"
    SUPER_PRO = "SUPER_PRO"

    @classmethod
    def parse(cls, value: str) -> "ScanMode":
        """Accept CLI spellings like ``super-pro`` or ``turbo``."""
        normalized = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        return cls(normalized)


class IssueType(str, Enum):
    CIPHER = "CIPHER"
    BACKDOOR = "BACKDOOR"
    BLUM_PANEL = "BLUM_PANEL"
    SUSPICIOUS_HTTP = "SUSPICIOUS_HTTP"
    OBFUSCATION = "OBFUSCATION"
    SLEEPER_THREAT = "SLEEPER_THREAT"


@dataclass(frozen=True)
class PatternRule:
    """Immutable signature rule: a compiled pattern and what a match means"""

    pattern: re.Pattern
    issue_type: IssueType
    description: str
    threat_level: ThreatLevel


@dataclass(frozen=True)
class SecurityIssue:
    """One detected concern, from the signature engine or the AI audit"""

    id: str
    type: IssueType
    description: str
    line: int  # 1-based, 0 when the AI layer cannot localise it
    code_snippet: str
    threat_level: ThreatLevel
    suggestion: str

    @property
    def is_critical(self) -> bool:
        return self.threat_level is ThreatLevel.CRITICAL


def compute_score(issue_count: int) -> int:
    """0-100 safety score, 15 points per issue, clamped at zero."""
    return max(0, 100 - SCORE_PENALTY_PER_ISSUE * issue_count)


@dataclass(frozen=True)
class AnalysisResult:
    """Result of analysing one file end-to-end"""

    file_name: str  # may be "archive.zip/path/in/archive.lua"
    content: str
    cleaned_content: str
    issues: tuple[SecurityIssue, ...]
    mode: ScanMode
    ai_explanation: Optional[str] = None
    warnings: tuple[str, ...] = ()

    @property
    def is_safe(self) -> bool:
        return len(self.issues) == 0

    @property
    def score(self) -> int:
        return compute_score(len(self.issues))

    @property
    def critical_count(self) -> int:
        return sum(1 for issue in self.issues if issue.is_critical)

    @property
    def was_cleaned(self) -> bool:
        return self.cleaned_content != self.content

    def to_dict(self) -> dict:
        return {
            "fileName": self.file_name,
            "isSafe": self.is_safe,
            "score": self.score,
            "mode": self.mode.value,
            "aiExplanation": self.ai_explanation,
            "warnings": list(self.warnings),
            "issues": [
                {
                    "id": issue.id,
                    "type": issue.type.value,
                    "description": issue.description,
                    "line": issue.line,
                    "codeSnippet": issue.code_snippet,
                    "threatLevel": issue.threat_level.value,
                    "suggestion": issue.suggestion,
                }
                for issue in self.issues
            ],
        }


@dataclass(frozen=True)
class ScanTask:
    """One file queued for analysis"""

    name: str
    content: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class CapabilityResult(Generic[T]):
    """Value from an external AI capability.

    ``error`` is None when the value came from the service; otherwise the
    value is the documented fallback and ``error`` says why.
    """

    value: T
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    DROPPED = "dropped"


@dataclass(frozen=True)
class FileOutcome:
    """What happened to one file of a batch"""

    name: str
    status: OutcomeStatus
    result: Optional[AnalysisResult] = None
    reason: Optional[str] = None


@dataclass
class BatchReport:
    """Outcomes of a batch scan, in input order"""

    mode: ScanMode
    outcomes: list[FileOutcome] = field(default_factory=list)

    @property
    def results(self) -> list[AnalysisResult]:
        return [o.result for o in self.outcomes if o.result is not None]

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def dropped(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.DROPPED]


__all__ = [
    "ThreatLevel",
    "ScanMode",
    "IssueType",
    "PatternRule",
    "SecurityIssue",
    "AnalysisResult",
    "ScanTask",
    "CapabilityResult",
    "OutcomeStatus",
    "FileOutcome",
    "BatchReport",
    "compute_score",
]
