#!/usr/bin/env python3
"""
File Analyzer Module

Analyzes a single script end-to-end:

1. Signature engine (local heuristics)
2. AI audit, merged into the heuristic findings with snippet de-duplication
3. AI remediation, only when a CRITICAL issue was recorded
4. Score and safety flag
5. Issue ordering: non-CRITICAL first, CRITICAL last, discovery order kept
   inside each group (stable partition)

Every step degrades to a documented fallback instead of raising, and the
degradation is recorded in ``AnalysisResult.warnings``.
"""

import logging
from typing import Callable, Iterable, Optional

from models import AnalysisResult, IssueType, ScanMode, SecurityIssue, ThreatLevel
from schemas.audit import AuditConcern
from signature_engine import SignatureEngine

__all__ = [
    "FileAnalyzer",
    "AI_DESCRIPTION_PREFIX",
    "AI_SUGGESTION",
    "AUDIT_SKIPPED_SUMMARY",
    "CLEANING_BYPASS_MARKER",
    "build_remediation_synopsis",
    "concern_to_issue",
    "merge_concerns",
    "order_issues",
    "snippet_key",
]

logger = logging.getLogger(__name__)

AI_DESCRIPTION_PREFIX = "[AI FORWARD] "
AI_SUGGESTION = "AI Forensic Insight."
AUDIT_SKIPPED_SUMMARY = "AI analysis skipped for high-velocity scan."
CLEANING_BYPASS_MARKER = "-- [CLEANING BYPASS] --"
MAX_SYNOPSIS_ISSUES = 5


def snippet_key(snippet: str) -> str:
    """De-duplication key for a finding: the exact snippet text."""
    return snippet


def concern_to_issue(concern: AuditConcern, issue_id: str) -> SecurityIssue:
    """Convert an AI concern into a SecurityIssue with unknown line (0)."""
    try:
        issue_type = IssueType(concern.type)
    except ValueError:
        issue_type = IssueType.BACKDOOR
    try:
        threat_level = ThreatLevel(concern.threat_level)
    except ValueError:
        threat_level = ThreatLevel.HIGH

    return SecurityIssue(
        id=issue_id,
        type=issue_type,
        description=f"{AI_DESCRIPTION_PREFIX}{concern.description}",
        line=0,
        code_snippet=concern.snippet,
        threat_level=threat_level,
        suggestion=AI_SUGGESTION,
    )


def merge_concerns(
    issues: Iterable[SecurityIssue],
    concerns: Iterable[AuditConcern],
    key: Callable[[str], str] = snippet_key,
) -> list[SecurityIssue]:
    """Append AI concerns whose snippet key is not already recorded

    Concerns are checked against heuristic issues and against concerns
    accepted earlier in the same call.

    Args:
        issues: Findings recorded so far
        concerns: Concerns from the audit report, in report order
        key: Snippet normalisation used for de-duplication

    Returns:
        New list: the original issues followed by the accepted AI issues
    """
    merged = list(issues)
    seen = {key(issue.code_snippet) for issue in merged}
    added = 0
    for concern in concerns:
        concern_key = key(concern.snippet)
        if concern_key in seen:
            continue
        seen.add(concern_key)
        added += 1
        merged.append(concern_to_issue(concern, f"AI-{added:04d}"))
    return merged


def order_issues(issues: Iterable[SecurityIssue]) -> list[SecurityIssue]:
    """Stable two-bucket ordering: non-CRITICAL first, CRITICAL last."""
    return sorted(issues, key=lambda issue: issue.is_critical)


def build_remediation_synopsis(issues: Iterable[SecurityIssue]) -> str:
    """Descriptions of the first five CRITICAL issues, comma-joined."""
    critical = [issue.description for issue in issues if issue.is_critical]
    return ", ".join(critical[:MAX_SYNOPSIS_ISSUES])


class FileAnalyzer:
    """Per-file analysis orchestration

    Args:
        engine: Signature engine (default rule table when None)
        auditor: AuditAdapter, or None to skip the AI audit
        remediator: RemediationAdapter, or None to skip auto-repair
    """

    def __init__(self, engine: Optional[SignatureEngine] = None, auditor=None, remediator=None):
        self.engine = engine or SignatureEngine()
        self.auditor = auditor
        self.remediator = remediator

    async def analyze(self, file_name: str, content: str, mode: ScanMode = ScanMode.STANDARD) -> AnalysisResult:
        """Analyze one file

        Args:
            file_name: Display name (may be archive/entry)
            content: Script text
            mode: Scan mode

        Returns:
            Immutable AnalysisResult
        """
        warnings = []

        # 1. Local signature heuristics
        try:
            issues = self.engine.scan(content)
        except Exception as e:
            logger.error(f"Signature scan failed for {file_name}: {e}")
            issues = []
            warnings.append(f"heuristics: {type(e).__name__}: {e}")

        # 2. AI audit
        ai_explanation = None
        if self.auditor is not None:
            try:
                audit = await self.auditor.audit(file_name, content, mode)
                ai_explanation = audit.value.summary
                issues = merge_concerns(issues, audit.value.concerns)
                if not audit.ok:
                    warnings.append(f"audit: {audit.error}")
            except Exception as e:
                logger.warning(f"⚠️  AI audit raised for {file_name}: {e}")
                ai_explanation = AUDIT_SKIPPED_SUMMARY
                warnings.append(f"audit: {type(e).__name__}: {e}")

        # 3. Remediation, only when something CRITICAL was found
        cleaned_content = content
        if self.remediator is not None and any(issue.is_critical for issue in issues):
            synopsis = build_remediation_synopsis(issues)
            try:
                repair = await self.remediator.clean(file_name, content, synopsis, mode)
                cleaned_content = repair.value
                if not repair.ok:
                    warnings.append(f"remediation: {repair.error}")
            except Exception as e:
                logger.warning(f"⚠️  Remediation raised for {file_name}: {e}")
                cleaned_content = f"{CLEANING_BYPASS_MARKER}\n{content}"
                warnings.append(f"remediation: {type(e).__name__}: {e}")

        result = AnalysisResult(
            file_name=file_name,
            content=content,
            cleaned_content=cleaned_content,
            issues=tuple(order_issues(issues)),
            mode=mode,
            ai_explanation=ai_explanation,
            warnings=tuple(warnings),
        )
        logger.debug(
            f"   {file_name}: {len(result.issues)} issue(s), score {result.score}, "
            f"{result.critical_count} critical"
        )
        return result
