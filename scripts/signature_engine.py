#!/usr/bin/env python3
"""
Signature Engine Module

Pre-scan script content for known malicious signatures before AI analysis.
Lexical only: the scanned Lua is never parsed or executed.

The rule table is built once at import time and handed to the engine
explicitly, so scanning stays a pure function of its input.
"""

import logging
import re
from typing import Iterable, Optional

from models import IssueType, PatternRule, SecurityIssue, ThreatLevel

__all__ = ["DEFAULT_RULES", "SIGNATURE_SUGGESTION", "SignatureEngine", "line_of"]

logger = logging.getLogger(__name__)

SIGNATURE_SUGGESTION = "Matched known malicious signature in forensic DB."


def _rule(pattern: str, issue_type: IssueType, description: str,
          threat_level: ThreatLevel, flags: int = 0) -> PatternRule:
    return PatternRule(re.compile(pattern, flags), issue_type, description, threat_level)


DEFAULT_RULES: tuple[PatternRule, ...] = (
    # Ciphers & obfuscation
    _rule(r"\\x[0-9a-fA-F]{2}", IssueType.CIPHER,
          "Hex-Encoded Payload (Cipher).", ThreatLevel.CRITICAL),
    _rule(r"\\[0-9]{3}", IssueType.CIPHER,
          "ASCII Decimal Obfuscation.", ThreatLevel.CRITICAL),
    _rule(r"string\.char\s*\(\s*[0-9,\s]+\s*\)", IssueType.CIPHER,
          "Character Array Reconstruction.", ThreatLevel.HIGH, re.IGNORECASE),

    # Backdoors & remote execution
    _rule(r"PerformHttpRequest\s*\(\s*[\"'](https?://[^\"']+)[\"']", IssueType.BACKDOOR,
          "External Data Exfiltration.", ThreatLevel.HIGH, re.IGNORECASE),
    _rule(r"load\s*\(\s*(?:string\.reverse|base64|[\"']|\\)", IssueType.BACKDOOR,
          "Unsafe Dynamic Execution.", ThreatLevel.CRITICAL, re.IGNORECASE),
    _rule(r"assert\s*\(\s*load\s*\(", IssueType.BACKDOOR,
          "Asserted Code Injection.", ThreatLevel.CRITICAL, re.IGNORECASE),

    # Malicious panels (Blum, Enigma, ...)
    _rule(r"blum.*panel|enigma.*panel|cipher.*check|anti.*cheat.*bypass|admin.*menu.*secret",
          IssueType.BLUM_PANEL, "Malicious Framework Signature.", ThreatLevel.CRITICAL,
          re.IGNORECASE),
    _rule(r"[\"']\s*(?:[A-Za-z0-9+/]{40,})\s*[\"']", IssueType.OBFUSCATION,
          "Large Base64/Encrypted String.", ThreatLevel.HIGH),

    # Sleeper logic & environment hijacking
    _rule(r"_G\[['\"][\w\d]+['\"]\]\s*=\s*(?:load|PerformHttpRequest|assert|setmetatable)",
          IssueType.OBFUSCATION, "Global Table Hijacking.", ThreatLevel.HIGH, re.IGNORECASE),
    _rule(r"debug\.getregistry", IssueType.SLEEPER_THREAT,
          "LUA Registry Access (Forensic Red Flag).", ThreatLevel.CRITICAL, re.IGNORECASE),
    _rule(r"os\.(?:execute|remove|rename|exit|getenv)", IssueType.BACKDOOR,
          "System API Intrusion.", ThreatLevel.CRITICAL, re.IGNORECASE),
)


def line_of(content: str, offset: int) -> int:
    """1-based line number of the character at *offset*."""
    return content.count("\n", 0, offset) + 1


class SignatureEngine:
    """Deterministic pattern matcher run before the AI audit

    Every rule is applied in declaration order to the full content and every
    non-overlapping match becomes one SecurityIssue. Issue ids are sequential
    per call, so repeated scans of the same text yield identical findings.
    """

    def __init__(self, rules: Optional[Iterable[PatternRule]] = None):
        self.rules = tuple(DEFAULT_RULES if rules is None else rules)

    def scan(self, content: str) -> list[SecurityIssue]:
        """Run every signature rule against *content*

        Args:
            content: Raw script text

        Returns:
            Issues ordered by rule, then by match position
        """
        issues = []
        for rule in self.rules:
            for match in rule.pattern.finditer(content):
                issues.append(
                    SecurityIssue(
                        id=f"H-{len(issues) + 1:04d}",
                        type=rule.issue_type,
                        description=rule.description,
                        line=line_of(content, match.start()),
                        code_snippet=match.group(0),
                        threat_level=rule.threat_level,
                        suggestion=SIGNATURE_SUGGESTION,
                    )
                )
        logger.debug("Signature scan produced %d issue(s) from %d rule(s)", len(issues), len(self.rules))
        return issues
