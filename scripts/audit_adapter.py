#!/usr/bin/env python3
"""
Audit Adapter Module

Asks the external AI capability for structured findings on one script.
Mode decides the model tier, the thinking budget and the audit focus:

- TURBO:     fast model, no extended thinking, signature-family sweep
- STANDARD:  fast model, small thinking budget, signature-family sweep
- SUPER_PRO: deep model, larger thinking budget, logic-flow forensic audit

This layer never fails its caller: transport errors (after retries) and
malformed responses both come back as a fallback ``AuditReport`` inside a
``CapabilityResult`` carrying the error.
"""

import json
import logging
from typing import Optional

from models import CapabilityResult, IssueType, ScanMode, ThreatLevel
from orchestrator.llm_manager import TIER_DEEP, TIER_FAST
from resilient_caller import RetryPolicy, call_with_policy
from schemas.audit import AuditReport, audit_response_schema, parse_audit_response

__all__ = [
    "AuditAdapter",
    "AUDIT_FALLBACK_SUMMARY",
    "EXPLAIN_FALLBACK",
    "EXPLAIN_EMPTY",
    "MAX_AUDIT_CHARS",
    "MAX_EXPLAIN_CHARS",
]

logger = logging.getLogger(__name__)

MAX_AUDIT_CHARS = 15000
MAX_EXPLAIN_CHARS = 2500

AUDIT_FALLBACK_SUMMARY = "AI bypass: Heuristic engine active."
EXPLAIN_FALLBACK = "Expert layer unreachable."
EXPLAIN_EMPTY = "Report unavailable."

ELITE_FOCUS = (
    "Execute an ELITE forensic audit. Hunt for advanced logic-based backdoors, "
    "variable shadowing, hidden global hijacking (_G), and nested ciphers. "
    "Analyze the LUA logic flow for 'sleeper' malicious code."
)
SIGNATURE_FOCUS = "Scan for common FiveM ciphers, Blum panels, and unauthorized HTTP backdoors."

DEFAULT_THINKING_BUDGETS = {
    ScanMode.TURBO: 0,
    ScanMode.STANDARD: 1024,
    ScanMode.SUPER_PRO: 4096,
}


class AuditAdapter:
    """Structured-findings request for one file

    Args:
        llm: Object exposing ``async complete(prompt, *, tier, system, thinking_budget)``
        config: Flat configuration dict (see config_loader)
        retry_policy: Backoff policy; defaults to the configured one
    """

    def __init__(self, llm, config: Optional[dict] = None, retry_policy: Optional[RetryPolicy] = None):
        self.llm = llm
        self.config = config or {}
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self.max_chars = int(self.config.get("audit_max_chars", MAX_AUDIT_CHARS))
        self.explain_max_chars = int(self.config.get("explain_max_chars", MAX_EXPLAIN_CHARS))

    @staticmethod
    def tier_for(mode: ScanMode) -> str:
        return TIER_DEEP if mode is ScanMode.SUPER_PRO else TIER_FAST

    def thinking_budget_for(self, mode: ScanMode) -> int:
        if mode is ScanMode.TURBO:
            return 0
        key = f"thinking_budget_{mode.value.lower()}"
        return int(self.config.get(key, DEFAULT_THINKING_BUDGETS[mode]))

    @staticmethod
    def focus_for(mode: ScanMode) -> str:
        return ELITE_FOCUS if mode is ScanMode.SUPER_PRO else SIGNATURE_FOCUS

    def build_audit_prompt(self, file_name: str, content: str, mode: ScanMode) -> str:
        """Build the audit prompt; content beyond the character budget is cut off."""
        types = ", ".join(t.value for t in IssueType)
        levels = ", ".join(level.value for level in ThreatLevel)
        schema = json.dumps(audit_response_schema(), indent=2)
        return f"""[MODE: {mode.value}] {self.focus_for(mode)}
Target File: "{file_name}"

Report every malicious or suspicious fragment as a concern.
- "type" is one of: {types}
- "threatLevel" is one of: {levels}
- "snippet" is the exact offending code, copied verbatim
- "summary" is a short forensic narrative for the whole file

**Response Format (JSON only, no markdown), matching this schema:**
{schema}

Content Snippet:
{content[:self.max_chars]}
"""

    async def audit(self, file_name: str, content: str, mode: ScanMode) -> CapabilityResult[AuditReport]:
        """Audit one file

        Args:
            file_name: Display name of the file (may be archive/entry)
            content: Full script text; truncated before submission
            mode: Scan mode

        Returns:
            CapabilityResult wrapping the validated report, or the fallback
            report with ``error`` set
        """
        prompt = self.build_audit_prompt(file_name, content, mode)
        system = "You are a forensic security auditor for FiveM Lua resources."

        try:
            text = await call_with_policy(
                lambda: self.llm.complete(
                    prompt,
                    tier=self.tier_for(mode),
                    system=system,
                    thinking_budget=self.thinking_budget_for(mode),
                ),
                self.retry_policy,
            )
            report = parse_audit_response(text)
        except Exception as e:
            logger.warning(f"⚠️  AI audit failed for {file_name}: {type(e).__name__}: {e}")
            return CapabilityResult(AuditReport.fallback(AUDIT_FALLBACK_SUMMARY), error=f"{type(e).__name__}: {e}")

        logger.debug(f"   AI audit of {file_name}: {len(report.concerns)} concern(s)")
        return CapabilityResult(report)

    async def explain(self, file_name: str, snippet: str) -> CapabilityResult[str]:
        """Instant expert analysis of one code region

        Args:
            file_name: Display name of the file
            snippet: Code to analyse; truncated before submission

        Returns:
            CapabilityResult wrapping the analysis text
        """
        prompt = f"""Instant Forensic Analysis: "{file_name}"
```lua
{snippet[:self.explain_max_chars]}
```
Analyze for malicious persistence or hidden framework backdoors."""

        try:
            text = await call_with_policy(
                lambda: self.llm.complete(prompt, tier=TIER_FAST, thinking_budget=0),
                self.retry_policy,
            )
            explanation = text.strip()
        except Exception as e:
            logger.warning(f"⚠️  Expert analysis failed for {file_name}: {type(e).__name__}: {e}")
            return CapabilityResult(EXPLAIN_FALLBACK, error=f"{type(e).__name__}: {e}")

        return CapabilityResult(explanation or EXPLAIN_EMPTY)
