#!/usr/bin/env python3
"""
Remediation Adapter Module

Asks the external AI capability to rewrite one flagged script with every
cipher and backdoor stripped out.  Only invoked by the file analyzer when a
CRITICAL issue was found.

On failure the original content comes back prefixed with a visible
``-- [AUTO-REPAIR FAILED] --`` marker; this layer never raises.
"""

import logging
import re
from typing import Optional

from models import CapabilityResult, ScanMode
from orchestrator.llm_manager import TIER_FAST
from resilient_caller import RetryPolicy, call_with_policy

__all__ = ["RemediationAdapter", "REPAIR_FAILED_MARKER", "MAX_REMEDIATION_CHARS", "strip_code_fence"]

logger = logging.getLogger(__name__)

MAX_REMEDIATION_CHARS = 20000
REPAIR_FAILED_MARKER = "-- [AUTO-REPAIR FAILED] --"

_FENCE = re.compile(r"^```[\w+-]*\s*\n(.*?)\n?```\s*$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a Markdown fence wrapping the whole response, if present."""
    match = _FENCE.match(text)
    return match.group(1) if match else text


class RemediationAdapter:
    """Rewrite request for one file

    Args:
        llm: Object exposing ``async complete(prompt, *, tier, thinking_budget)``
        config: Flat configuration dict (see config_loader)
        retry_policy: Backoff policy; defaults to the configured one
    """

    def __init__(self, llm, config: Optional[dict] = None, retry_policy: Optional[RetryPolicy] = None):
        self.llm = llm
        self.config = config or {}
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self.max_chars = int(self.config.get("remediation_max_chars", MAX_REMEDIATION_CHARS))

    def build_clean_prompt(self, file_name: str, content: str, issues_summary: str, mode: ScanMode) -> str:
        return f"""SECURITY STRIPPER [MODE: {mode.value}]
File: {file_name}
Report: {issues_summary}

PROTOCOL:
- NUKE all ciphers and backdoors.
- Fix corrupted LUA syntax caused by obfuscators.
- Ensure critical logic remains.
- RETURN CLEAN LUA CODE ONLY. NO MARKDOWN.

Code:
{content[:self.max_chars]}
"""

    async def clean(self, file_name: str, content: str, issues_summary: str, mode: ScanMode) -> CapabilityResult[str]:
        """Produce a cleaned version of *content*

        Args:
            file_name: Display name of the file
            content: Full script text; truncated before submission
            issues_summary: Comma-joined descriptions of the critical issues
            mode: Scan mode (echoed to the model)

        Returns:
            CapabilityResult wrapping the rewritten source, or the marked
            original with ``error`` set
        """
        prompt = self.build_clean_prompt(file_name, content, issues_summary, mode)

        try:
            text = await call_with_policy(
                lambda: self.llm.complete(prompt, tier=TIER_FAST, thinking_budget=0),
                self.retry_policy,
            )
            cleaned = strip_code_fence(text.strip()).strip()
        except Exception as e:
            logger.warning(f"⚠️  Auto-repair failed for {file_name}: {type(e).__name__}: {e}")
            return CapabilityResult(f"{REPAIR_FAILED_MARKER}\n{content}", error=f"{type(e).__name__}: {e}")

        if not cleaned:
            logger.debug(f"   Empty repair response for {file_name}; keeping original")
            return CapabilityResult(content)
        return CapabilityResult(cleaned)
