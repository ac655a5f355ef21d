#!/usr/bin/env python3
"""
Tests for the audit adapter: prompt building per mode, structured parsing,
retries and fallbacks.
"""

import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from audit_adapter import (
    AUDIT_FALLBACK_SUMMARY,
    EXPLAIN_EMPTY,
    EXPLAIN_FALLBACK,
    AuditAdapter,
)
from exceptions import CapabilityUnavailableError
from models import ScanMode
from orchestrator.llm_manager import TIER_DEEP, TIER_FAST
from resilient_caller import RetryPolicy

NO_WAIT = RetryPolicy(max_retries=2, initial_delay=0)

VALID_RESPONSE = json.dumps(
    {
        "concerns": [
            {
                "type": "backdoor",
                "description": "Remote loader",
                "threatLevel": "critical",
                "snippet": "PerformHttpRequest(url, load)",
            }
        ],
        "summary": "One remote loader found.",
    }
)


def _adapter(responses=None, side_effect=None, config=None):
    llm = AsyncMock()
    if side_effect is not None:
        llm.complete.side_effect = side_effect
    else:
        llm.complete.return_value = responses
    return AuditAdapter(llm, config=config, retry_policy=NO_WAIT), llm


class TestModeSelection:
    def setup_method(self):
        self.adapter, _ = _adapter("")

    @pytest.mark.parametrize(
        "mode, tier",
        [(ScanMode.TURBO, TIER_FAST), (ScanMode.STANDARD, TIER_FAST), (ScanMode.SUPER_PRO, TIER_DEEP)],
    )
    def test_tier_for(self, mode, tier):
        assert AuditAdapter.tier_for(mode) == tier

    def test_turbo_disables_thinking(self):
        adapter, _ = _adapter("", config={"thinking_budget_turbo": 999})
        assert adapter.thinking_budget_for(ScanMode.TURBO) == 0

    def test_thinking_budgets(self):
        assert self.adapter.thinking_budget_for(ScanMode.STANDARD) == 1024
        assert self.adapter.thinking_budget_for(ScanMode.SUPER_PRO) == 4096

    def test_thinking_budget_from_config(self):
        adapter, _ = _adapter("", config={"thinking_budget_super_pro": 8192})
        assert adapter.thinking_budget_for(ScanMode.SUPER_PRO) == 8192

    def test_super_pro_focus(self):
        prompt = self.adapter.build_audit_prompt("a.lua", "x", ScanMode.SUPER_PRO)
        assert "ELITE forensic audit" in prompt
        assert "[MODE: SUPER_PRO]" in prompt

    def test_signature_focus(self):
        prompt = self.adapter.build_audit_prompt("a.lua", "x", ScanMode.TURBO)
        assert "Blum panels" in prompt
        assert "ELITE" not in prompt

    def test_prompt_truncates_content(self):
        content = "A" * 15000 + "TAIL_MARKER"
        prompt = self.adapter.build_audit_prompt("a.lua", content, ScanMode.STANDARD)
        assert "A" * 15000 in prompt
        assert "TAIL_MARKER" not in prompt

    def test_prompt_lists_types_and_schema(self):
        prompt = self.adapter.build_audit_prompt("res.zip/client.lua", "x", ScanMode.STANDARD)
        assert '"res.zip/client.lua"' in prompt
        assert "SLEEPER_THREAT" in prompt
        assert "threatLevel" in prompt


class TestAudit:
    def test_valid_response(self):
        adapter, llm = _adapter(VALID_RESPONSE)

        result = asyncio.run(adapter.audit("a.lua", "code", ScanMode.SUPER_PRO))

        assert result.ok
        assert result.value.summary == "One remote loader found."
        concern = result.value.concerns[0]
        assert concern.type == "BACKDOOR"
        assert concern.threat_level == "CRITICAL"
        kwargs = llm.complete.call_args.kwargs
        assert kwargs["tier"] == TIER_DEEP
        assert kwargs["thinking_budget"] == 4096

    def test_response_wrapped_in_fence(self):
        adapter, _ = _adapter(f"```json\n{VALID_RESPONSE}\n```")
        result = asyncio.run(adapter.audit("a.lua", "code", ScanMode.STANDARD))
        assert result.ok
        assert len(result.value.concerns) == 1

    def test_empty_response_means_clear(self):
        adapter, _ = _adapter("")
        result = asyncio.run(adapter.audit("a.lua", "code", ScanMode.STANDARD))
        assert result.ok
        assert result.value.concerns == []
        assert result.value.summary == "Clear."

    def test_schema_violation_falls_back_without_retry(self):
        adapter, llm = _adapter('{"concerns": "nope"}')

        result = asyncio.run(adapter.audit("a.lua", "code", ScanMode.STANDARD))

        assert not result.ok
        assert "schema validation failed" in result.error
        assert result.value.summary == AUDIT_FALLBACK_SUMMARY
        assert result.value.concerns == []
        assert llm.complete.await_count == 1

    def test_transient_failure_is_retried(self):
        adapter, llm = _adapter(side_effect=[Exception("Rpc failed"), VALID_RESPONSE])

        result = asyncio.run(adapter.audit("a.lua", "code", ScanMode.TURBO))

        assert result.ok
        assert llm.complete.await_count == 2

    def test_exhausted_retries_fall_back(self):
        adapter, llm = _adapter(side_effect=Exception("Service unavailable"))

        result = asyncio.run(adapter.audit("a.lua", "code", ScanMode.TURBO))

        assert not result.ok
        assert result.value.summary == AUDIT_FALLBACK_SUMMARY
        assert llm.complete.await_count == 3

    def test_unconfigured_provider_falls_back(self):
        adapter, llm = _adapter(side_effect=CapabilityUnavailableError("No AI provider configured"))

        result = asyncio.run(adapter.audit("a.lua", "code", ScanMode.STANDARD))

        assert not result.ok
        assert "CapabilityUnavailableError" in result.error
        assert llm.complete.await_count == 1


class TestExplain:
    def test_explain_returns_text(self):
        adapter, llm = _adapter("  Persistence via registry hook.  ")

        result = asyncio.run(adapter.explain("a.lua", "debug.getregistry()"))

        assert result.ok
        assert result.value == "Persistence via registry hook."
        assert llm.complete.call_args.kwargs["tier"] == TIER_FAST

    def test_explain_truncates_snippet(self):
        adapter, llm = _adapter("ok")
        asyncio.run(adapter.explain("a.lua", "B" * 2500 + "TAIL_MARKER"))
        prompt = llm.complete.call_args.args[0]
        assert "B" * 2500 in prompt
        assert "TAIL_MARKER" not in prompt

    def test_explain_empty_response(self):
        adapter, _ = _adapter("   ")
        result = asyncio.run(adapter.explain("a.lua", "x"))
        assert result.ok
        assert result.value == EXPLAIN_EMPTY

    def test_explain_failure(self):
        adapter, _ = _adapter(side_effect=Exception("Invalid API key"))
        result = asyncio.run(adapter.explain("a.lua", "x"))
        assert not result.ok
        assert result.value == EXPLAIN_FALLBACK

    def test_explain_unusable_response(self):
        adapter, _ = _adapter(None)
        result = asyncio.run(adapter.explain("a.lua", "x"))
        assert not result.ok
        assert result.value == EXPLAIN_FALLBACK
