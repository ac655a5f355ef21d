"""
Tests for the guardian CLI: scan exit codes, output files, exports and
pipeline wiring. No test reaches a real AI provider.
"""

import json
import os
import sys
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

from guardian_cli import EXIT_CRITICAL, EXIT_INPUT_ERROR, EXIT_OK, build_analyzer, build_parser, main, resolve_mode
from models import ScanMode


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Empty working directory with no provider keys in the environment."""
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ, {}, clear=True):
        yield tmp_path


class TestParser:
    def test_scan_args(self):
        args = build_parser().parse_args(["scan", "a.lua", "b.zip", "--mode", "super-pro", "--bundle", "-q"])
        assert args.command == "scan"
        assert args.paths == ["a.lua", "b.zip"]
        assert args.mode == "super-pro"
        assert args.bundle is True
        assert args.quiet is True

    def test_explain_args(self):
        args = build_parser().parse_args(["explain", "a.lua", "--start", "3", "--end", "9"])
        assert (args.file, args.start, args.end) == ("a.lua", 3, 9)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestBuildAnalyzer:
    def test_ai_disabled(self):
        analyzer = build_analyzer({"enable_ai_audit": False, "enable_remediation": False})
        assert analyzer.auditor is None
        assert analyzer.remediator is None

    def test_no_provider(self):
        analyzer = build_analyzer({"ai_provider": "auto"})
        assert analyzer.auditor is None
        assert analyzer.remediator is None

    def test_provider_configured(self):
        analyzer = build_analyzer({"anthropic_api_key": "sk-test"})
        assert analyzer.auditor is not None
        assert analyzer.remediator is not None

    def test_remediation_only_disabled(self):
        analyzer = build_analyzer({"anthropic_api_key": "sk-test", "enable_remediation": False})
        assert analyzer.auditor is not None
        assert analyzer.remediator is None


class TestScanCommand:
    def test_clean_file_exit_ok(self, workspace):
        (workspace / "ok.lua").write_text("print('hello')")
        assert main(["scan", "ok.lua", "--no-ai", "-q"]) == EXIT_OK
        assert list((workspace / ".guardian" / "results").glob("guardian-scan-*.json"))

    def test_critical_file_exit_code(self, workspace):
        (workspace / "bad.lua").write_text("os.execute('rm -rf /')")
        assert main(["scan", "bad.lua", "--no-ai", "-q"]) == EXIT_CRITICAL

    def test_missing_input_exit_code(self, workspace):
        assert main(["scan", "missing.lua", "-q"]) == EXIT_INPUT_ERROR

    def test_corrupt_archive_exit_code(self, workspace):
        (workspace / "bad.zip").write_bytes(b"not a zip")
        assert main(["scan", "bad.zip", "-q"]) == EXIT_INPUT_ERROR

    def test_json_output(self, workspace, capsys):
        (workspace / "bad.lua").write_text("local p = string.char(72, 105)")
        main(["scan", "bad.lua", "--no-ai", "--json", "--mode", "turbo", "-q"])
        payload = json.loads(capsys.readouterr().out)
        assert payload["summary"]["mode"] == "TURBO"
        assert payload["results"][0]["fileName"] == "bad.lua"
        assert payload["results"][0]["issues"][0]["type"] == "CIPHER"

    def test_bundle_and_output_dir(self, workspace):
        (workspace / "a.lua").write_text("print(1)")
        out = workspace / "out"
        main(["scan", "a.lua", "--no-ai", "--bundle", "--output-dir", str(out), "-q"])
        with zipfile.ZipFile(out / "guardian-cleaned.zip") as zf:
            assert zf.namelist() == ["CLEANED_a.lua"]

    def test_unknown_mode_from_env_falls_back(self, workspace, capsys):
        (workspace / "a.lua").write_text("print(1)")
        os.environ["GUARDIAN_MODE"] = "fast"

        assert main(["scan", "a.lua", "--ai-provider", "none", "--json", "-q"]) == EXIT_OK
        assert json.loads(capsys.readouterr().out)["summary"]["mode"] == "STANDARD"

    def test_nothing_to_scan(self, workspace):
        (workspace / "notes.txt").write_text("hi")
        assert main(["scan", "notes.txt", "-q"]) == EXIT_OK


class TestExplainCommand:
    def test_without_provider_prints_fallback(self, workspace, capsys):
        (workspace / "a.lua").write_text("line1\nline2\nline3\n")
        assert main(["explain", "a.lua", "--start", "2", "--end", "2", "-q"]) == EXIT_OK
        assert "Expert layer unreachable." in capsys.readouterr().out

    def test_missing_file(self, workspace):
        assert main(["explain", "missing.lua", "-q"]) == EXIT_INPUT_ERROR


class TestResolveMode:
    def test_known_modes(self):
        assert resolve_mode({"default_mode": "super-pro"}) is ScanMode.SUPER_PRO
        assert resolve_mode({}) is ScanMode.STANDARD

    def test_unknown_mode(self):
        assert resolve_mode({"default_mode": "FAST"}) is ScanMode.STANDARD
