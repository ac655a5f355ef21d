#!/usr/bin/env python3
"""
Guardian command-line interface.

Commands:
    scan     Scan Lua scripts, directories and zip bundles
    explain  Expert AI analysis of one file or line range

Exit codes (scan):
    0  no CRITICAL issue found
    1  at least one CRITICAL issue found
    2  an input file or archive could not be read
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from audit_adapter import AuditAdapter
from batch_scheduler import BatchScheduler
from config_loader import build_unified_config, list_available_profiles, validate_config
from exceptions import InputReadError
from file_analyzer import FileAnalyzer
from models import ScanMode
from orchestrator.llm_manager import LLMManager
from remediation_adapter import RemediationAdapter
from report import export_bundle, export_cleaned, print_summary, save_results, summarize
from signature_engine import SignatureEngine
from task_collector import collect_tasks

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CRITICAL = 1
EXIT_INPUT_ERROR = 2

BUNDLE_NAME = "guardian-cleaned.zip"


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Root logging setup: DEBUG with -v, WARNING with -q, INFO otherwise."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guardian",
        description="Guardian - FiveM/Lua malicious script scanner with AI audit and auto-repair",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--profile", help=f"Configuration profile ({', '.join(list_available_profiles()) or 'none found'})")
    common.add_argument("--ai-provider", dest="provider", choices=["auto", "anthropic", "openai", "ollama", "none"],
                        help="AI provider (default: auto-detect from API keys)")
    verbosity = common.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    subparsers = parser.add_subparsers(dest="command", help="Command")
    subparsers.required = True

    # Scan
    scan_parser = subparsers.add_parser("scan", parents=[common], help="Scan scripts, directories and zip bundles")
    scan_parser.add_argument("paths", nargs="+", metavar="PATH", help="Files, directories or .zip archives")
    scan_parser.add_argument("--mode", choices=["turbo", "standard", "super-pro"],
                             help="Scan mode (default: from config, STANDARD)")
    scan_parser.add_argument("--output-dir", help="Output directory for results (default: .guardian/results)")
    scan_parser.add_argument("--export-cleaned", action="store_true", help="Write CLEANED_<file> for every repaired file")
    scan_parser.add_argument("--bundle", action="store_true", help=f"Write every cleaned file into {BUNDLE_NAME}")
    scan_parser.add_argument("--json", action="store_true", help="Print JSON results to stdout instead of the summary")
    scan_parser.add_argument("--no-ai", action="store_true", help="Signature heuristics only")
    scan_parser.add_argument("--no-remediation", action="store_true", help="Skip AI auto-repair")

    # Explain
    explain_parser = subparsers.add_parser("explain", parents=[common], help="Expert analysis of a file region")
    explain_parser.add_argument("file", help="Script to analyse")
    explain_parser.add_argument("--start", type=int, default=1, help="First line (1-based, default: 1)")
    explain_parser.add_argument("--end", type=int, help="Last line, inclusive (default: end of file)")

    return parser


def build_analyzer(config: dict) -> FileAnalyzer:
    """Wire the per-file pipeline from configuration.

    AI layers are attached only when enabled and a provider is configured;
    otherwise the scan runs on signature heuristics alone.
    """
    engine = SignatureEngine()
    enable_audit = bool(config.get("enable_ai_audit", True))
    enable_remediation = bool(config.get("enable_remediation", True))
    if not (enable_audit or enable_remediation):
        logger.info("AI layers disabled; running signature heuristics only")
        return FileAnalyzer(engine=engine)

    llm = LLMManager(config)
    provider = llm.detect_provider()
    if provider is None:
        logger.warning("⚠️  No AI provider available; running signature heuristics only")
        return FileAnalyzer(engine=engine)

    logger.info("AI provider: %s (audit=%s, remediation=%s)", provider, enable_audit, enable_remediation)
    return FileAnalyzer(
        engine=engine,
        auditor=AuditAdapter(llm, config) if enable_audit else None,
        remediator=RemediationAdapter(llm, config) if enable_remediation else None,
    )


def resolve_mode(config: dict) -> ScanMode:
    """Scan mode from config; an unknown value falls back to STANDARD."""
    value = config.get("default_mode") or ScanMode.STANDARD.value
    try:
        return ScanMode.parse(value)
    except ValueError:
        logger.warning("⚠️  Unknown scan mode %r; using %s", value, ScanMode.STANDARD.value)
        return ScanMode.STANDARD


async def run_scan(args: argparse.Namespace, config: dict) -> int:
    """Collect, scan, report and export; returns the process exit code."""
    try:
        tasks = collect_tasks(
            args.paths,
            source_extensions=config.get("source_extensions"),
            archive_extensions=config.get("archive_extensions"),
            max_file_size=config.get("max_file_size") or None,
        )
    except InputReadError as e:
        logger.error("❌ %s", e)
        return EXIT_INPUT_ERROR

    if not tasks:
        logger.warning("No scannable scripts found in: %s", ", ".join(args.paths))
        return EXIT_OK

    mode = resolve_mode(config)
    scheduler = BatchScheduler(build_analyzer(config), config)

    started = time.monotonic()
    report = await scheduler.run(tasks, mode)
    duration = time.monotonic() - started

    output_dir = config.get("output_dir", ".guardian/results")
    save_results(report, output_dir, duration)

    if args.json:
        payload = {
            "summary": summarize(report),
            "results": [r.to_dict() for r in report.results],
            "dropped": [{"fileName": o.name, "reason": o.reason} for o in report.dropped],
        }
        print(json.dumps(payload, indent=2))
    else:
        print_summary(report, duration)

    if args.export_cleaned:
        cleaned_dir = Path(output_dir) / "cleaned"
        for result in report.results:
            if result.was_cleaned:
                export_cleaned(result, str(cleaned_dir))
    if args.bundle:
        export_bundle(report.results, str(Path(output_dir) / BUNDLE_NAME))

    if any(r.critical_count for r in report.results):
        return EXIT_CRITICAL
    return EXIT_OK


async def run_explain(args: argparse.Namespace, config: dict) -> int:
    """Print the expert analysis of ``args.file`` lines start..end."""
    path = Path(args.file)
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        logger.error("❌ Cannot read %s: %s", path, e)
        return EXIT_INPUT_ERROR

    start = max(1, args.start)
    end = args.end if args.end is not None else len(lines)
    snippet = "\n".join(lines[start - 1:end])

    auditor = AuditAdapter(LLMManager(config), config)
    analysis = await auditor.explain(path.name, snippet)
    if not analysis.ok:
        logger.warning("⚠️  Expert analysis degraded: %s", analysis.error)
    print(analysis.value)
    return EXIT_OK


def main(argv: Optional[list] = None) -> int:
    """CLI entry point for guardian"""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, quiet=args.quiet)

    if getattr(args, "mode", None):
        args.mode = ScanMode.parse(args.mode).value
    config = build_unified_config(cli_args=args)
    for problem in validate_config(config):
        logger.warning(problem)

    if args.command == "scan":
        return asyncio.run(run_scan(args, config))
    if args.command == "explain":
        return asyncio.run(run_explain(args, config))

    parser.print_help()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
