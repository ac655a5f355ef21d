"""
Guardian Scan Report Generation.

Output surface of the scan pipeline: everything that happens to a finished
``BatchReport`` lives here.

Functions:
    summarize: Count files, issues and outcomes of a batch
    save_results: Save scan results as JSON and Markdown
    generate_markdown_report: Generate human-readable Markdown report
    print_summary: Print scan summary to console
    cleaned_file_name: ``CLEANED_`` export name for a scanned file
    export_cleaned: Write one cleaned file to disk
    export_bundle: Write every cleaned file into a zip archive
"""

import json
import logging
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from models import AnalysisResult, BatchReport, OutcomeStatus

logger = logging.getLogger(__name__)

CLEANED_PREFIX = "CLEANED_"

_LEVEL_EMOJI = {"CRITICAL": "🔴", "HIGH": "🟠", "MEDIUM": "🟡", "LOW": "🟢"}


def summarize(report: BatchReport) -> dict[str, Any]:
    """Aggregate counts for a batch.

    Args:
        report: The batch report to summarize

    Returns:
        Dictionary with file, issue, level and outcome counts
    """
    results = report.results
    by_level = {level: 0 for level in _LEVEL_EMOJI}
    for result in results:
        for issue in result.issues:
            by_level[issue.threat_level.value] += 1

    return {
        "mode": report.mode.value,
        "files": len(report.outcomes),
        "scanned": len(results),
        "safe": sum(1 for r in results if r.is_safe),
        "cleaned": sum(1 for r in results if r.was_cleaned),
        "total_issues": sum(len(r.issues) for r in results),
        "by_threat_level": by_level,
        "by_outcome": {status.value: report.count(status) for status in OutcomeStatus},
    }


def _report_payload(report: BatchReport, duration_seconds: float) -> dict[str, Any]:
    return {
        "generated": datetime.now().isoformat(timespec="seconds"),
        "durationSeconds": round(duration_seconds, 2),
        "summary": summarize(report),
        "results": [r.to_dict() for r in report.results],
        "dropped": [{"fileName": o.name, "reason": o.reason} for o in report.dropped],
    }


def save_results(report: BatchReport, output_dir: str, duration_seconds: float = 0.0) -> dict[str, Path]:
    """Save results in JSON and Markdown formats.

    Args:
        report: The batch report to save
        output_dir: Directory to save results to
        duration_seconds: Wall-clock time of the scan

    Returns:
        Mapping of format name to written path
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")

    # Save JSON
    json_file = output_path / f"guardian-scan-{timestamp}.json"
    with open(json_file, "w", encoding="utf-8") as f:
        json.dump(_report_payload(report, duration_seconds), f, indent=2, default=str)
    logger.info("💾 JSON results: %s", json_file)

    # Save Markdown report
    md_file = output_path / f"guardian-scan-{timestamp}.md"
    with open(md_file, "w", encoding="utf-8") as f:
        f.write(generate_markdown_report(report, duration_seconds))
    logger.info("💾 Markdown report: %s", md_file)

    return {"json": json_file, "markdown": md_file}


def generate_markdown_report(report: BatchReport, duration_seconds: float = 0.0) -> str:
    """Generate human-readable Markdown report.

    Args:
        report: The batch report to format
        duration_seconds: Wall-clock time of the scan

    Returns:
        Markdown-formatted report string
    """
    summary = summarize(report)
    out = []

    out.append("# 🛡️ Guardian Script Scan Report\n")
    out.append(f"**Generated**: {datetime.now().isoformat(timespec='seconds')}\n")
    out.append(f"**Mode**: {summary['mode']}\n")
    out.append(f"**Duration**: {duration_seconds:.1f}s\n")
    out.append("\n---\n\n")

    out.append("## 📊 Summary\n\n")
    out.append(f"**Files**: {summary['files']} ({summary['safe']} safe, {summary['cleaned']} cleaned)\n\n")
    out.append(f"**Total Issues**: {summary['total_issues']}\n\n")

    out.append("### By Threat Level\n\n")
    for level, count in summary["by_threat_level"].items():
        out.append(f"- {_LEVEL_EMOJI[level]} **{level.title()}**: {count}\n")

    if report.dropped:
        out.append("\n### Dropped Files\n\n")
        for outcome in report.dropped:
            out.append(f"- `{outcome.name}`: {outcome.reason}\n")

    out.append("\n---\n\n")

    for result in report.results:
        verdict = "✅ SAFE" if result.is_safe else f"⚠️ {len(result.issues)} issue(s)"
        out.append(f"## `{result.file_name}` (score {result.score}/100, {verdict})\n\n")

        if result.ai_explanation:
            out.append(f"> {result.ai_explanation}\n\n")

        for warning in result.warnings:
            out.append(f"*Degraded*: {warning}\n\n")

        for issue in result.issues:
            location = f"line {issue.line}" if issue.line else "line unknown"
            out.append(
                f"- {_LEVEL_EMOJI[issue.threat_level.value]} **{issue.type.value}** "
                f"({location}): {issue.description}\n"
            )
            out.append(f"  `{issue.code_snippet[:120]}`\n")

        out.append("\n---\n\n")

    return "".join(out)


def print_summary(report: BatchReport, duration_seconds: float = 0.0) -> None:
    """Print scan summary to console.

    Args:
        report: The batch report to summarize
        duration_seconds: Wall-clock time of the scan
    """
    summary = summarize(report)
    levels = summary["by_threat_level"]
    outcomes = summary["by_outcome"]

    print("\n" + "=" * 80)
    print("🛡️  GUARDIAN SCRIPT SCAN - FINAL RESULTS")
    print("=" * 80)
    print(f"⚙️  Mode: {summary['mode']}")
    print(f"⏱️  Total Duration: {duration_seconds:.1f}s")
    print(f"📁 Files: {summary['files']} ({summary['safe']} safe, {summary['cleaned']} cleaned)")
    print()
    print("📊 Issues by Threat Level:")
    print(f"   🔴 Critical: {levels['CRITICAL']}")
    print(f"   🟠 High:     {levels['HIGH']}")
    print(f"   🟡 Medium:   {levels['MEDIUM']}")
    print(f"   🟢 Low:      {levels['LOW']}")
    print(f"   📈 Total:    {summary['total_issues']}")
    print()
    print("🔧 Outcomes:")
    for status, count in outcomes.items():
        print(f"   {status}: {count}")
    print()
    for result in report.results:
        marker = "✅" if result.is_safe else ("🔴" if result.critical_count else "🟠")
        print(f"   {marker} {result.score:3d}/100  {result.file_name}")
    print("=" * 80)


def cleaned_file_name(file_name: str) -> str:
    """Export name for a scanned file: ``CLEANED_`` plus the path flattened."""
    return CLEANED_PREFIX + file_name.replace("\\", "/").replace("/", "_")


def export_cleaned(result: AnalysisResult, output_dir: str) -> Path:
    """Write the cleaned content of one file.

    Args:
        result: Analysis result to export
        output_dir: Destination directory (created if missing)

    Returns:
        Path of the written file, named by ``cleaned_file_name`` so entries
        sharing a basename in different folders stay distinct
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    target = output_path / cleaned_file_name(result.file_name)
    target.write_text(result.cleaned_content, encoding="utf-8")
    logger.info("💾 Cleaned file: %s", target)
    return target


def export_bundle(results: Iterable[AnalysisResult], archive_path: str) -> Path:
    """Write every cleaned file into one zip archive.

    Args:
        results: Analysis results to bundle, in order
        archive_path: Path of the zip file to create

    Returns:
        Path of the written archive
    """
    target = Path(archive_path)
    target.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for result in results:
            zf.writestr(cleaned_file_name(result.file_name), result.cleaned_content)
            count += 1

    logger.info("💾 Cleaned bundle (%d file(s)): %s", count, target)
    return target


__all__ = [
    "CLEANED_PREFIX",
    "summarize",
    "save_results",
    "generate_markdown_report",
    "print_summary",
    "cleaned_file_name",
    "export_cleaned",
    "export_bundle",
]
