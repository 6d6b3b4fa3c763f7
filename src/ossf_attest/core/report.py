"""Report aggregation and serialisation."""

import json
import logging
import platform
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional

from .config import AttestSettings
from .input_validator import safe_write_file
from .types import AttestationReport, ExecutionResult, Summary

logger = logging.getLogger(__name__)

REPORT_JSON = "ossf-attestation-report.json"
REPORT_TEXT = "ossf-attestation-summary.txt"

EXIT_OK = 0
EXIT_TOOL_FAILURE = 1


def _platform_os() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform.startswith("win"):
        return "windows"
    return sys.platform


def aggregate(
    results: Mapping[str, ExecutionResult],
    settings: AttestSettings,
    timestamp: Optional[datetime] = None,
) -> AttestationReport:
    """Build the attestation report; the summary is derived from ``results``."""
    return AttestationReport(
        project_name=settings.project_name,
        project_version=settings.project_version,
        timestamp=timestamp or datetime.now(timezone.utc),
        python_version=platform.python_version(),
        os=_platform_os(),
        arch=platform.machine().lower() or "unknown",
        results=dict(results),
        summary=Summary.from_results(results),
    )


def render_text_summary(report: AttestationReport) -> str:
    lines = [
        "OSSF Security Baseline Attestation Report",
        "==========================================",
        "",
        f"Project: {report.project_name}",
        f"Version: {report.project_version}",
        f"Timestamp: {report.timestamp.isoformat()}",
        f"Python Version: {report.python_version}",
        f"Platform: {report.os}/{report.arch}",
        "",
        "Summary:",
        f"  Total Tools: {report.summary.total_tools}",
        f"  Successful: {report.summary.success_count}",
        f"  Failed: {report.summary.failure_count}",
        f"  Total Duration: {report.summary.total_duration:.2f}s",
        "",
        "Tool Results:",
    ]
    for name in sorted(report.results):
        result = report.results[name]
        status = "✅ PASS" if result.success else "❌ FAIL"
        lines.append(f"  {name}: {status} (Duration: {result.duration:.2f}s)")
        if result.version:
            lines.append(f"    Version: {result.version}")
        if result.output_file:
            lines.append(f"    Output: {result.output_file}")
        if not result.success and result.error:
            lines.append(f"    Error: {result.error}")
        if result.persistence_error:
            lines.append(f"    Write Error: {result.persistence_error}")
        lines.append("")
    return "\n".join(lines) + "\n"


def write_report(report: AttestationReport, output_dir: str) -> tuple[Path, Path]:
    """Write the JSON report and text digest; raises PersistenceError."""
    json_path = safe_write_file(
        output_dir, REPORT_JSON, json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
    )
    logger.info(f"JSON report saved to: {json_path}")
    text_path = safe_write_file(output_dir, REPORT_TEXT, render_text_summary(report))
    logger.info(f"Text summary saved to: {text_path}")
    return json_path, text_path


def exit_code(report: AttestationReport) -> int:
    return EXIT_TOOL_FAILURE if report.summary.failure_count > 0 else EXIT_OK
