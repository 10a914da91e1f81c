"""
Report Sinks

Receivers of the finished result list. Display, sharing and export live with
the caller; these sinks cover logging, tests and the command line.
"""

import logging
from typing import List, Optional, Protocol, TextIO
import sys

from .models import CheckResult, CheckStatus, CheckSummary

logger = logging.getLogger(__name__)

STATUS_ICONS = {
    CheckStatus.ALLOTTED: "✅",
    CheckStatus.NOT_ALLOTTED: "❌",
    CheckStatus.CAPTCHA_ERROR: "🔁",
    CheckStatus.ERROR: "⚠️",
    CheckStatus.SKIPPED: "⏭️",
}


class ReportSink(Protocol):
    def publish(self, results: List[CheckResult], summary: CheckSummary) -> None:
        ...


class LoggingReportSink:
    """Writes the summary line and one line per failure to the log."""

    def publish(self, results: List[CheckResult], summary: CheckSummary) -> None:
        logger.info(
            f"📊 Bulk check complete: {summary.allotted} allotted, {summary.not_allotted} not allotted, "
            f"{summary.skipped} skipped, {summary.captcha_errors} captcha errors, {summary.errors} errors "
            f"({summary.total_shares} shares)"
        )
        for result in results:
            if result.status in (CheckStatus.ERROR, CheckStatus.CAPTCHA_ERROR):
                logger.warning(f"   {result.identifier}: {result.status.value} - {result.error_detail}")


class MemoryReportSink:
    """Keeps the published reports in memory."""

    def __init__(self):
        self.reports: List[tuple] = []

    def publish(self, results: List[CheckResult], summary: CheckSummary) -> None:
        self.reports.append((list(results), summary))

    @property
    def last_results(self) -> Optional[List[CheckResult]]:
        return self.reports[-1][0] if self.reports else None

    @property
    def last_summary(self) -> Optional[CheckSummary]:
        return self.reports[-1][1] if self.reports else None


class ConsoleReportSink:
    """Prints a results table for the command line."""

    def __init__(self, stream: TextIO = None):
        self.stream = stream or sys.stdout

    def publish(self, results: List[CheckResult], summary: CheckSummary) -> None:
        write = self.stream.write
        write("\n" + "=" * 70 + "\n")
        write("IPO ALLOTMENT RESULTS\n")
        write("=" * 70 + "\n")
        for result in results:
            icon = STATUS_ICONS.get(result.status, "?")
            name = result.label or "-"
            line = f"{icon} {result.identifier}  {name:<20} {result.status.value:<14}"
            if result.status == CheckStatus.ALLOTTED:
                line += f" {result.share_quantity} shares"
            elif result.error_detail:
                line += f" {result.error_detail}"
            write(line + "\n")
        write("-" * 70 + "\n")
        write(
            f"Allotted: {summary.allotted} | Not allotted: {summary.not_allotted} | "
            f"Skipped: {summary.skipped} | Captcha errors: {summary.captcha_errors} | "
            f"Errors: {summary.errors} | Total shares: {summary.total_shares}\n"
        )
