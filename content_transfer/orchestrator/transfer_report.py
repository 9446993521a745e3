"""
Transfer report generator.

Aggregates the statistics of an export or import run and formats them for
console display, JSON export and a per-category CSV summary.
"""

import csv
import json
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..logger import format_duration

logger = logging.getLogger(__name__)

OUTCOMES = ('exported', 'created', 'updated', 'skipped', 'removed', 'failed')


class TransferReport:
    """Builds reports from the statistics of one transfer run."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def generate_report(
        self,
        operation: str,
        stats: Dict[str, Dict[str, int]],
        durations: Dict[str, float],
        errors: Optional[List[Dict[str, Any]]] = None,
        orphans: Optional[Dict[str, List[str]]] = None,
        verification: Optional[Dict[str, Any]] = None,
        export_info: Optional[Dict[str, Any]] = None,
        dry_run: bool = False
    ) -> Dict[str, Any]:
        """
        Generate a transfer report.

        Args:
            operation: 'export' or 'import'
            stats: Outcome counts per record category
            durations: Seconds spent per phase
            errors: Errors recorded during the run
            orphans: Orphaned nodes per missing parent
            verification: Verify pass report
            export_info: Metadata read from the index record
            dry_run: Whether the destination was left untouched

        Returns:
            Report dictionary
        """
        errors = errors or []
        report = {
            'operation': operation,
            'dry_run': dry_run,
            'summary': self._build_summary(stats, durations, errors),
            'categories': self._build_category_breakdown(stats),
            'phases': {
                phase: {'duration_seconds': seconds, 'duration_formatted': format_duration(seconds)}
                for phase, seconds in durations.items()
            },
            'orphans': orphans or {},
            'verification': self._build_verification(verification),
            'errors': list(errors),
            'export_info': export_info or {},
            'timestamp': datetime.now().isoformat(),
        }
        self.logger.info(
            f"Report generated: {report['summary']['total_records']} records, "
            f"{report['summary']['total_errors']} errors"
        )
        return report

    def _build_summary(
        self,
        stats: Dict[str, Dict[str, int]],
        durations: Dict[str, float],
        errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        totals = {outcome: 0 for outcome in OUTCOMES}
        for counts in stats.values():
            for outcome in OUTCOMES:
                totals[outcome] += counts.get(outcome, 0)
        duration = sum(durations.values())
        total_records = sum(totals.values())
        summary = dict(totals)
        summary.update({
            'total_records': total_records,
            'total_errors': len(errors) or totals['failed'],
            'duration_seconds': duration,
            'duration_formatted': format_duration(duration),
        })
        if total_records:
            summary['success_rate'] = (total_records - totals['failed']) / total_records
        else:
            summary['success_rate'] = 1.0
        return summary

    def _build_category_breakdown(self, stats: Dict[str, Dict[str, int]]) -> Dict[str, Dict[str, int]]:
        """Categories that saw at least one record."""
        return {
            category: dict(counts) for category, counts in stats.items()
            if any(counts.get(outcome, 0) for outcome in OUTCOMES)
        }

    def _build_verification(self, verification: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if verification is None:
            return {'enabled': False}
        issues = verification.get('issues', [])
        removed = [issue for issue in issues if issue.get('point')]
        return {
            'enabled': True,
            'verified': verification.get('verified', 0),
            'total_issues': len(issues),
            'references_removed': len(removed),
            'issues': issues,
        }

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """
        Render a report as console text, one block per non-empty part.

        Args:
            report: Dictionary built by `generate_report`

        Returns:
            Multi-line string framed by `=` rules
        """
        rule = "=" * 60
        title = f"{report.get('operation', 'transfer').upper()} REPORT"
        if report.get('dry_run'):
            title += " (DRY RUN)"

        lines = [rule, title, rule, ""]
        for block in (
            self._summary_lines(report.get('summary', {})),
            self._category_lines(report.get('categories', {})),
            self._phase_lines(report.get('phases', {})),
            self._verification_lines(report.get('verification', {})),
            self._orphan_lines(report.get('orphans', {})),
            self._error_lines(report.get('errors', [])),
        ):
            if block:
                lines.extend(block)
                lines.append("")
        lines.append(rule)
        return "\n".join(lines)

    @staticmethod
    def _summary_lines(summary: Dict[str, Any]) -> List[str]:
        lines = ["Summary:", f"  Records:     {summary.get('total_records', 0)}"]
        lines += [f"  {outcome.capitalize() + ':':<13}{summary[outcome]}" for outcome in OUTCOMES if summary.get(outcome)]
        lines.append(f"  Duration:    {summary.get('duration_formatted', '0s')}")
        lines.append(f"  Success:     {summary.get('success_rate', 1.0) * 100:.1f}%")
        return lines

    @staticmethod
    def _category_lines(categories: Dict[str, Dict[str, int]]) -> List[str]:
        if not categories:
            return []
        lines = ["Category Breakdown:", "-" * 60]
        for category, counts in categories.items():
            outcomes = ', '.join(f"{counts[outcome]} {outcome}" for outcome in OUTCOMES if counts.get(outcome))
            lines.append(f"  {category.replace('_', ' ').capitalize()}: {outcomes}")
        return lines

    @staticmethod
    def _phase_lines(phases: Dict[str, Dict[str, Any]]) -> List[str]:
        if not phases:
            return []
        return ["Phases:"] + [f"  {phase}: {timing['duration_formatted']}" for phase, timing in phases.items()]

    @staticmethod
    def _verification_lines(verification: Dict[str, Any]) -> List[str]:
        if not verification.get('enabled'):
            return []
        lines = [
            "Verification:",
            "-" * 60,
            f"  Objects:     {verification.get('verified', 0)} verified",
            f"  Issues:      {verification.get('total_issues', 0)}",
        ]
        if verification.get('references_removed'):
            lines.append(f"  WARNING:     {verification['references_removed']} references removed")
        return lines

    @staticmethod
    def _orphan_lines(orphans: Dict[str, List[str]]) -> List[str]:
        if not orphans:
            return []
        total = sum(len(children) for children in orphans.values())
        lines = [f"Orphaned Nodes: {total} under {len(orphans)} missing parent(s)"]
        # First five parents only
        lines += [f"  {parent_uuid}: {', '.join(children)}" for parent_uuid, children in list(orphans.items())[:5]]
        return lines

    @staticmethod
    def _error_lines(errors: List[Dict[str, Any]]) -> List[str]:
        if not errors:
            return []
        by_phase = Counter(error.get('phase', 'unknown') for error in errors)
        lines = ["Error Summary:", f"  Total errors: {len(errors)}"]
        lines += [f"  {phase}: {count} errors" for phase, count in sorted(by_phase.items())]
        return lines

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """Write the full report as JSON, a write failure is logged and not raised."""
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            self.logger.error(f"Could not write report to {filepath}: {e}")
        else:
            self.logger.info(f"Report written to {filepath}")

    def export_csv_summary(self, report: Dict[str, Any], filepath: str) -> None:
        """Write one row of outcome counts per record category."""
        try:
            with open(filepath, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(('category',) + OUTCOMES)
                writer.writerows(
                    [category] + [counts.get(outcome, 0) for outcome in OUTCOMES]
                    for category, counts in report.get('categories', {}).items()
                )
        except OSError as e:
            self.logger.error(f"Could not write CSV summary to {filepath}: {e}")
        else:
            self.logger.info(f"CSV summary written to {filepath}")


__all__ = ['TransferReport']
