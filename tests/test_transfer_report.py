"""Tests for transfer report generation and formatting."""

import csv
import json
import os
import tempfile
import unittest

from content_transfer.logger import format_duration
from content_transfer.orchestrator import TransferReport


class TestTransferReport(unittest.TestCase):

    def setUp(self):
        self.generator = TransferReport()
        self.stats = {
            'content_object': {'created': 3, 'updated': 1, 'skipped': 0, 'removed': 1, 'failed': 1},
            'node': {'created': 4, 'failed': 1},
            'section': {'created': 0, 'skipped': 0},
        }
        self.report = self.generator.generate_report(
            'import',
            self.stats,
            {'ingest': 1.5, 'verify': 0.5, 'sync': 65.0},
            errors=[{'phase': 'content', 'uuid': 'node-bad', 'error': 'boom'}],
            orphans={'ghost': ['node-c']},
            verification={'verified': 4, 'issues': [
                {'object': 'a', 'reference': 'ghost', 'point': 'missing-relation', 'action': 'remove'},
                {'object': 'a', 'reference': None, 'point': None, 'action': 'Dropping unknown tag'},
            ]},
            dry_run=True
        )

    def test_summary(self):
        summary = self.report['summary']
        self.assertEqual(summary['created'], 7)
        self.assertEqual(summary['failed'], 2)
        self.assertEqual(summary['total_records'], 11)
        self.assertEqual(summary['total_errors'], 1)
        self.assertAlmostEqual(summary['success_rate'], 9 / 11)
        self.assertEqual(summary['duration_formatted'], '1m 7s')

    def test_categories_without_records_left_out(self):
        self.assertEqual(set(self.report['categories']), {'content_object', 'node'})

    def test_verification(self):
        verification = self.report['verification']
        self.assertTrue(verification['enabled'])
        self.assertEqual(verification['total_issues'], 2)
        self.assertEqual(verification['references_removed'], 1)

    def test_verification_disabled(self):
        report = self.generator.generate_report('export', {'content_object': {'exported': 2}}, {'collect': 0.2})
        self.assertEqual(report['verification'], {'enabled': False})
        self.assertEqual(report['summary']['success_rate'], 1.0)
        self.assertEqual(report['summary']['total_errors'], 0)

    def test_empty_run(self):
        report = self.generator.generate_report('import', {}, {})
        self.assertEqual(report['summary']['total_records'], 0)
        self.assertEqual(report['summary']['success_rate'], 1.0)

    def test_phase_durations_formatted(self):
        self.assertEqual(self.report['phases']['ingest']['duration_formatted'], '1.5s')
        self.assertEqual(self.report['phases']['sync']['duration_formatted'], '1m 5s')
        self.assertEqual(format_duration(3725), '1h 2m 5s')

    def test_console_report(self):
        text = self.generator.format_console_report(self.report)
        self.assertIn('IMPORT REPORT (DRY RUN)', text)
        self.assertIn('Content object: 3 created, 1 updated, 1 removed, 1 failed', text)
        self.assertIn('WARNING:     1 references removed', text)
        self.assertIn('ghost: node-c', text)
        self.assertIn('content: 1 errors', text)
        self.assertTrue(text.startswith('=' * 60))

    def test_exports(self):
        with tempfile.TemporaryDirectory() as directory:
            json_path = os.path.join(directory, 'report.json')
            csv_path = os.path.join(directory, 'summary.csv')
            self.generator.export_json_report(self.report, json_path)
            self.generator.export_csv_summary(self.report, csv_path)

            with open(json_path, encoding='utf-8') as f:
                self.assertEqual(json.load(f)['orphans'], {'ghost': ['node-c']})
            with open(csv_path, newline='', encoding='utf-8') as f:
                rows = list(csv.reader(f))
        self.assertEqual(rows[0][0], 'category')
        self.assertEqual(rows[1], ['content_object', '0', '3', '1', '0', '1', '1'])

    def test_export_to_unwritable_path_logged(self):
        with self.assertLogs('content_transfer.orchestrator.transfer_report', level='ERROR'):
            self.generator.export_json_report(self.report, '/nonexistent/dir/report.json')


if __name__ == '__main__':
    unittest.main()
