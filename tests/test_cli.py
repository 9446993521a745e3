"""Tests for the command line interface."""

import io
import json
import logging
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

import yaml

from content_transfer.cli import create_argument_parser, main
from content_transfer.stores import MemoryContentStore

from site_fixtures import build_site
from test_exporter import build_source


class TestArgumentParser(unittest.TestCase):

    def setUp(self):
        self.parser = create_argument_parser()

    def test_export_defaults(self):
        args = self.parser.parse_args(['export', 'a', 'b', '-o', 'site.json'])
        self.assertEqual(args.start_nodes, ['a', 'b'])
        self.assertIsNone(args.embed_files)
        self.assertFalse(args.include_relations)
        self.assertEqual(args.verbose, 0)

    def test_import_flags(self):
        args = self.parser.parse_args(['-vv', 'import', 'site.json', '--no-interactive', '--dry-run'])
        self.assertEqual(args.verbose, 2)
        self.assertFalse(args.interactive)
        self.assertTrue(args.dry_run)
        self.assertFalse(args.verify_only)

    def test_output_required_for_export(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                self.parser.parse_args(['export', 'a'])


class TestMain(unittest.TestCase):

    def setUp(self):
        directory = tempfile.TemporaryDirectory()
        self.addCleanup(directory.cleanup)
        self.directory = directory.name

        package_logger = logging.getLogger('content_transfer')
        saved = (package_logger.level, package_logger.propagate, list(package_logger.handlers))

        def restore():
            package_logger.setLevel(saved[0])
            package_logger.propagate = saved[1]
            package_logger.handlers[:] = saved[2]
        self.addCleanup(restore)

        self.source_path = self.path('source.json')
        self.destination_path = self.path('destination.json')
        self.bundle = self.path('site.jsonl')
        build_source()[0].save(self.source_path)
        build_site().save(self.destination_path)

        self.config_path = self.path('config.yaml')
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({
                'source': {'type': 'memory', 'path': self.source_path},
                'destination': {'type': 'memory', 'path': self.destination_path},
            }, f)

    def path(self, name):
        return os.path.join(self.directory, name)

    def run_main(self, *argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(['--config', self.config_path] + list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_export_then_import(self):
        code, output, _ = self.run_main('export', 'home-node', '-o', self.bundle)
        self.assertEqual(code, 0)
        self.assertIn('EXPORT REPORT', output)
        self.assertTrue(os.path.exists(self.bundle))

        report_path = self.path('report.json')
        code, output, _ = self.run_main('--report', report_path, 'import', self.bundle)
        self.assertEqual(code, 0)
        self.assertIn('IMPORT REPORT', output)

        with open(report_path, encoding='utf-8') as f:
            report = json.load(f)
        self.assertEqual(report['operation'], 'import')
        self.assertEqual(report['categories']['content_object']['created'], 2)

        destination = MemoryContentStore.load(self.destination_path)
        self.assertIsNotNone(destination.fetch_node_by_uuid('child-node'))

    def test_dry_run_import(self):
        self.run_main('export', 'home-node', '-o', self.bundle)
        code, output, _ = self.run_main('import', self.bundle, '--dry-run')

        self.assertEqual(code, 0)
        self.assertIn('IMPORT REPORT (DRY RUN)', output)
        self.assertIsNone(MemoryContentStore.load(self.destination_path).fetch_object_by_uuid('home'))

    def test_missing_configuration_file(self):
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = main(['--config', self.path('missing.yaml'), 'import', self.bundle])
        self.assertEqual(code, 2)
        self.assertIn('Configuration error', stderr.getvalue())

    def test_invalid_policy_in_configuration(self):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'import': {'policies': {'orphaned-nodes': 'maybe'}}}, f)
        code, _, _ = self.run_main('import', self.bundle)
        self.assertEqual(code, 2)

    def test_missing_start_node(self):
        self.run_main('export', 'home-node', '-o', self.bundle)
        code, _, stderr = self.run_main('import', self.bundle, '--start-node', 'nowhere')
        self.assertEqual(code, 2)
        self.assertIn('nowhere', stderr)

    def test_missing_bundle(self):
        code, _, stderr = self.run_main('import', self.path('absent.json'))
        self.assertEqual(code, 1)
        self.assertIn('File error', stderr)


if __name__ == '__main__':
    unittest.main()
