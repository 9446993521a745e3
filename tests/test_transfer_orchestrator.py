"""Tests for the export and import runs of the transfer orchestrator."""

import logging
import os
import tempfile
import unittest

from content_transfer.exceptions import ConfigurationError
from content_transfer.orchestrator import TransferOrchestrator
from content_transfer.stores import MemoryContentStore

from site_fixtures import build_site
from test_exporter import build_source


class OrchestratorTestCase(unittest.TestCase):

    def setUp(self):
        directory = tempfile.TemporaryDirectory()
        self.addCleanup(directory.cleanup)
        self.directory = directory.name
        self.bundle = os.path.join(self.directory, 'site.json')
        self.destination_path = os.path.join(self.directory, 'out', 'destination.json')
        self.logger = logging.getLogger('test_transfer_orchestrator')

        self.source, self.home, self.child = build_source()
        self.config = {'destination': {'type': 'memory', 'path': self.destination_path}}

    def export(self, start_nodes=('home-node',)):
        orchestrator = TransferOrchestrator(self.config, self.logger)
        orchestrator.source_store = self.source
        return orchestrator.run_export(start_nodes, self.bundle)

    def importer(self, dry_run=False):
        orchestrator = TransferOrchestrator(self.config, self.logger, dry_run=dry_run)
        orchestrator.destination_store = build_site()
        return orchestrator


class TestExportRun(OrchestratorTestCase):

    def test_report(self):
        report = self.export()

        self.assertTrue(os.path.exists(self.bundle))
        self.assertEqual(report['operation'], 'export')
        self.assertEqual(report['categories']['content_object'], {'exported': 2})
        self.assertEqual(report['categories']['node'], {'exported': 2})
        self.assertEqual(report['categories']['tag'], {'exported': 2})
        self.assertNotIn('file', report['categories'])
        self.assertEqual(set(report['phases']), {'collect', 'finalize', 'write'})
        self.assertEqual(report['export_info']['source_root_uuid'], self.source.get_root_node()['uuid'])

    def test_unknown_start_node(self):
        with self.assertRaises(ConfigurationError):
            self.export(['nowhere'])


class TestImportRun(OrchestratorTestCase):

    def setUp(self):
        super().setUp()
        self.export()

    def test_import_saves_destination(self):
        orchestrator = self.importer()
        report = orchestrator.run_import(self.bundle)

        self.assertEqual(report['summary']['failed'], 0)
        self.assertEqual(report['categories']['content_object']['created'], 2)
        self.assertEqual(set(report['phases']), {'ingest', 'verify', 'sync'})
        self.assertTrue(report['verification']['enabled'])

        saved = MemoryContentStore.load(self.destination_path)
        child = saved.fetch_object_by_uuid('child')
        home = saved.fetch_object_by_uuid('home')
        self.assertEqual(child['relations'], [home['id']])
        self.assertEqual(orchestrator.session.options.bundle_directory, os.path.realpath(self.directory))

    def test_verify_only_leaves_destination_untouched(self):
        orchestrator = self.importer()
        before = orchestrator.destination_store.to_dict()
        report = orchestrator.run_import(self.bundle, verify_only=True)
        after = orchestrator.destination_store.to_dict()

        self.assertNotIn('sync', report['phases'])
        self.assertEqual(after['objects'], before['objects'])
        self.assertEqual(after['nodes'], before['nodes'])
        self.assertFalse(os.path.exists(self.destination_path))

    def test_dry_run(self):
        orchestrator = self.importer(dry_run=True)
        before = orchestrator.destination_store.to_dict()
        report = orchestrator.run_import(self.bundle)

        self.assertTrue(report['dry_run'])
        self.assertEqual(orchestrator.destination_store.to_dict(), before)
        self.assertFalse(os.path.exists(self.destination_path))

    def test_policies_from_configuration(self):
        self.importer().run_import(self.bundle)

        self.config['import'] = {'policies': {'overwrite-existing': 'overwrite'}}
        orchestrator = TransferOrchestrator(self.config, self.logger)
        report = orchestrator.run_import(self.bundle)
        self.assertEqual(report['categories']['content_object'].get('created', 0), 0)
        self.assertEqual(report['categories']['content_object']['updated'], 2)

    def test_missing_start_node(self):
        self.config['import'] = {'start_node': 'nowhere'}
        with self.assertRaises(ConfigurationError):
            self.importer().run_import(self.bundle)


if __name__ == '__main__':
    unittest.main()
