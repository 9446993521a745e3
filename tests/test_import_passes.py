"""End-to-end tests of the verify and sync passes against an in-memory site."""

import base64
import hashlib
import os
import unittest

from content_transfer.exceptions import ImportDenied, SyncError, UnresolvedReferenceError
from content_transfer.importers import ImportSynchronizer, ImportVerifier, TransformPipeline
from content_transfer.models import RecordStatus

from site_fixtures import build_site, object_record, run_import, start_import
from test_importer import DropObject


def file_record(uuid, content, filename):
    return {
        '__type__': 'file',
        'uuid': uuid,
        'content_b64': base64.b64encode(content).decode('ascii'),
        'md5': hashlib.md5(content).hexdigest(),
        'original_filename': filename,
    }


class TestSinglePageImport(unittest.TestCase):

    def setUp(self):
        self.store = build_site()
        self.session, self.importer = run_import(self.store, [object_record('X', 'N1')])

    def test_object_and_node_created_under_root(self):
        obj = self.store.fetch_object_by_uuid('X')
        node = self.store.fetch_node_by_uuid('N1')

        self.assertEqual(obj['class_identifier'], 'page')
        self.assertEqual(obj['names'], {'eng-GB': 'Home'})
        self.assertEqual(obj['translated_fields']['eng-GB']['title'], 'Home')
        self.assertTrue(obj['published'])
        self.assertEqual(node['parent_id'], self.store.get_root_node()['id'])
        self.assertEqual(node['sort_by'], 'name')
        self.assertEqual(obj['main_node_id'], node['id'])

    def test_statistics(self):
        self.assertEqual(self.session.stats['content_object']['created'], 1)
        self.assertEqual(self.session.stats['node']['created'], 1)
        self.assertEqual(self.session.errors, [])

    def test_records_marked_present(self):
        self.assertEqual(self.importer.tables.nodes['N1'].status, RecordStatus.PRESENT)
        self.assertEqual(self.importer.tables.objects['X'].status, RecordStatus.PRESENT)

    def test_reimport_creates_nothing(self):
        session, _ = run_import(self.store, [object_record('X', 'N1')])

        for category, outcomes in session.stats.items():
            self.assertEqual(outcomes['created'], 0, category)
        self.assertEqual(len(self.store.to_dict()['objects']), 1)
        self.assertEqual(len(self.store.to_dict()['nodes']), 2)

    def test_reimport_with_overwrite_updates(self):
        record = object_record('X', 'N1', name='Start', attributes={'title': 'Start'})
        session, _ = run_import(self.store, [record], policies={'overwrite-existing': 'overwrite'})

        obj = self.store.fetch_object_by_uuid('X')
        self.assertEqual(obj['names']['eng-GB'], 'Start')
        self.assertEqual(obj['translated_fields']['eng-GB']['title'], 'Start')
        self.assertEqual(session.stats['content_object']['updated'], 1)
        self.assertEqual(session.stats['content_object']['created'], 0)

    def test_record_update_scope_limits_changes(self):
        record = object_record('X', 'N1', name='Start', attributes={'title': 'Start'}, update=['attribute'])
        run_import(self.store, [record])

        obj = self.store.fetch_object_by_uuid('X')
        self.assertEqual(obj['names']['eng-GB'], 'Home')
        self.assertEqual(obj['translated_fields']['eng-GB']['title'], 'Start')

    def test_present_object_keeps_location_for_new_children(self):
        child = object_record('C', 'N2', parent_uuid='N1', name='Child')
        run_import(self.store, [object_record('X', 'N1'), child])

        self.assertEqual(
            self.store.fetch_node_by_uuid('N2')['parent_id'],
            self.store.fetch_node_by_uuid('N1')['id']
        )


class TestReferences(unittest.TestCase):

    def test_sibling_relation_written_after_both_exist(self):
        store = build_site()
        a = object_record('a', 'node-a', name='A', attributes={'title': 'A', 'related': 'b'}, related=['b'])
        b = object_record('b', 'node-b', name='B')
        run_import(store, [a, b])

        obj_a = store.fetch_object_by_uuid('a')
        obj_b = store.fetch_object_by_uuid('b')
        self.assertEqual(obj_a['relations'], [obj_b['id']])
        self.assertEqual(obj_a['translated_fields']['eng-GB']['related'], obj_b['id'])

    def test_embeds_decoded_to_local_identities(self):
        store = build_site()
        body = {'xml': '<section><paragraph>See <link node_uuid="node-b">B</link></paragraph>'
                       '<embed object_uuid="b"/></section>'}
        a = object_record('a', 'node-a', name='A', attributes={'title': 'A', 'body': body})
        b = object_record('b', 'node-b', name='B')
        run_import(store, [a, b])

        xml = store.fetch_object_by_uuid('a')['translated_fields']['eng-GB']['body']['xml']
        self.assertIn(f'object_id="{store.fetch_object_by_uuid("b")["id"]}"', xml)
        self.assertIn(f'node_id="{store.fetch_node_by_uuid("node-b")["id"]}"', xml)
        self.assertNotIn('uuid', xml)

    def test_owner_in_destination(self):
        store = build_site()
        owner = store.add_object('folder', uuid='admin')
        run_import(store, [object_record('a', 'node-a', owner={'uuid': 'admin', 'name': 'Admin'})])
        self.assertEqual(store.fetch_object_by_uuid('a')['owner_id'], owner['id'])

    def test_missing_relation_removed_by_default(self):
        store = build_site()
        record = object_record('a', 'node-a', attributes={'title': 'A', 'related': 'ghost', 'links': ['ghost']},
                               related=['ghost'])
        session, importer = start_import(store)
        importer.import_record(record)
        importer.finalize()
        verifier = ImportVerifier(session)
        report = verifier.verify(importer.tree_roots())
        ImportSynchronizer(session).sync(importer.tree_roots())

        self.assertEqual(report['verified'], 1)
        self.assertEqual([issue['reference'] for issue in report['issues']], ['ghost'])
        obj = store.fetch_object_by_uuid('a')
        self.assertEqual(obj['relations'], [])
        self.assertIsNone(obj['translated_fields']['eng-GB']['related'])
        self.assertEqual(obj['translated_fields']['eng-GB']['links'], [])

    def test_missing_relation_aborts_by_policy(self):
        record = object_record('a', 'node-a', related=['ghost'])
        with self.assertRaises(UnresolvedReferenceError):
            run_import(build_site(), [record], policies={'missing-relation': 'abort'})

    def test_object_below_removed_node_skipped(self):
        store = build_site()
        pipeline = TransformPipeline()
        pipeline.register('content_object', 'p', DropObject())
        records = [
            object_record('p', 'node-p', name='P'),
            object_record('a', 'node-a', parent_uuid='node-p', name='A'),
            object_record('b', 'node-b', name='B', attributes={'title': 'B', 'related': 'a'}, related=['a']),
        ]
        session, importer = run_import(store, records, policies={'missing-relation': 'abort'}, pipeline=pipeline)

        self.assertIsNone(store.fetch_object_by_uuid('a'))
        self.assertEqual(importer.tables.nodes['node-a'].status, RecordStatus.REMOVED)
        self.assertEqual(importer.tables.objects['a'].status, RecordStatus.REMOVED)
        stats = session.stats['content_object']
        self.assertEqual((stats['created'], stats['removed'], stats['skipped']), (1, 1, 1))

        obj_b = store.fetch_object_by_uuid('b')
        self.assertEqual(obj_b['relations'], [])
        self.assertIsNone(obj_b['translated_fields']['eng-GB'].get('related'))

    def test_link_to_removed_node_unwrapped(self):
        store = build_site()
        pipeline = TransformPipeline()
        pipeline.register('content_object', 'p', DropObject())
        body = {'xml': '<section><paragraph><link node_uuid="node-p">kept</link></paragraph></section>'}
        records = [
            object_record('p', 'node-p', name='P'),
            object_record('b', 'node-b', name='B', attributes={'title': 'B', 'body': body}),
        ]
        session, _ = run_import(store, records, policies={'missing-embed': 'abort'}, pipeline=pipeline)

        xml = store.fetch_object_by_uuid('b')['translated_fields']['eng-GB']['body']['xml']
        self.assertNotIn('link', xml)
        self.assertIn('kept', xml)
        self.assertEqual(session.stats['content_object']['created'], 1)

    def test_missing_embed_dropped(self):
        store = build_site()
        body = {'xml': '<section><embed object_uuid="ghost"/><paragraph>kept</paragraph></section>'}
        run_import(store, [object_record('a', 'node-a', attributes={'title': 'A', 'body': body})])
        xml = store.fetch_object_by_uuid('a')['translated_fields']['eng-GB']['body']['xml']
        self.assertNotIn('embed', xml)
        self.assertIn('kept', xml)

    def test_object_without_translation_denied(self):
        record = object_record('a', 'node-a', translations={})
        with self.assertRaises(ImportDenied) as ctx:
            run_import(build_site(), [record])
        self.assertEqual(ctx.exception.identifier, 'a')


class TestFiles(unittest.TestCase):

    def test_inline_file_committed_and_cleaned_up(self):
        store = build_site()
        attachment = {'uuid': 'f1', 'path': '/var/storage/hello.txt',
                      'original_filename': 'hello.txt', 'mime_type': 'text/plain'}
        records = [
            file_record('f1', b'hello', 'hello.txt'),
            object_record('a', 'node-a', attributes={'title': 'A', 'attachment': attachment}),
        ]
        session, importer = run_import(store, records)

        value = store.fetch_object_by_uuid('a')['translated_fields']['eng-GB']['attachment']
        self.assertEqual(value['original_filename'], 'hello.txt')
        self.assertTrue(os.path.isfile(value['path']))
        with open(value['path'], 'rb') as f:
            self.assertEqual(f.read(), b'hello')

        session.cleanup()
        self.assertFalse(os.path.exists(value['path']))

    def test_checksum_mismatch_denied(self):
        record = file_record('f1', b'hello', 'hello.txt')
        record['md5'] = hashlib.md5(b'other').hexdigest()
        session, importer = start_import(build_site())
        with self.assertRaises(ImportDenied):
            importer.import_record(record)

    def test_missing_file_nulls_attribute(self):
        store = build_site()
        attachment = {'uuid': 'nowhere', 'path': '/var/storage/x.pdf', 'original_filename': 'x.pdf'}
        session, _ = run_import(store, [object_record('a', 'node-a', attributes={'title': 'A', 'attachment': attachment})])
        self.assertIsNone(store.fetch_object_by_uuid('a')['translated_fields']['eng-GB']['attachment'])


class TestSyncFailures(unittest.TestCase):

    def failing_records(self):
        broken = object_record('bad', 'node-bad', name='Bad', states={'lock': 'locked'})
        child = object_record('kid', 'node-kid', parent_uuid='node-bad', name='Kid')
        fine = object_record('ok', 'node-ok', name='Ok')
        return [broken, child, fine]

    def test_abort_by_default(self):
        with self.assertRaises(SyncError) as ctx:
            run_import(build_site(), self.failing_records())
        self.assertEqual(ctx.exception.uuid, 'node-bad')
        self.assertEqual(ctx.exception.phase, 'content')

    def test_skip_marks_subtree_failed(self):
        store = build_site()
        session, importer = run_import(store, self.failing_records(), policies={'sync-failure': 'skip'})

        self.assertEqual(importer.tables.nodes['node-bad'].status, RecordStatus.REMOVED)
        self.assertEqual(importer.tables.nodes['node-kid'].status, RecordStatus.REMOVED)
        self.assertEqual(session.stats['node']['failed'], 2)
        self.assertEqual(len(session.errors), 1)
        self.assertEqual(session.errors[0]['phase'], 'content')
        self.assertTrue(store.fetch_object_by_uuid('ok')['published'])
        self.assertFalse(store.fetch_object_by_uuid('bad')['published'])


class TestDryRun(unittest.TestCase):

    def test_destination_untouched(self):
        store = build_site()
        before = store.to_dict()
        session, importer = run_import(store, [
            {'__type__': 'section', 'identifier': 'media', 'name': 'Media'},
            object_record('a', 'node-a'),
            object_record('b', 'node-b', parent_uuid='node-a'),
        ], dry_run=True)

        self.assertEqual(store.to_dict(), before)
        self.assertEqual(session.stats['section']['created'], 1)
        self.assertEqual(importer.tables.nodes['node-b'].status, RecordStatus.NEW)


if __name__ == '__main__':
    unittest.main()
