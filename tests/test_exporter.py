"""Tests for the content exporter."""

import os
import tempfile
import unittest

from content_transfer.exceptions import ConfigurationError
from content_transfer.exporters import ContentExporter, ExportOptions
from content_transfer.models import RecordType

from site_fixtures import ROOT, build_site


def build_source(attachment_path=None):
    """Two-page site: home under the root, child under home referencing it."""
    store = build_site()
    store.add_tag('tag-parent', 'topics')
    store.add_tag('tag-1', 'news', parent_uuid='tag-parent')
    root_id = store.get_root_node()['id']
    home = store.add_object(
        'page', parent_node_id=root_id, names={'eng-GB': 'Home'},
        translated_fields={'eng-GB': {'title': 'Home'}}, uuid='home', node_uuid='home-node'
    )
    fields = {
        'title': 'Child',
        'related': home['id'],
        'body': {'xml': f'<section><embed object_id="{home["id"]}"/></section>'},
        'keywords': [{'uuid': 'tag-1', 'keyword': 'news'}],
    }
    if attachment_path:
        fields['attachment'] = {'path': attachment_path, 'mime_type': 'text/plain'}
    child = store.add_object(
        'page', parent_node_id=home['main_node_id'], names={'eng-GB': 'Child'},
        translated_fields={'eng-GB': fields}, uuid='child', node_uuid='child-node'
    )
    store.assign_relation(child['id'], home['id'])
    return store, home, child


class TestExportRecords(unittest.TestCase):

    def setUp(self):
        self.store, self.home, self.child = build_source()
        self.exporter = ContentExporter(self.store)

    def test_tree_root_flag(self):
        home_node = self.store.fetch_node_by_uuid('home-node')
        child_node = self.store.fetch_node_by_uuid('child-node')

        home_location = self.exporter.export_node(home_node)
        self.assertEqual(home_location['node_type'], 'tree-root')
        self.assertEqual(home_location['parent_node_uuid'], ROOT)
        self.assertEqual(home_location['original_depth'], 1)

        child_location = self.exporter.export_node(child_node)
        self.assertNotIn('node_type', child_location)
        self.assertEqual(child_location['parent_node_uuid'], 'home-node')
        self.assertEqual(child_location['visibility'], 'visible')

    def test_hidden_ancestor_makes_node_invisible(self):
        root_id = self.store.get_root_node()['id']
        hidden = self.store.add_object('folder', parent_node_id=root_id, node_uuid='hidden-node', hidden=True)
        below = self.store.add_object('folder', parent_node_id=hidden['main_node_id'], node_uuid='below-node')

        self.assertEqual(self.exporter.export_node(self.store.fetch_node_by_uuid('hidden-node'))['visibility'], 'hidden')
        self.assertEqual(
            self.exporter.export_node(self.store.fetch_node(below['main_node_id']))['visibility'], 'invisible'
        )

    def test_object_references_become_uuids(self):
        record = self.exporter.export_content_object(self.store.fetch_object_by_uuid('child'))
        attributes = record['translations']['eng-GB']['attributes']

        self.assertEqual(record['__type__'], RecordType.CONTENT_OBJECT.value)
        self.assertEqual(record['name'], 'Child')
        self.assertEqual(attributes['related'], 'home')
        self.assertIn('object_uuid="home"', attributes['body']['xml'])
        self.assertEqual([item['uuid'] for item in record['related']], ['home'])
        self.assertEqual(record['main_node']['uuid'], 'child-node')


class TestCollection(unittest.TestCase):

    def test_subtree(self):
        store, _, _ = build_source()
        exporter = ContentExporter(store)
        self.assertEqual(exporter.add_subtree('home-node'), 2)
        self.assertEqual(exporter.stats['objects'], 2)
        self.assertEqual(exporter.stats['locations'], 2)
        self.assertIn('page', exporter.class_map)
        self.assertTrue(exporter.class_map['page']['sparse'])
        self.assertNotIn('fields', exporter.class_map['page'])

    def test_missing_start_node(self):
        store, _, _ = build_source()
        with self.assertRaises(ConfigurationError):
            ContentExporter(store).add_subtree('nowhere')

    def test_excluded_subtree(self):
        store, home, child = build_source()
        exporter = ContentExporter(store, ExportOptions(excluded_nodes={'child-node'}))
        exporter.add_subtree('home-node')
        self.assertEqual(set(exporter.object_map), {home['id']})

    def test_include_parents(self):
        store, home, child = build_source()
        exporter = ContentExporter(store, ExportOptions(include_parents=True))
        exporter.add_subtree('child-node')
        self.assertEqual(set(exporter.object_map), {home['id'], child['id']})

    def test_include_relations(self):
        store, home, child = build_source()
        exporter = ContentExporter(store, ExportOptions(include_relations=True))
        exporter.add_node(store.fetch_node_by_uuid('child-node'))
        self.assertIn(home['id'], exporter.object_map)

    def test_embeds_followed_on_finalize(self):
        store, home, child = build_source()
        exporter = ContentExporter(store, ExportOptions(include_embeds=True))
        exporter.add_node(store.fetch_node_by_uuid('child-node'))
        self.assertNotIn(home['id'], exporter.object_map)
        exporter.finalize()
        self.assertIn(home['id'], exporter.object_map)

    def test_finalize_fills_schema_and_tags(self):
        store, _, _ = build_source()
        store.create_section('standard', 'Standard', 'content')
        exporter = ContentExporter(store)
        exporter.add_subtree('home-node')
        exporter.finalize()

        items = exporter.get_export_items()
        self.assertEqual([record['locale'] for record in items['content_languages']], ['eng-GB'])
        self.assertEqual(items['sections'][0]['navigation_part_identifier'], 'content')
        self.assertEqual({record['uuid'] for record in items['tags']}, {'tag-1', 'tag-parent'})
        self.assertNotIn('content_states', items)

    def test_index(self):
        store, _, _ = build_source()
        exporter = ContentExporter(store)
        exporter.add_subtree('home-node')
        exporter.finalize()
        index = exporter.create_index()

        self.assertEqual(index['__type__'], 'index')
        self.assertEqual(index['source_root_uuid'], ROOT)
        self.assertEqual(index['type_counts']['content-object'], 2)
        self.assertEqual(index['types'][-1], 'content-object')
        self.assertLess(index['types'].index('content-type'), index['types'].index('content-object'))


class TestFiles(unittest.TestCase):

    def setUp(self):
        directory = tempfile.TemporaryDirectory()
        self.addCleanup(directory.cleanup)
        self.directory = directory.name
        self.path = os.path.join(self.directory, 'notes.txt')
        with open(self.path, 'wb') as f:
            f.write(b'file body')

    def export(self, options=None):
        store, _, child = build_source(self.path)
        exporter = ContentExporter(store, options)
        exporter.add_subtree('home-node')
        exporter.finalize()
        return exporter, exporter.object_map[child['id']]

    def test_file_embedded(self):
        exporter, record = self.export()
        attachment = record['translations']['eng-GB']['attributes']['attachment']
        file_record = exporter.file_map[attachment['uuid']]
        self.assertEqual(file_record['original_filename'], 'notes.txt')
        self.assertEqual(file_record['size'], 9)
        self.assertIn('content_b64', file_record)

    def test_file_copied_to_storage(self):
        storage = os.path.join(self.directory, 'storage')
        exporter, record = self.export(ExportOptions(embed_file_data=False, file_storage=storage))
        uuid = record['translations']['eng-GB']['attributes']['attachment']['uuid']
        self.assertNotIn('content_b64', exporter.file_map[uuid])
        self.assertTrue(os.path.isfile(os.path.join(storage, uuid)))

    def test_unreadable_file_marked_not_found(self):
        os.remove(self.path)
        exporter, record = self.export()
        self.assertIs(record['translations']['eng-GB']['attributes']['attachment']['found'], False)
        self.assertEqual(exporter.stats['files_missing'], 1)
        self.assertEqual(exporter.file_map, {})


if __name__ == '__main__':
    unittest.main()
