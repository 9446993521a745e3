"""Tests for transformer registration, ordering and static maps."""

import unittest

from content_transfer.exceptions import ConfigurationError
from content_transfer.importers import RecordTransformer, RemapTable, TransformPipeline, load_transformer

from site_fixtures import build_site


class Rename(RecordTransformer):
    def transform(self, record, key):
        record[self.options.get('key', 'identifier')] = self.options['to']
        return record


class Tag(RecordTransformer):
    """Appends its label to record['trail']."""

    def transform(self, record, key):
        record.setdefault('trail', []).append(self.options['label'])
        return record


class Drop(RecordTransformer):
    def transform(self, record, key):
        record['removed'] = True
        return record


class Untouched(RecordTransformer):
    pass


class NotATransformer:
    pass


class TestIdentifierCategories(unittest.TestCase):

    def test_exact_transformer_wins_over_wildcard(self):
        pipeline = TransformPipeline()
        pipeline.register('section', 'media', Rename(to='exact'))
        pipeline.register('section', '*', Rename(to='wildcard'))

        self.assertEqual(pipeline.transform('section', {'identifier': 'media'})['identifier'], 'exact')
        self.assertEqual(pipeline.transform('section', {'identifier': 'news'})['identifier'], 'wildcard')

    def test_static_map_applies_when_no_transformer_changed_the_record(self):
        pipeline = TransformPipeline()
        pipeline.register('language', '*', Untouched())
        pipeline.add_static_map('language', 'eng-US', 'eng-GB')
        self.assertEqual(pipeline.transform('language', {'locale': 'eng-US'})['locale'], 'eng-GB')

    def test_caller_record_not_modified(self):
        pipeline = TransformPipeline()
        pipeline.register('section', 'media', Rename(to='standard'))
        record = {'identifier': 'media'}
        pipeline.transform('section', record)
        self.assertEqual(record, {'identifier': 'media'})

    def test_attribute_map_merged_into_field_map(self):
        pipeline = TransformPipeline()
        pipeline.add_attribute_map('article', 'intro', 'summary')
        result = pipeline.transform('content_type', {'identifier': 'article', 'field_map': {'body': 'text'}})
        self.assertEqual(result['field_map'], {'body': 'text', 'intro': 'summary'})

    def test_unknown_category(self):
        pipeline = TransformPipeline()
        with self.assertRaises(ConfigurationError):
            pipeline.register('workflow', '*', Untouched())
        with self.assertRaises(ConfigurationError):
            pipeline.add_static_map('workflow', 'a', 'b')


class TestContentObjects(unittest.TestCase):

    def test_order_exact_class_global(self):
        pipeline = TransformPipeline()
        pipeline.register_global(Tag(label='global-1'))
        pipeline.register_global(Tag(label='global-2'))
        pipeline.register_class('article', Tag(label='class'))
        pipeline.register('content_object', 'u1', Tag(label='exact'))

        result = pipeline.transform_content_object({'uuid': 'u1', 'class_identifier': 'article'}, RemapTable())
        self.assertEqual(result['trail'], ['exact', 'class', 'global-1', 'global-2'])

    def test_object_wildcard_runs_as_global(self):
        pipeline = TransformPipeline()
        pipeline.register_global(Tag(label='global'))
        pipeline.register('content_object', '*', Tag(label='wildcard'))
        pipeline.register_class('article', Tag(label='class'))

        result = pipeline.transform_content_object({'uuid': 'u1', 'class_identifier': 'article'}, RemapTable())
        self.assertEqual(result['trail'], ['class', 'global', 'wildcard'])
        self.assertNotIn('*', pipeline.transformers['content_object'])

    def test_first_identity_change_recorded(self):
        pipeline = TransformPipeline()
        pipeline.register('content_object', 'u1', Rename(key='uuid', to='u2'))
        pipeline.register_global(Rename(key='uuid', to='u3'))
        remaps = RemapTable()

        result = pipeline.transform_content_object({'uuid': 'u1', 'name': 'Front'}, remaps)
        self.assertEqual(result['uuid'], 'u3')
        self.assertEqual(remaps.get('u1').new_uuid, 'u2')
        self.assertEqual(remaps.get('u1').name, 'Front')

    def test_removal_stops_the_chain(self):
        pipeline = TransformPipeline()
        pipeline.register_global(Drop())
        pipeline.register_global(Tag(label='never'))
        remaps = RemapTable()

        result = pipeline.transform_content_object({'uuid': 'u1'}, remaps)
        self.assertTrue(result['removed'])
        self.assertNotIn('trail', result)
        self.assertTrue(remaps.is_removed('u1'))

    def test_no_transformer_returns_copy(self):
        record = {'uuid': 'u1'}
        result = TransformPipeline().transform_content_object(record, RemapTable())
        self.assertEqual(result, record)
        self.assertIsNot(result, record)

    def test_static_object_map_seeds_remaps(self):
        pipeline = TransformPipeline()
        pipeline.add_static_map('content_object', 'old', 'new')
        remaps = RemapTable()
        pipeline.seed_remaps(remaps)
        self.assertEqual(remaps.resolve('old'), ('new', False))


class TestFromConfig(unittest.TestCase):

    def test_load_transformer_references(self):
        transformer = load_transformer({'class': 'test_transform_pipeline:Tag', 'options': {'label': 'x'}})
        self.assertIsInstance(transformer, Tag)
        self.assertEqual(transformer.options, {'label': 'x'})
        self.assertIsInstance(load_transformer('test_transform_pipeline:Drop'), Drop)

    def test_bad_references(self):
        for reference in ('no_colon', 'missing_module_xyz:Thing', 'test_transform_pipeline:Nope',
                          'test_transform_pipeline:NotATransformer', 42):
            with self.assertRaises(ConfigurationError, msg=reference):
                load_transformer(reference)

    def test_full_configuration(self):
        pipeline = TransformPipeline.from_config({
            'section': {'map': {'legacy_media': 'media'}},
            'content_type': {'attribute_map': {'page': {'legacy': 'skip'}}},
            'content_object': {
                'transformers': {'u1': 'test_transform_pipeline:Drop'},
                'class_transformers': {'page': {'class': 'test_transform_pipeline:Tag', 'options': {'label': 'p'}}},
                'global': ['test_transform_pipeline:Untouched'],
                'map': {'old': 'new'},
            },
        })
        self.assertEqual(pipeline.static_maps['section'], {'legacy_media': 'media'})
        self.assertEqual(pipeline.attribute_maps, {'page': {'legacy': 'skip'}})
        self.assertIsInstance(pipeline.transformers['content_object']['u1'], Drop)
        self.assertIsInstance(pipeline.class_transformers['page'], Tag)
        self.assertEqual(len(pipeline.global_transformers), 1)
        self.assertEqual(pipeline.object_map, {'old': 'new'})

    def test_unknown_category(self):
        with self.assertRaises(ConfigurationError):
            TransformPipeline.from_config({'workflow': {}})

    def test_static_map_targets_checked_against_destination(self):
        store = build_site()
        with self.assertRaises(ConfigurationError):
            TransformPipeline.from_config({'section': {'map': {'legacy_media': 'media'}}}, store)
        with self.assertRaises(ConfigurationError):
            TransformPipeline.from_config({'content_type': {'attribute_map': {'page': {'intro': 'summary'}}}}, store)
        with self.assertRaises(ConfigurationError):
            TransformPipeline.from_config({'content_object': {'map': {'old': 'new'}}}, store)

        store.create_section('media', 'Media', 'media')
        TransformPipeline.from_config({
            'section': {'map': {'legacy_media': 'media'}},
            'content_type': {'map': {'article': 'page'}, 'attribute_map': {'article': {'intro': 'body'}}},
        }, store)


if __name__ == '__main__':
    unittest.main()
