"""Tests for configuration loading, validation and argument merging."""

import argparse
import os
import tempfile
import unittest
from unittest import mock

from content_transfer.config_loader import ConfigLoader, get_nested
from content_transfer.exceptions import ConfigurationError


class TestLoad(unittest.TestCase):

    def write(self, text):
        handle, path = tempfile.mkstemp(suffix='.yaml')
        with os.fdopen(handle, 'w') as f:
            f.write(text)
        self.addCleanup(os.remove, path)
        return path

    def test_env_substitution(self):
        path = self.write("source:\n  type: rest\n  api_token: ${TRANSFER_TEST_TOKEN}\n  base_url: ${UNSET_VAR_X}\n")
        with mock.patch.dict(os.environ, {'TRANSFER_TEST_TOKEN': 'secret'}):
            config = ConfigLoader.load(path)
        self.assertEqual(config['source']['api_token'], 'secret')
        self.assertEqual(config['source']['base_url'], '${UNSET_VAR_X}')

    def test_env_fallback(self):
        path = self.write("destination:\n  path: ${UNSET_VAR_X:-./site.json}\n  root_uuid: ${TRANSFER_ROOT:-x}\n")
        with mock.patch.dict(os.environ, {'TRANSFER_ROOT': 'r1'}):
            config = ConfigLoader.load(path)
        self.assertEqual(config['destination'], {'path': './site.json', 'root_uuid': 'r1'})

    def test_empty_file(self):
        self.assertEqual(ConfigLoader.load(self.write('')), {})

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.load('/nonexistent/config.yaml')

    def test_not_a_mapping(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.load(self.write('- a\n- b\n'))


class TestValidate(unittest.TestCase):

    def test_minimal_config(self):
        ConfigLoader.validate({})

    def test_unknown_section(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.validate({'confluence': {}})

    def test_rest_store_requires_token(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.validate({'source': {'type': 'rest', 'base_url': 'https://cms.example.com'}})

    def test_unsubstituted_token(self):
        config = {'source': {'type': 'rest', 'base_url': 'https://cms.example.com', 'api_token': '${TOKEN}'}}
        with self.assertRaises(ConfigurationError) as ctx:
            ConfigLoader.validate(config)
        self.assertIn('TOKEN', str(ctx.exception))

    def test_bad_url_scheme(self):
        config = {'destination': {'type': 'rest', 'base_url': 'ftp://cms', 'api_token': 'x'}}
        with self.assertRaises(ConfigurationError):
            ConfigLoader.validate(config)

    def test_unknown_store_type(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.validate({'destination': {'type': 'sqlite'}})

    def test_invalid_policy(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.validate({'import': {'policies': {'orphaned-nodes': 'remove'}}})

    def test_export_flags_must_be_boolean(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.validate({'export': {'include_owners': 'yes'}})

    def test_log_level(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader.validate({'logging': {'level': 'LOUD'}})


class TestMergeWithArgs(unittest.TestCase):

    def test_args_take_precedence(self):
        args = argparse.Namespace(
            interactive=True,
            start_node='node-1',
            file_storage='/srv/files',
            embed_files=None,
            temp_directory=None,
            include_owners=True,
            include_relations=False,
            include_embeds=False,
            include_parents=False,
            verbose=2,
            log_file='transfer.log'
        )
        config = {'import': {'interactive': False}, 'export': {'include_relations': True}}
        merged = ConfigLoader.merge_with_args(config, args)

        self.assertTrue(merged['import']['interactive'])
        self.assertEqual(merged['import']['start_node'], 'node-1')
        self.assertEqual(merged['import']['file_storage'], '/srv/files')
        self.assertFalse(merged['export']['embed_file_data'])
        self.assertTrue(merged['export']['include_owners'])
        self.assertTrue(merged['export']['include_relations'])
        self.assertEqual(merged['logging'], {'level': 'DEBUG', 'file': 'transfer.log'})
        self.assertFalse(config['import']['interactive'])

    def test_missing_attributes_ignored(self):
        merged = ConfigLoader.merge_with_args({}, argparse.Namespace())
        self.assertEqual(merged, {'export': {}, 'import': {}, 'logging': {}})


class TestGetNested(unittest.TestCase):

    def test_lookup(self):
        config = {'import': {'policies': {'sync-failure': 'skip'}}}
        self.assertEqual(get_nested(config, 'import.policies.sync-failure'), 'skip')
        self.assertEqual(get_nested(config, 'import.start_node', 'root'), 'root')
        self.assertIsNone(get_nested({'import': None}, 'import.policies'))


if __name__ == '__main__':
    unittest.main()
