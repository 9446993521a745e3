"""Tests for the in-memory and REST content stores."""

import json
import os
import tempfile
import unittest
from unittest import mock

import requests

from content_transfer.converters import get_codec
from content_transfer.stores import (
    DEFAULT_ROOT_UUID,
    MemoryContentStore,
    ObjectAlreadyExists,
    ObjectDoesNotExist,
    RestContentStore,
    StoreConnectionError,
    StoreError,
    create_store,
)

from site_fixtures import build_site


def make_response(status_code, body=None):
    response = requests.Response()
    response.status_code = status_code
    response.url = 'https://cms.example.com/api'
    response._content = json.dumps(body).encode('utf-8') if body is not None else b''
    return response


class TestMemoryContentStore(unittest.TestCase):

    def setUp(self):
        self.store = build_site()
        self.root = self.store.get_root_node()

    def test_root_node(self):
        self.assertEqual(self.root['uuid'], DEFAULT_ROOT_UUID)
        self.assertIsNone(self.root['parent_id'])

    def test_first_location_becomes_main(self):
        obj = self.store.create_skeleton('page', 'eng-GB', uuid='a')
        first = self.store.create_location(self.root['id'], obj['id'], uuid='n1')
        second = self.store.create_location(self.root['id'], obj['id'], uuid='n2')

        self.assertEqual(self.store.fetch_object(obj['id'])['main_node_id'], first['id'])
        self.store.set_main_location(obj['id'], second['id'])
        self.assertFalse(self.store.fetch_node(first['id'])['is_main'])
        self.assertTrue(self.store.fetch_node(second['id'])['is_main'])

    def test_duplicate_uuids_rejected(self):
        self.store.create_skeleton('page', 'eng-GB', uuid='a')
        with self.assertRaises(ObjectAlreadyExists):
            self.store.create_skeleton('page', 'eng-GB', uuid='a')

    def test_unknown_field_rejected(self):
        obj = self.store.create_skeleton('folder', 'eng-GB')
        with self.assertRaises(ObjectDoesNotExist):
            self.store.set_field(obj['id'], 'body', {'xml': '<section/>'})

    def test_relation_target_must_exist(self):
        obj = self.store.create_skeleton('page', 'eng-GB')
        with self.assertRaises(ObjectDoesNotExist):
            self.store.assign_relation(obj['id'], 999)

    def test_transaction_rolls_back(self):
        with self.assertRaises(ObjectDoesNotExist):
            with self.store.transaction():
                obj = self.store.create_skeleton('page', 'eng-GB', uuid='a')
                self.store.assign_state(obj['id'], 'lock', 'locked')
        self.assertIsNone(self.store.fetch_object_by_uuid('a'))

    def test_children_ordered_by_priority(self):
        late = self.store.add_object('folder', parent_node_id=self.root['id'], node_uuid='late')
        early = self.store.add_object('folder', parent_node_id=self.root['id'], node_uuid='early')
        self.store.set_location_meta(early['main_node_id'], priority=-1)
        children = self.store.fetch_children(self.root['id'])
        self.assertEqual([node['uuid'] for node in children], ['early', 'late'])

    def test_save_and_load(self):
        self.store.add_object('page', parent_node_id=self.root['id'], uuid='a', node_uuid='n1')
        handle, path = tempfile.mkstemp(suffix='.json')
        os.close(handle)
        self.addCleanup(os.remove, path)

        self.store.save(path)
        loaded = MemoryContentStore.load(path)
        self.assertEqual(loaded.fetch_node_by_uuid('n1')['object_id'], loaded.fetch_object_by_uuid('a')['id'])
        self.assertEqual(loaded.to_dict(), self.store.to_dict())

        reopened = create_store({'type': 'memory', 'path': path})
        self.assertIsNotNone(reopened.fetch_object_by_uuid('a'))

    def test_create_store_types(self):
        self.assertIsInstance(create_store({'type': 'memory', 'root_uuid': 'r'}), MemoryContentStore)
        self.assertEqual(create_store({}).get_root_node()['uuid'], DEFAULT_ROOT_UUID)
        with self.assertRaises(ValueError):
            create_store({'type': 'sqlite'})


class TestRestContentStore(unittest.TestCase):

    def setUp(self):
        self.store = RestContentStore('https://cms.example.com/', 'token', max_retries=0)
        patcher = mock.patch.object(self.store.session, 'request')
        self.request = patcher.start()
        self.addCleanup(patcher.stop)

    def test_auth_header(self):
        self.assertEqual(self.store.session.headers['Authorization'], 'Bearer token')

    def test_from_config(self):
        store = RestContentStore.from_config({
            'base_url': 'https://cms.example.com', 'api_token': 't', 'request_timeout': 5, 'rate_limit': 0.5
        })
        self.assertEqual(store.timeout, 5)
        self.assertEqual(store.rate_limit, 0.5)

    def test_get_missing_returns_none(self):
        self.request.return_value = make_response(404)
        self.assertIsNone(self.store.fetch_object_by_uuid('nope'))
        kwargs = self.request.call_args[1]
        self.assertEqual(kwargs['url'], 'https://cms.example.com/api/objects/uuid/nope')

    def test_list_unwraps_data(self):
        self.request.return_value = make_response(200, {'data': [{'identifier': 'standard'}]})
        self.assertEqual(self.store.list_sections(), [{'identifier': 'standard'}])

    def test_error_translation(self):
        self.request.return_value = make_response(404)
        with self.assertRaises(ObjectDoesNotExist):
            self.store.set_name(1, 'eng-GB', 'Home')

        self.request.return_value = make_response(409, {'error': 'exists'})
        with self.assertRaises(ObjectAlreadyExists):
            self.store.create_skeleton('page', 'eng-GB', uuid='a')

        self.request.return_value = make_response(500)
        with self.assertRaises(StoreError):
            self.store.publish(1)

    def test_connection_error(self):
        self.request.side_effect = requests.ConnectionError('refused')
        with self.assertRaises(StoreConnectionError):
            self.store.get_root_node()

    def test_price_field_sent_as_json(self):
        self.request.return_value = make_response(204)
        price = get_codec('price').decode({'amount': '12.50', 'currency': 'EUR'}, None)
        self.store.set_field(1, 'price', price, 'eng-GB')

        kwargs = self.request.call_args[1]
        self.assertEqual(kwargs['headers'], {'Content-Type': 'application/json'})
        sent = json.loads(kwargs['data'])
        self.assertEqual(sent['value']['amount'], '12.50')
        self.assertEqual(sent['language'], 'eng-GB')

    def test_unserialisable_body_raises_store_error(self):
        with self.assertRaises(StoreError):
            self.store.set_field(1, 'title', object())
        self.request.assert_not_called()

    def test_location_meta_skips_empty_update(self):
        self.store.set_location_meta(5)
        self.request.assert_not_called()

    def test_transaction_deletes_created_resources(self):
        self.request.side_effect = [
            make_response(201, {'id': 7}),
            make_response(201, {'id': 8}),
            make_response(404),
            make_response(204),
            make_response(204),
        ]
        with self.assertRaises(ObjectDoesNotExist):
            with self.store.transaction():
                self.store.create_skeleton('page', 'eng-GB')
                self.store.create_location(1, 7)
                self.store.set_field(7, 'title', 'x')

        deletes = [call[1]['url'] for call in self.request.call_args_list if call[1]['method'] == 'DELETE']
        self.assertEqual(deletes, [
            'https://cms.example.com/api/nodes/8',
            'https://cms.example.com/api/objects/7',
        ])


if __name__ == '__main__':
    unittest.main()
