"""
In-memory content store.

Keeps a complete site in plain dictionaries. Used as destination in dry runs
and tests, and as a file-backed site when loaded from and saved to JSON.
"""

import copy
import json
import logging
import uuid as uuid_module
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .base import ContentStore, ObjectAlreadyExists, ObjectDoesNotExist

logger = logging.getLogger('content_transfer.stores.memory')

DEFAULT_ROOT_UUID = "00000000000000000000000000000001"


def _new_uuid() -> str:
    return uuid_module.uuid4().hex


class MemoryContentStore(ContentStore):
    """Content store backed by dictionaries, with snapshot rollback."""

    def __init__(self, root_uuid: str = DEFAULT_ROOT_UUID, data: Optional[Dict[str, Any]] = None):
        """
        Initialize the store.

        Args:
            root_uuid: UUID of the absolute root node for an empty store
            data: Previously saved store state, see `to_dict`
        """
        if data is not None:
            self._data = data
        else:
            self._data = {
                'next_id': 2,
                'root_node_id': 1,
                'objects': {},
                'nodes': {
                    '1': {
                        'id': 1,
                        'uuid': root_uuid,
                        'parent_id': None,
                        'object_id': None,
                        'sort_by': 'path-asc',
                        'priority': 0,
                        'hidden': False,
                        'is_main': True,
                    }
                },
                'sections': {},
                'languages': {},
                'state_groups': {},
                'content_types': {},
                'tags': {},
            }
        self.transaction_depth = 0

    # Persistence

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'MemoryContentStore':
        """Load a store previously written with `save`."""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls(data=data)

    def save(self, path: Union[str, Path]) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2, sort_keys=True, default=str)
        logger.debug(f"Saved content store to {path}")

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def _allocate_id(self) -> int:
        new_id = self._data['next_id']
        self._data['next_id'] += 1
        return new_id

    # Seeding helpers, used when building sites programmatically

    def add_content_type(self, identifier: str, fields: Dict[str, Any], name: Optional[str] = None) -> Dict[str, Any]:
        """
        Register a content type.

        Args:
            identifier: Content type identifier
            fields: Map of field identifier to kind, or to {'kind', 'translatable'}
            name: Human-readable name
        """
        normalized = {}
        for field_identifier, definition in fields.items():
            if isinstance(definition, str):
                definition = {'kind': definition, 'translatable': True}
            normalized[field_identifier] = {
                'kind': definition['kind'],
                'translatable': definition.get('translatable', True),
            }
        content_type = {
            'id': self._allocate_id(),
            'identifier': identifier,
            'name': name or identifier,
            'fields': normalized,
        }
        self._data['content_types'][identifier] = content_type
        return copy.deepcopy(content_type)

    def add_tag(self, uuid: str, keyword: str, parent_uuid: Optional[str] = None,
                translations: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        tag = {
            'id': self._allocate_id(),
            'uuid': uuid,
            'keyword': keyword,
            'parent_uuid': parent_uuid,
            'translations': translations or {},
        }
        self._data['tags'][uuid] = tag
        return copy.deepcopy(tag)

    def add_object(
        self,
        class_identifier: str,
        parent_node_id: Optional[int] = None,
        names: Optional[Dict[str, str]] = None,
        fields: Optional[Dict[str, Any]] = None,
        translated_fields: Optional[Dict[str, Dict[str, Any]]] = None,
        uuid: Optional[str] = None,
        node_uuid: Optional[str] = None,
        section_identifier: str = 'standard',
        hidden: bool = False
    ) -> Dict[str, Any]:
        """Create and publish a complete object, optionally placed under a parent node."""
        names = names or {'eng-GB': class_identifier}
        language = next(iter(names))
        obj = self.create_skeleton(class_identifier, language, section_identifier, uuid=uuid)
        for locale, name in names.items():
            self.set_name(obj['id'], locale, name)
        for identifier, value in (fields or {}).items():
            self.set_field(obj['id'], identifier, value)
        for locale, values in (translated_fields or {}).items():
            for identifier, value in values.items():
                self.set_field(obj['id'], identifier, value, language=locale)
        if parent_node_id is not None:
            node = self.create_location(parent_node_id, obj['id'], uuid=node_uuid, is_main=True)
            if hidden:
                self.set_location_meta(node['id'], hidden=True)
        self.publish(obj['id'])
        return self.fetch_object(obj['id'])

    # Lookups

    def get_root_node(self) -> Dict[str, Any]:
        return self.fetch_node(self._data['root_node_id'])

    def fetch_object(self, object_id: int) -> Optional[Dict[str, Any]]:
        obj = self._data['objects'].get(str(object_id))
        return copy.deepcopy(obj) if obj else None

    def fetch_object_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        for obj in self._data['objects'].values():
            if obj['uuid'] == uuid:
                return copy.deepcopy(obj)
        return None

    def fetch_node(self, node_id: int) -> Optional[Dict[str, Any]]:
        node = self._data['nodes'].get(str(node_id))
        return copy.deepcopy(node) if node else None

    def fetch_node_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        for node in self._data['nodes'].values():
            if node['uuid'] == uuid:
                return copy.deepcopy(node)
        return None

    def fetch_children(self, node_id: int) -> List[Dict[str, Any]]:
        children = [
            copy.deepcopy(node) for node in self._data['nodes'].values()
            if node['parent_id'] == node_id
        ]
        return sorted(children, key=lambda node: (node['priority'], node['id']))

    def fetch_locations(self, object_id: int) -> List[Dict[str, Any]]:
        nodes = [
            copy.deepcopy(node) for node in self._data['nodes'].values()
            if node['object_id'] == object_id
        ]
        return sorted(nodes, key=lambda node: node['id'])

    def list_sections(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(list(self._data['sections'].values()))

    def list_languages(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(list(self._data['languages'].values()))

    def list_state_groups(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(list(self._data['state_groups'].values()))

    def list_content_types(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(list(self._data['content_types'].values()))

    def fetch_tag_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        tag = self._data['tags'].get(uuid)
        return copy.deepcopy(tag) if tag else None

    # Schema-level mutations

    def create_section(self, identifier: str, name: str, navigation_part_identifier: str) -> Dict[str, Any]:
        if identifier in self._data['sections']:
            raise ObjectAlreadyExists(f"Section '{identifier}' already exists")
        section = {
            'id': self._allocate_id(),
            'identifier': identifier,
            'name': name,
            'navigation_part_identifier': navigation_part_identifier,
        }
        self._data['sections'][identifier] = section
        return copy.deepcopy(section)

    def update_section(self, identifier: str, **fields: Any) -> Dict[str, Any]:
        section = self._data['sections'].get(identifier)
        if section is None:
            raise ObjectDoesNotExist(f"Section '{identifier}' does not exist")
        section.update(fields)
        return copy.deepcopy(section)

    def create_language(self, locale: str, name: str) -> Dict[str, Any]:
        if locale in self._data['languages']:
            raise ObjectAlreadyExists(f"Content language '{locale}' already exists")
        language = {
            'id': self._allocate_id(),
            'locale': locale,
            'name': name,
            'disabled': False,
        }
        self._data['languages'][locale] = language
        return copy.deepcopy(language)

    def update_language(self, locale: str, **fields: Any) -> Dict[str, Any]:
        language = self._data['languages'].get(locale)
        if language is None:
            raise ObjectDoesNotExist(f"Content language '{locale}' does not exist")
        language.update(fields)
        return copy.deepcopy(language)

    def create_state_group(
        self,
        identifier: str,
        translations: Dict[str, Any],
        states: Dict[str, Any]
    ) -> Dict[str, Any]:
        if identifier in self._data['state_groups']:
            raise ObjectAlreadyExists(f"Content state group '{identifier}' already exists")
        group = {
            'id': self._allocate_id(),
            'identifier': identifier,
            'translations': copy.deepcopy(translations or {}),
            'states': copy.deepcopy(states or {}),
        }
        self._data['state_groups'][identifier] = group
        return copy.deepcopy(group)

    def update_state_group(self, identifier: str, states: Dict[str, Any]) -> Dict[str, Any]:
        group = self._data['state_groups'].get(identifier)
        if group is None:
            raise ObjectDoesNotExist(f"Content state group '{identifier}' does not exist")
        for state_identifier, state in states.items():
            group['states'].setdefault(state_identifier, copy.deepcopy(state))
        return copy.deepcopy(group)

    # Object and node lifecycle

    def _object(self, object_id: int) -> Dict[str, Any]:
        obj = self._data['objects'].get(str(object_id))
        if obj is None:
            raise ObjectDoesNotExist(f"Content object {object_id} does not exist")
        return obj

    def _node(self, node_id: int) -> Dict[str, Any]:
        node = self._data['nodes'].get(str(node_id))
        if node is None:
            raise ObjectDoesNotExist(f"Node {node_id} does not exist")
        return node

    def create_skeleton(
        self,
        class_identifier: str,
        language: str,
        section_identifier: Optional[str] = None,
        uuid: Optional[str] = None
    ) -> Dict[str, Any]:
        if class_identifier not in self._data['content_types']:
            raise ObjectDoesNotExist(f"Content type '{class_identifier}' does not exist")
        if uuid and self.fetch_object_by_uuid(uuid):
            raise ObjectAlreadyExists(f"Content object with UUID '{uuid}' already exists")
        object_id = self._allocate_id()
        obj = {
            'id': object_id,
            'uuid': uuid or _new_uuid(),
            'class_identifier': class_identifier,
            'section_identifier': section_identifier or 'standard',
            'initial_language': language,
            'owner_id': None,
            'names': {},
            'fields': {},
            'translated_fields': {},
            'relations': [],
            'states': {},
            'main_node_id': None,
            'published': False,
        }
        self._data['objects'][str(object_id)] = obj
        return copy.deepcopy(obj)

    def create_location(
        self,
        parent_node_id: int,
        object_id: int,
        uuid: Optional[str] = None,
        sort_by: Optional[str] = None,
        priority: int = 0,
        is_main: bool = False
    ) -> Dict[str, Any]:
        self._node(parent_node_id)
        obj = self._object(object_id)
        if uuid and self.fetch_node_by_uuid(uuid):
            raise ObjectAlreadyExists(f"Node with UUID '{uuid}' already exists")
        node_id = self._allocate_id()
        node = {
            'id': node_id,
            'uuid': uuid or _new_uuid(),
            'parent_id': parent_node_id,
            'object_id': object_id,
            'sort_by': sort_by or 'path-asc',
            'priority': priority,
            'hidden': False,
            'is_main': False,
        }
        self._data['nodes'][str(node_id)] = node
        if is_main or obj['main_node_id'] is None:
            self.set_main_location(object_id, node_id)
        return copy.deepcopy(self._data['nodes'][str(node_id)])

    def move_location(self, node_id: int, new_parent_node_id: int) -> Dict[str, Any]:
        node = self._node(node_id)
        self._node(new_parent_node_id)
        node['parent_id'] = new_parent_node_id
        return copy.deepcopy(node)

    def set_name(self, object_id: int, language: str, name: str) -> None:
        self._object(object_id)['names'][language] = name

    def set_field(self, object_id: int, identifier: str, value: Any, language: Optional[str] = None) -> None:
        obj = self._object(object_id)
        content_type = self._data['content_types'][obj['class_identifier']]
        if identifier not in content_type['fields']:
            raise ObjectDoesNotExist(
                f"Content type '{obj['class_identifier']}' has no field '{identifier}'"
            )
        if language is None:
            obj['fields'][identifier] = copy.deepcopy(value)
        else:
            obj['translated_fields'].setdefault(language, {})[identifier] = copy.deepcopy(value)

    def set_owner(self, object_id: int, owner_id: Optional[int]) -> None:
        if owner_id is not None:
            self._object(owner_id)
        self._object(object_id)['owner_id'] = owner_id

    def set_section(self, object_id: int, section_identifier: str) -> None:
        self._object(object_id)['section_identifier'] = section_identifier

    def assign_relation(self, object_id: int, target_object_id: int) -> None:
        obj = self._object(object_id)
        self._object(target_object_id)
        if target_object_id not in obj['relations']:
            obj['relations'].append(target_object_id)

    def set_main_location(self, object_id: int, node_id: int) -> None:
        obj = self._object(object_id)
        target = self._node(node_id)
        if target['object_id'] != object_id:
            raise ObjectDoesNotExist(f"Node {node_id} is not a location of object {object_id}")
        for node in self._data['nodes'].values():
            if node['object_id'] == object_id:
                node['is_main'] = node['id'] == node_id
        obj['main_node_id'] = node_id

    def set_location_meta(
        self,
        node_id: int,
        sort_by: Optional[str] = None,
        priority: Optional[int] = None,
        hidden: Optional[bool] = None
    ) -> None:
        node = self._node(node_id)
        if sort_by is not None:
            node['sort_by'] = sort_by
        if priority is not None:
            node['priority'] = priority
        if hidden is not None:
            node['hidden'] = hidden

    def assign_state(self, object_id: int, group_identifier: str, state_identifier: str) -> None:
        group = self._data['state_groups'].get(group_identifier)
        if group is None or state_identifier not in group['states']:
            raise ObjectDoesNotExist(f"Content state '{group_identifier}/{state_identifier}' does not exist")
        self._object(object_id)['states'][group_identifier] = state_identifier

    def publish(self, object_id: int) -> None:
        self._object(object_id)['published'] = True

    @contextmanager
    def transaction(self) -> Iterator['MemoryContentStore']:
        """Snapshot the store and restore it if the block raises."""
        snapshot = copy.deepcopy(self._data) if self.transaction_depth == 0 else None
        self.transaction_depth += 1
        try:
            yield self
        except Exception:
            if snapshot is not None:
                self._data = snapshot
                logger.debug("Rolled back content store transaction")
            raise
        finally:
            self.transaction_depth -= 1


__all__ = ['MemoryContentStore', 'DEFAULT_ROOT_UUID']
