"""Content exporter producing portable records from a source content store."""

import base64
import hashlib
import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from ..config_loader import get_nested
from ..converters import AttributeKind, get_codec
from ..exceptions import ConfigurationError
from ..models import BUNDLE_SECTIONS, RecordType, Visibility
from ..stores import ContentStore

FILE_KINDS = (AttributeKind.BINARY_FILE, AttributeKind.IMAGE)
REFERENCE_KINDS = (AttributeKind.RELATION, AttributeKind.RELATION_LIST)


@dataclass
class ExportOptions:
    """What to pull into an export besides the selected nodes."""

    include_owners: bool = False
    include_relations: bool = False
    include_embeds: bool = False
    include_parents: bool = False
    excluded_nodes: Set[str] = field(default_factory=set)
    embed_file_data: bool = True
    file_storage: Optional[str] = None
    sparse: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ExportOptions':
        file_storage = get_nested(config, 'export.file_storage')
        return cls(
            include_owners=get_nested(config, 'export.include_owners', False),
            include_relations=get_nested(config, 'export.include_relations', False),
            include_embeds=get_nested(config, 'export.include_embeds', False),
            include_parents=get_nested(config, 'export.include_parents', False),
            excluded_nodes=set(get_nested(config, 'export.excluded_nodes', []) or []),
            # Files go to the storage directory once one is configured
            embed_file_data=get_nested(config, 'export.embed_file_data', file_storage is None),
            file_storage=file_storage,
            sparse=get_nested(config, 'export.sparse', True)
        )


class ContentExporter:
    """
    Collects objects, nodes and everything they reference into portable records.

    This exporter:
    1. Serialises each object once, with all of its locations
    2. Pulls in content types, languages, sections and state groups in use
    3. Follows owners, relations, embeds and parents when asked to
    4. Registers files and tags referenced by attributes
    5. Builds the index record and the bundle envelope
    """

    def __init__(self, store: ContentStore, options: Optional[ExportOptions] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the content exporter.

        Args:
            store: Source content store
            options: Export options
            logger: Logger instance
        """
        self.store = store
        self.options = options or ExportOptions()
        self.logger = logger or logging.getLogger('content_transfer.exporters.content_exporter')

        self.root_node = store.get_root_node()
        self.content_types = {content_type['identifier']: content_type for content_type in store.list_content_types()}

        # Each entity is serialised once
        self.class_map: Dict[str, Dict[str, Any]] = {}
        self.object_map: Dict[int, Dict[str, Any]] = {}
        self.language_map: Dict[str, Optional[Dict[str, Any]]] = {}
        self.section_map: Dict[str, Optional[Dict[str, Any]]] = {}
        self.state_map: Dict[str, Optional[Dict[str, Any]]] = {}
        self.file_map: Dict[str, Dict[str, Any]] = {}
        self.tag_map: Dict[str, Dict[str, Any]] = {}

        self._uuid_cache: Dict[str, Dict[int, Optional[str]]] = {'object': {}, 'node': {}}
        self._finalized: Set[int] = set()

        self.stats = {
            'objects': 0,
            'locations': 0,
            'files': 0,
            'files_missing': 0,
            'tags': 0,
        }

    # Encode context used by the codecs

    def object_uuid(self, object_id: int) -> Optional[str]:
        cache = self._uuid_cache['object']
        if object_id not in cache:
            obj = self.store.fetch_object(object_id)
            cache[object_id] = obj['uuid'] if obj else None
        return cache[object_id]

    def node_uuid(self, node_id: int) -> Optional[str]:
        cache = self._uuid_cache['node']
        if node_id not in cache:
            node = self.store.fetch_node(node_id)
            cache[node_id] = node['uuid'] if node else None
        return cache[node_id]

    # Record builders

    def export_node(self, node: Dict[str, Any]) -> Dict[str, Any]:
        """Portable location record of a node."""
        parent = self.store.fetch_parent(node)
        ancestors = self.store.fetch_path(node)

        if node.get('hidden'):
            visibility = Visibility.HIDDEN
        elif any(ancestor.get('hidden') for ancestor in ancestors):
            visibility = Visibility.INVISIBLE
        else:
            visibility = Visibility.VISIBLE

        data = {
            'node_id': node['id'],
            'parent_node_id': node.get('parent_id'),
            'uuid': node['uuid'],
            'parent_node_uuid': parent['uuid'] if parent else None,
            'original_depth': len(ancestors),
            'original_path': [ancestor['id'] for ancestor in ancestors] + [node['id']],
            'sort_by': node.get('sort_by'),
            'priority': node.get('priority', 0),
            'visibility': visibility.value,
            'is_main': bool(node.get('is_main')),
        }
        # Top-level nodes start a tree below the absolute root
        if parent is not None and parent.get('parent_id') is None:
            data['node_type'] = 'tree-root'
        return data

    def _encode_fields(self, class_identifier: str, values: Dict[str, Any]) -> Dict[str, Any]:
        definition = self.content_types.get(class_identifier, {}).get('fields', {})
        encoded = {}
        for field_identifier, value in values.items():
            field_definition = definition.get(field_identifier)
            if field_definition is None:
                self.logger.warning(f"Field '{class_identifier}.{field_identifier}' has no definition, skipping")
                continue
            encoded[field_identifier] = get_codec(field_definition['kind']).encode(value, self)
        return encoded

    def export_content_object(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Portable record of an object, without locations."""
        names = obj.get('names') or {}
        main_language = obj.get('initial_language') or next(iter(names), None)
        data = {
            '__type__': RecordType.CONTENT_OBJECT.value,
            'object_id': obj['id'],
            'uuid': obj['uuid'],
            'owner': None,
            'section_identifier': obj.get('section_identifier'),
            'class_identifier': obj['class_identifier'],
            'name': names.get(main_language),
            'main_node': None,
            'states': dict(obj.get('states') or {}),
            'attributes': self._encode_fields(obj['class_identifier'], obj.get('fields') or {}),
            'translations': {},
        }

        if obj.get('main_node_id'):
            data['main_node'] = {'node_id': obj['main_node_id'], 'uuid': self.node_uuid(obj['main_node_id'])}

        if obj.get('owner_id'):
            owner = self.store.fetch_object(obj['owner_id'])
            if owner:
                data['owner'] = {
                    'object_id': owner['id'],
                    'uuid': owner['uuid'],
                    'name': (owner.get('names') or {}).get(owner.get('initial_language')),
                }

        related = []
        for related_id in obj.get('relations') or []:
            target = self.store.fetch_object(related_id)
            if target is None:
                continue
            related.append({
                'object_id': target['id'],
                'uuid': target['uuid'],
                'name': (target.get('names') or {}).get(target.get('initial_language')),
                'class_identifier': target['class_identifier'],
            })
        if related:
            data['related'] = related

        translated_fields = obj.get('translated_fields') or {}
        locales = list(names)
        locales.extend(locale for locale in translated_fields if locale not in names)
        for locale in locales:
            data['translations'][locale] = {
                'name': names.get(locale),
                'attributes': self._encode_fields(obj['class_identifier'], translated_fields.get(locale) or {}),
            }
        return data

    # Collection

    def add_content_type(self, identifier: str) -> None:
        if identifier in self.class_map:
            return
        content_type = self.content_types.get(identifier)
        if content_type is None:
            self.logger.warning(f"Content type '{identifier}' not found in the source")
            return
        data = {
            '__type__': RecordType.CONTENT_TYPE.value,
            'identifier': identifier,
            'name': content_type.get('name'),
            'sparse': self.options.sparse,
            'type_map': {
                field_identifier: definition['kind']
                for field_identifier, definition in content_type.get('fields', {}).items()
            },
        }
        if not self.options.sparse:
            data['fields'] = content_type.get('fields', {})
        self.class_map[identifier] = data

    def add_object(self, obj: Dict[str, Any], with_locations: bool = False) -> None:
        """
        Add an object and the schema entries it uses.

        Args:
            obj: Object as returned by the store
            with_locations: Also add every node the object is placed at
        """
        object_id = obj['id']
        if object_id in self.object_map:
            return

        data = self.export_content_object(obj)
        data['locations'] = {}
        self.object_map[object_id] = data
        self.stats['objects'] += 1

        if data['section_identifier']:
            self.section_map.setdefault(data['section_identifier'], None)
        for group in data['states']:
            self.state_map.setdefault(group, None)
        for locale in data['translations']:
            self.language_map.setdefault(locale, None)

        self.add_content_type(obj['class_identifier'])

        if with_locations:
            for node in self.store.fetch_locations(object_id):
                self.add_node(node)

        if self.options.include_owners and obj.get('owner_id'):
            owner = self.store.fetch_object(obj['owner_id'])
            if owner:
                self.add_object(owner, with_locations=True)

        if self.options.include_relations:
            for related_id in obj.get('relations') or []:
                related = self.store.fetch_object(related_id)
                if related:
                    self.add_object(related, with_locations=True)

    def add_node(self, node: Dict[str, Any]) -> None:
        """Add a node as a location of its object, adding the object when needed."""
        if node['id'] == self.root_node['id'] or node.get('object_id') is None:
            return
        object_id = node['object_id']
        if node['id'] in self.object_map.get(object_id, {}).get('locations', {}):
            return

        if node['uuid'] not in self.options.excluded_nodes:
            if object_id not in self.object_map:
                obj = self.store.fetch_object(object_id)
                if obj is None:
                    self.logger.warning(f"Node {node['uuid']} points at missing object {object_id}")
                    return
                self.add_object(obj)
                self.object_map[object_id]['locations'][node['id']] = self.export_node(node)
                self.stats['locations'] += 1
                for location in self.store.fetch_locations(object_id):
                    if location['id'] not in self.object_map[object_id]['locations']:
                        self.add_node(location)
            else:
                self.object_map[object_id]['locations'][node['id']] = self.export_node(node)
                self.stats['locations'] += 1

        if self.options.include_parents:
            parent = self.store.fetch_parent(node)
            if parent is not None and parent['id'] != self.root_node['id']:
                self.add_node(parent)

    def add_subtree(self, node_uuid: str) -> int:
        """
        Add a node and everything below it, skipping excluded subtrees.

        Returns:
            Number of nodes visited

        Raises:
            ConfigurationError: If the start node does not exist in the source
        """
        start = self.store.fetch_node_by_uuid(node_uuid)
        if start is None:
            raise ConfigurationError(f"Start node '{node_uuid}' does not exist in the source")

        visited = 0
        queue = [start]
        while queue:
            node = queue.pop(0)
            if node['uuid'] in self.options.excluded_nodes:
                self.logger.debug(f"Skipping excluded subtree {node['uuid']}")
                continue
            self.add_node(node)
            visited += 1
            queue.extend(self.store.fetch_children(node['id']))
        self.logger.info(f"Collected {visited} node(s) below {node_uuid}")
        return visited

    def add_query(self, nodes: Iterable[Dict[str, Any]]) -> None:
        for node in nodes:
            self.add_node(node)

    def add_file(self, uuid: str, path: str) -> bool:
        """
        Register file content under a file identifier.

        Returns:
            True if the file was readable and added
        """
        source = Path(path)
        if not source.is_file():
            return False
        try:
            content = source.read_bytes()
        except OSError as e:
            self.logger.warning(f"Failed to read file {path}: {e}")
            return False

        data = {
            '__type__': RecordType.FILE.value,
            'uuid': uuid,
            'original_path': path,
            'original_filename': source.name,
            'size': len(content),
            'md5': hashlib.md5(content).hexdigest(),
        }
        if self.options.embed_file_data or not self.options.file_storage:
            data['content_b64'] = base64.b64encode(content).decode('ascii')
        else:
            storage = Path(self.options.file_storage)
            try:
                storage.mkdir(parents=True, exist_ok=True)
                target = storage / uuid
                shutil.copyfile(source, target)
            except OSError as e:
                self.logger.warning(f"Failed to copy file {path} to {storage}: {e}")
                return False
            data['path'] = str(target)
        self.file_map[uuid] = data
        self.stats['files'] += 1
        return True

    def add_tag(self, uuid: str) -> None:
        """Add a tag and its parents."""
        while uuid and uuid not in self.tag_map:
            tag = self.store.fetch_tag_by_uuid(uuid)
            if tag is None:
                self.logger.warning(f"Tag {uuid} not found in the source")
                return
            data = {
                '__type__': RecordType.TAG.value,
                'uuid': tag['uuid'],
                'keyword': tag.get('keyword'),
                'translations': tag.get('translations') or {},
            }
            if tag.get('parent_uuid'):
                data['parent_uuid'] = tag['parent_uuid']
            self.tag_map[uuid] = data
            self.stats['tags'] += 1
            uuid = tag.get('parent_uuid')

    # Finalization

    def finalize(self) -> None:
        """Fill in language, section and state group records, then follow attribute references."""
        # Attributes may pull in objects with new languages, sections or states
        self.finalize_attributes()

        languages = {language['locale']: language for language in self.store.list_languages()}
        for locale in list(self.language_map):
            language = languages.get(locale, {})
            data = {
                '__type__': RecordType.LANGUAGE.value,
                'locale': locale,
                'name': language.get('name', locale),
            }
            if language.get('disabled') or not self.options.sparse:
                data['is_disabled'] = bool(language.get('disabled'))
            self.language_map[locale] = data

        sections = {section['identifier']: section for section in self.store.list_sections()}
        for identifier in list(self.section_map):
            section = sections.get(identifier, {})
            self.section_map[identifier] = {
                '__type__': RecordType.SECTION.value,
                'identifier': identifier,
                'name': section.get('name', identifier),
                'navigation_part_identifier': section.get('navigation_part_identifier'),
            }

        groups = {group['identifier']: group for group in self.store.list_state_groups()}
        for identifier in list(self.state_map):
            group = groups.get(identifier)
            if group is None:
                self.logger.warning(f"Content state group '{identifier}' not found in the source")
                del self.state_map[identifier]
                continue
            self.state_map[identifier] = {
                '__type__': RecordType.STATE_GROUP.value,
                'identifier': identifier,
                'translations': group.get('translations') or {},
                'states': group.get('states') or {},
            }

    def finalize_attributes(self) -> None:
        """
        Register files and tags and follow embeds and relation attributes.

        Repeats until no new object was pulled in.
        """
        while True:
            pending = [object_id for object_id in self.object_map if object_id not in self._finalized]
            if not pending:
                return
            for object_id in pending:
                self._finalized.add(object_id)
                self._finalize_object(self.object_map[object_id])

    def _finalize_object(self, data: Dict[str, Any]) -> None:
        type_map = self.class_map.get(data['class_identifier'], {}).get('type_map', {})
        values = [(data['attributes'], identifier) for identifier in data['attributes']]
        for translation in data['translations'].values():
            values.extend((translation['attributes'], identifier) for identifier in translation['attributes'])

        for container, identifier in values:
            kind_name = type_map.get(identifier)
            if kind_name is None:
                continue
            kind = AttributeKind.from_name(kind_name)
            container[identifier] = self._finalize_attribute(kind, container[identifier])

    def _finalize_attribute(self, kind: AttributeKind, value: Any) -> Any:
        if not value:
            return value

        if kind in FILE_KINDS:
            uuid = value.get('uuid')
            if uuid in self.file_map:
                return value
            if uuid and self.add_file(uuid, value['path']):
                return value
            self.stats['files_missing'] += 1
            self.logger.warning(f"File {value.get('path')} could not be read, marking as not found")
            return dict(value, found=False)

        if kind == AttributeKind.TAGS:
            for tag in value:
                self.add_tag(tag['uuid'])
            return value

        follow = (
            (kind == AttributeKind.RICH_TEXT and self.options.include_embeds)
            or (kind in REFERENCE_KINDS and self.options.include_relations)
        )
        if follow:
            for uuid in get_codec(kind).references(value):
                obj = self.store.fetch_object_by_uuid(uuid)
                if obj is not None:
                    self.add_object(obj, with_locations=True)
        return value

    # Output

    def _items(self) -> Dict[str, List[Dict[str, Any]]]:
        objects = []
        for data in self.object_map.values():
            record = dict(data)
            record['locations'] = list(data['locations'].values())
            objects.append(record)
        return {
            'content_languages': [data for data in self.language_map.values() if data],
            'sections': [data for data in self.section_map.values() if data],
            'content_states': [data for data in self.state_map.values() if data],
            'tags': list(self.tag_map.values()),
            'content_classes': list(self.class_map.values()),
            'files': list(self.file_map.values()),
            'content_objects': objects,
        }

    def create_type_list(self) -> List[str]:
        items = self._items()
        return [record_type.value for key, record_type in BUNDLE_SECTIONS if items[key]]

    def create_type_counts(self) -> Dict[str, int]:
        items = self._items()
        return {record_type.value: len(items[key]) for key, record_type in BUNDLE_SECTIONS if items[key]}

    def create_index(self) -> Dict[str, Any]:
        return {
            '__type__': RecordType.INDEX.value,
            'export_date': datetime.now(timezone.utc).isoformat(),
            'types': self.create_type_list(),
            'type_counts': self.create_type_counts(),
            'source_root_uuid': self.root_node['uuid'],
        }

    def get_export_items(self) -> Dict[str, List[Dict[str, Any]]]:
        """Non-empty record categories, in ingestion order."""
        items = self._items()
        return {key: items[key] for key, _ in BUNDLE_SECTIONS if items[key]}

    def create_bundle(self) -> Dict[str, Any]:
        bundle = self.create_index()
        bundle['__type__'] = RecordType.BUNDLE.value
        bundle.update(self.get_export_items())
        return bundle


__all__ = ['ContentExporter', 'ExportOptions']
