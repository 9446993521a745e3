"""
Record transform pipeline.

Transformers rewrite records on their way into the working graph. They are
registered per category, either for an exact identifier or for the wildcard
`*`; content objects additionally accept class-level and global transformers.
Static maps rename identifiers onto entries that already exist in the
destination without running any code.

Configuration example:

    transforms:
      section:
        transformers: {"*": "my_transforms:SectionRenamer"}
        map: {media: standard}
      content_type:
        map: {article: page}
        attribute_map:
          article: {intro: summary, legacy_field: skip}
      content_object:
        transformers: {"6a1f...": "my_transforms:DropObject"}
        class_transformers: {folder: "my_transforms:FolderToPage"}
        global: ["my_transforms:StripDrafts"]
        map: {"0b2c...": "95ee..."}
"""

import copy
import importlib
import inspect
import logging
from typing import Any, Dict, List, Optional

from ..exceptions import ConfigurationError
from ..stores import ContentStore
from .identity_tables import RemapTable

logger = logging.getLogger(__name__)

SECTION = 'section'
LANGUAGE = 'language'
STATE = 'state'
CONTENT_TYPE = 'content_type'
CONTENT_OBJECT = 'content_object'

IDENTIFIER_CATEGORIES = (SECTION, LANGUAGE, STATE, CONTENT_TYPE)
CATEGORIES = IDENTIFIER_CATEGORIES + (CONTENT_OBJECT,)

# Identifier key of each record category
IDENTIFIER_KEYS = {
    SECTION: 'identifier',
    LANGUAGE: 'locale',
    STATE: 'identifier',
    CONTENT_TYPE: 'identifier',
    CONTENT_OBJECT: 'uuid',
}

WILDCARD = '*'
SKIP_FIELD = 'skip'


class RecordTransformer:
    """
    Base class for record transformers.

    Subclasses override transform(). Returning None leaves the record
    unchanged; a returned record replaces it and may carry a new identifier,
    `removed: True`, or rewritten content.
    """

    def __init__(self, **options: Any):
        self.options = options

    def transform(self, record: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
        """
        Args:
            record: Copy of the record, safe to modify
            key: The registration key that selected this transformer
        """
        return None


def load_transformer(reference: Any) -> RecordTransformer:
    """
    Instantiate a transformer from a configuration reference.

    Args:
        reference: "module:Class" or {"class": "module:Class", "options": {...}}

    Raises:
        ConfigurationError: If the class cannot be found or is not a RecordTransformer
    """
    options = {}
    if isinstance(reference, dict):
        options = reference.get('options') or {}
        reference = reference.get('class')
    if not isinstance(reference, str) or ':' not in reference:
        raise ConfigurationError(f"Transformer reference must be 'module:Class', got {reference!r}")

    module_name, class_name = reference.split(':', 1)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import transformer module '{module_name}': {e}") from e

    transformer_class = getattr(module, class_name, None)
    if transformer_class is None:
        raise ConfigurationError(f"Transformer class '{class_name}' not found in '{module_name}'")
    if not inspect.isclass(transformer_class) or not issubclass(transformer_class, RecordTransformer):
        raise ConfigurationError(f"Transformer '{reference}' is not a RecordTransformer subclass")

    return transformer_class(**options)


class TransformPipeline:
    """Registered transformers and static maps, by category."""

    def __init__(self):
        self.transformers: Dict[str, Dict[str, RecordTransformer]] = {category: {} for category in CATEGORIES}
        self.class_transformers: Dict[str, RecordTransformer] = {}
        self.global_transformers: List[RecordTransformer] = []
        self.static_maps: Dict[str, Dict[str, str]] = {category: {} for category in IDENTIFIER_CATEGORIES}
        self.attribute_maps: Dict[str, Dict[str, str]] = {}
        self.object_map: Dict[str, str] = {}

    # Registration

    def register(self, category: str, key: str, transformer: RecordTransformer) -> None:
        """
        Register a transformer for an exact identifier or the wildcard `*`.

        A content object wildcard is a global transformer.
        """
        if category not in CATEGORIES:
            raise ConfigurationError(f"Unknown transform category '{category}'")
        if category == CONTENT_OBJECT and key == WILDCARD:
            self.register_global(transformer)
            return
        self.transformers[category][key] = transformer

    def register_class(self, class_identifier: str, transformer: RecordTransformer) -> None:
        self.class_transformers[class_identifier] = transformer

    def register_global(self, transformer: RecordTransformer) -> None:
        self.global_transformers.append(transformer)

    def add_static_map(self, category: str, old_identifier: str, new_identifier: str) -> None:
        if category == CONTENT_OBJECT:
            self.object_map[old_identifier] = new_identifier
            return
        if category not in IDENTIFIER_CATEGORIES:
            raise ConfigurationError(f"Unknown transform category '{category}'")
        self.static_maps[category][old_identifier] = new_identifier

    def add_attribute_map(self, content_type: str, old_field: str, new_field: str) -> None:
        """Rename a field of a content type, `skip` drops it."""
        self.attribute_maps.setdefault(content_type, {})[old_field] = new_field

    def seed_remaps(self, remaps: RemapTable) -> None:
        """Pre-seed the remap table with the static object map."""
        for old_uuid, new_uuid in self.object_map.items():
            remaps.add(old_uuid, new_uuid)

    # Application

    def transform(self, category: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Transform a section, language, state group or content type record.

        Order: exact identifier transformer, wildcard transformer, static map.
        The first transformer returning a record wins; the static map applies
        only when no transformer changed the record.

        Returns:
            The record to import, never the caller's instance
        """
        key_name = IDENTIFIER_KEYS[category]
        identifier = record[key_name]
        result = None

        for key in (identifier, WILDCARD):
            transformer = self.transformers[category].get(key)
            if transformer is None:
                continue
            result = transformer.transform(copy.deepcopy(record), key)
            if result is not None:
                logger.debug(f"Transformed {category} '{identifier}' with {type(transformer).__name__}")
                break

        if result is None:
            result = copy.deepcopy(record)
            mapped = self.static_maps[category].get(identifier)
            if mapped is not None:
                logger.debug(f"Mapped {category} '{identifier}' -> '{mapped}'")
                result[key_name] = mapped

        if category == CONTENT_TYPE and identifier in self.attribute_maps:
            field_map = dict(result.get('field_map') or {})
            field_map.update(self.attribute_maps[identifier])
            result['field_map'] = field_map

        return result

    def transform_content_object(self, record: Dict[str, Any], remaps: RemapTable) -> Dict[str, Any]:
        """
        Transform a content object record.

        Order: exact UUID transformer, class transformer, then every global
        transformer in registration order, each receiving the previous result.
        The first identity change (new UUID or removed) is recorded in
        `remaps` immediately.
        """
        original_uuid = record['uuid']
        current = record
        steps = []

        exact = self.transformers[CONTENT_OBJECT].get(original_uuid)
        if exact is not None:
            steps.append((exact, original_uuid))
        class_transformer = self.class_transformers.get(record.get('class_identifier'))
        if class_transformer is not None:
            steps.append((class_transformer, record.get('class_identifier')))
        steps.extend((transformer, WILDCARD) for transformer in self.global_transformers)

        identity_recorded = False
        for transformer, key in steps:
            result = transformer.transform(copy.deepcopy(current), key)
            if result is None:
                continue
            current = result
            removed = bool(current.get('removed'))
            changed = current.get('uuid', original_uuid) != original_uuid
            if (removed or changed) and not identity_recorded:
                remaps.add(
                    original_uuid,
                    new_uuid=current.get('uuid'),
                    removed=removed,
                    name=current.get('name'),
                    class_identifier=current.get('class_identifier')
                )
                identity_recorded = True
            if removed:
                break

        if current is record:
            current = copy.deepcopy(record)
        return current

    # Configuration

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]], store: Optional[ContentStore] = None) -> 'TransformPipeline':
        """
        Build a pipeline from the `transforms` configuration section.

        Args:
            config: The `transforms` section
            store: Destination store used to check static map targets

        Raises:
            ConfigurationError: Unknown categories, unloadable transformers, or
                static maps pointing at identifiers missing from the destination
        """
        pipeline = cls()
        config = config or {}

        for category, section in config.items():
            if category not in CATEGORIES:
                raise ConfigurationError(
                    f"Unknown transform category '{category}'. Valid categories: {list(CATEGORIES)}"
                )
            section = section or {}

            for key, reference in (section.get('transformers') or {}).items():
                pipeline.register(category, str(key), load_transformer(reference))

            for old_identifier, new_identifier in (section.get('map') or {}).items():
                pipeline.add_static_map(category, str(old_identifier), str(new_identifier))

            if category == CONTENT_TYPE:
                for content_type, fields in (section.get('attribute_map') or {}).items():
                    for old_field, new_field in (fields or {}).items():
                        pipeline.add_attribute_map(content_type, old_field, new_field)

            if category == CONTENT_OBJECT:
                for class_identifier, reference in (section.get('class_transformers') or {}).items():
                    pipeline.register_class(class_identifier, load_transformer(reference))
                for reference in section.get('global') or []:
                    pipeline.register_global(load_transformer(reference))

        if store is not None:
            pipeline.validate_targets(store)
        return pipeline

    def validate_targets(self, store: ContentStore) -> None:
        """Check that static map targets exist in the destination."""
        existing = {
            SECTION: {section['identifier'] for section in store.list_sections()},
            LANGUAGE: {language['locale'] for language in store.list_languages()},
            STATE: {group['identifier'] for group in store.list_state_groups()},
        }
        content_types = {content_type['identifier']: content_type for content_type in store.list_content_types()}
        existing[CONTENT_TYPE] = set(content_types)

        for category, static_map in self.static_maps.items():
            for old_identifier, new_identifier in static_map.items():
                if new_identifier not in existing[category]:
                    raise ConfigurationError(
                        f"Static {category} map '{old_identifier}' -> '{new_identifier}': "
                        f"'{new_identifier}' does not exist in the destination"
                    )

        for content_type, fields in self.attribute_maps.items():
            target = self.static_maps[CONTENT_TYPE].get(content_type, content_type)
            definition = content_types.get(target)
            if definition is None:
                continue
            for old_field, new_field in fields.items():
                if new_field != SKIP_FIELD and new_field not in definition.get('fields', {}):
                    raise ConfigurationError(
                        f"Attribute map '{content_type}.{old_field}' -> '{new_field}': "
                        f"content type '{target}' has no field '{new_field}'"
                    )

        for old_uuid, new_uuid in self.object_map.items():
            if store.fetch_object_by_uuid(new_uuid) is None:
                raise ConfigurationError(
                    f"Static content object map '{old_uuid}' -> '{new_uuid}': "
                    f"object '{new_uuid}' does not exist in the destination"
                )


__all__ = [
    'RecordTransformer',
    'TransformPipeline',
    'load_transformer',
    'SECTION',
    'LANGUAGE',
    'STATE',
    'CONTENT_TYPE',
    'CONTENT_OBJECT',
    'SKIP_FIELD',
    'WILDCARD',
]
