"""Data models for the content transfer working graph."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger('content_transfer')


class RecordType(Enum):
    """Portable record type tags."""
    SECTION = "section"
    LANGUAGE = "language"
    STATE_GROUP = "content-state-group"
    CONTENT_TYPE = "content-type"
    CONTENT_OBJECT = "content-object"
    FILE = "file"
    TAG = "tag"
    INDEX = "index"
    BUNDLE = "bundle"

    @classmethod
    def from_tag(cls, tag: str) -> 'RecordType':
        """Resolve a `__type__` tag, accepting legacy aliases.

        Raises:
            ValueError: If the tag is unknown
        """
        return cls(RECORD_TYPE_ALIASES.get(tag, tag))


# Type tags written by older exporters
RECORD_TYPE_ALIASES = {
    'ez_section': RecordType.SECTION.value,
    'ez_contentlanguage': RecordType.LANGUAGE.value,
    'ez_contentstate': RecordType.STATE_GROUP.value,
    'ez_contentclass': RecordType.CONTENT_TYPE.value,
    'ez_contentobject': RecordType.CONTENT_OBJECT.value,
    'eztag': RecordType.TAG.value,
    'ezc_content_bundle': RecordType.BUNDLE.value,
}

# Bundle envelope keys, in the order they must be ingested
BUNDLE_SECTIONS = [
    ('content_languages', RecordType.LANGUAGE),
    ('sections', RecordType.SECTION),
    ('content_states', RecordType.STATE_GROUP),
    ('tags', RecordType.TAG),
    ('content_classes', RecordType.CONTENT_TYPE),
    ('files', RecordType.FILE),
    ('content_objects', RecordType.CONTENT_OBJECT),
]


class RecordStatus(Enum):
    """Lifecycle status of node and object records."""
    NEW = "new"
    PRESENT = "present"
    CREATED = "created"
    REFERENCE = "reference"
    REMOVED = "removed"


class Visibility(Enum):
    """Node visibility."""
    VISIBLE = "visible"
    HIDDEN = "hidden"
    INVISIBLE = "invisible"


class UpdateScope(Enum):
    """Aspects of an already present object that may be overwritten."""
    OBJECT = "object"
    ATTRIBUTE = "attribute"
    RELATION = "relation"
    LOCATION = "location"

    @classmethod
    def all(cls) -> Set['UpdateScope']:
        return set(cls)

    @classmethod
    def parse(cls, values: Optional[List[str]]) -> Set['UpdateScope']:
        """Parse a list of scope names, `all` expands to every scope."""
        if not values:
            return set()
        if 'all' in values:
            return cls.all()
        return {cls(value) for value in values}


DEFAULT_SORT_BY = "path-asc"


@dataclass
class ObjectReference:
    """Reference to another object, by UUID with optional human-readable hints."""

    uuid: str
    object_id: Optional[int] = None
    name: Optional[str] = None
    class_identifier: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ObjectReference':
        return cls(
            uuid=data['uuid'],
            object_id=data.get('object_id'),
            name=data.get('name'),
            class_identifier=data.get('class_identifier')
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {'uuid': self.uuid}
        if self.object_id is not None:
            data['object_id'] = self.object_id
        if self.name is not None:
            data['name'] = self.name
        if self.class_identifier is not None:
            data['class_identifier'] = self.class_identifier
        return data


@dataclass
class Translation:
    """Name and translatable attributes for one language."""

    name: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LocationMeta:
    """Placement of an object in the tree, as read from the portable record."""

    uuid: str
    parent_node_uuid: str
    sort_by: str = DEFAULT_SORT_BY
    priority: int = 0
    visibility: Visibility = Visibility.VISIBLE
    is_main: bool = False
    original_parent_node_uuid: Optional[str] = None
    node_id: Optional[int] = None
    original_uuid: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocationMeta':
        return cls(
            uuid=data['uuid'],
            parent_node_uuid=data['parent_node_uuid'],
            sort_by=data.get('sort_by') or DEFAULT_SORT_BY,
            priority=int(data.get('priority') or 0),
            visibility=Visibility(data.get('visibility') or Visibility.VISIBLE.value),
            is_main=bool(data.get('is_main', False)),
            original_parent_node_uuid=data.get('parent_node_uuid'),
            node_id=data.get('node_id'),
            original_uuid=data['uuid']
        )


@dataclass
class NodeRecord:
    """A location in the tree."""

    uuid: str
    parent_uuid: Optional[str]
    object_uuid: Optional[str]
    status: RecordStatus = RecordStatus.NEW
    children: Set[str] = field(default_factory=set)
    sort_by: str = DEFAULT_SORT_BY
    priority: int = 0
    visibility: Visibility = Visibility.VISIBLE
    is_main: bool = False
    node_id: Optional[int] = None
    original_uuid: Optional[str] = None
    original_parent_uuid: Optional[str] = None

    def __post_init__(self) -> None:
        if self.original_uuid is None:
            self.original_uuid = self.uuid
        if self.original_parent_uuid is None:
            self.original_parent_uuid = self.parent_uuid

    @property
    def is_hidden(self) -> bool:
        return self.visibility == Visibility.HIDDEN

    def sorted_children(self) -> List[str]:
        """Children in a stable order so walks are deterministic."""
        return sorted(self.children)


@dataclass
class ObjectRecord:
    """A content object in the working graph."""

    uuid: str
    class_identifier: str
    status: RecordStatus = RecordStatus.NEW
    owner: Optional[ObjectReference] = None
    section_identifier: Optional[str] = None
    translations: Dict[str, Translation] = field(default_factory=dict)
    attributes: Dict[str, Any] = field(default_factory=dict)
    relations: Dict[str, ObjectReference] = field(default_factory=dict)
    locations: Dict[str, LocationMeta] = field(default_factory=dict)
    main_node_uuid: Optional[str] = None
    states: Dict[str, str] = field(default_factory=dict)
    update_scope: Set[UpdateScope] = field(default_factory=set)
    object_id: Optional[int] = None
    original_uuid: Optional[str] = None
    remote_hint: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.original_uuid is None:
            self.original_uuid = self.uuid

    @property
    def main_language(self) -> Optional[str]:
        """First translation encountered, used to seed the skeleton."""
        for locale in self.translations:
            return locale
        return None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        language = self.main_language
        if language and self.translations[language].name:
            return self.translations[language].name
        return self.uuid

    def iter_attribute_values(self):
        """Yield (language, field, value) for all attributes, language is None for shared ones."""
        for identifier, value in self.attributes.items():
            yield None, identifier, value
        for language, translation in self.translations.items():
            for identifier, value in translation.attributes.items():
                yield language, identifier, value

    def set_attribute_value(self, language: Optional[str], identifier: str, value: Any) -> None:
        if language is None:
            self.attributes[identifier] = value
        else:
            self.translations[language].attributes[identifier] = value


@dataclass
class FileRecord:
    """A binary file referenced by file and image attributes."""

    uuid: str
    original_path: Optional[str] = None
    path: Optional[str] = None
    content_b64: Optional[str] = None
    md5: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None
    original_filename: Optional[str] = None
    local_path: Optional[str] = None
    is_temporary: bool = False
    found: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileRecord':
        return cls(
            uuid=data['uuid'],
            original_path=data.get('original_path'),
            path=data.get('path'),
            content_b64=data.get('content_b64'),
            md5=data.get('md5'),
            size=data.get('size'),
            mime_type=data.get('mime_type'),
            original_filename=data.get('original_filename'),
            found=data.get('found', True)
        )

    @property
    def is_resolved(self) -> bool:
        return self.local_path is not None


@dataclass
class RemapEntry:
    """Redirect from one portable identifier to another, or to removed."""

    original_uuid: str
    new_uuid: Optional[str] = None
    removed: bool = False
    name: Optional[str] = None
    class_identifier: Optional[str] = None


@dataclass
class FieldMapping:
    """Destination field and kind for one source field."""

    identifier: str
    kind: str
    translatable: bool = True


@dataclass
class ContentTypeMapping:
    """Active field map of a content type as seen by incoming objects."""

    source_identifier: str
    identifier: str
    fields: Dict[str, FieldMapping] = field(default_factory=dict)
    skipped: Set[str] = field(default_factory=set)

    def field_for(self, source_field: str) -> Optional[FieldMapping]:
        return self.fields.get(source_field)


__all__ = [
    'RecordType',
    'RECORD_TYPE_ALIASES',
    'BUNDLE_SECTIONS',
    'RecordStatus',
    'Visibility',
    'UpdateScope',
    'DEFAULT_SORT_BY',
    'ObjectReference',
    'Translation',
    'LocationMeta',
    'NodeRecord',
    'ObjectRecord',
    'FileRecord',
    'RemapEntry',
    'FieldMapping',
    'ContentTypeMapping',
]
