"""
Content store interface.

A content store is an installation of the content-management backend, seen
through the operations the transfer engine needs. The exporter reads from a
source store and the importer writes to a destination store.

All entities are exchanged as plain dictionaries:

- object: id, uuid, class_identifier, section_identifier, owner_id,
  names {locale: name}, fields {field: value},
  translated_fields {locale: {field: value}}, relations [object_id],
  states {group: state}, main_node_id, published
- node: id, uuid, parent_id, object_id, sort_by, priority, hidden, is_main
- section: id, identifier, name, navigation_part_identifier
- language: id, locale, name, disabled
- state group: id, identifier, translations, states {identifier: {translations}}
- content type: id, identifier, name, fields {identifier: {kind, translatable}}
- tag: id, uuid, keyword, parent_uuid, translations
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional


class StoreError(Exception):
    """Base error raised by content stores."""


class ObjectDoesNotExist(StoreError):
    """Raised when a referenced entity does not exist in the store."""


class ObjectAlreadyExists(StoreError):
    """Raised when creating an entity whose identifier is already taken."""


class StoreConnectionError(StoreError):
    """Raised when the store cannot be reached."""


class ContentStore(ABC):
    """Operations consumed by the exporter and importer."""

    # Lookups

    @abstractmethod
    def get_root_node(self) -> Dict[str, Any]:
        """Return the absolute root node of the content tree."""

    @abstractmethod
    def fetch_object(self, object_id: int) -> Optional[Dict[str, Any]]:
        """Fetch an object by local identity."""

    @abstractmethod
    def fetch_object_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        """Fetch an object by portable identifier."""

    @abstractmethod
    def fetch_node(self, node_id: int) -> Optional[Dict[str, Any]]:
        """Fetch a node by local identity."""

    @abstractmethod
    def fetch_node_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        """Fetch a node by portable identifier."""

    @abstractmethod
    def fetch_children(self, node_id: int) -> List[Dict[str, Any]]:
        """Return the direct children of a node."""

    @abstractmethod
    def fetch_locations(self, object_id: int) -> List[Dict[str, Any]]:
        """Return all nodes assigned to an object."""

    @abstractmethod
    def list_sections(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_languages(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_state_groups(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_content_types(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def fetch_tag_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        pass

    # Schema-level mutations

    @abstractmethod
    def create_section(self, identifier: str, name: str, navigation_part_identifier: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def update_section(self, identifier: str, **fields: Any) -> Dict[str, Any]:
        pass

    @abstractmethod
    def create_language(self, locale: str, name: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def update_language(self, locale: str, **fields: Any) -> Dict[str, Any]:
        pass

    @abstractmethod
    def create_state_group(
        self,
        identifier: str,
        translations: Dict[str, Any],
        states: Dict[str, Any]
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    def update_state_group(self, identifier: str, states: Dict[str, Any]) -> Dict[str, Any]:
        """Add missing states to an existing group."""

    # Object and node lifecycle

    @abstractmethod
    def create_skeleton(
        self,
        class_identifier: str,
        language: str,
        section_identifier: Optional[str] = None,
        uuid: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a minimal object, only identity, type and primary language."""

    @abstractmethod
    def create_location(
        self,
        parent_node_id: int,
        object_id: int,
        uuid: Optional[str] = None,
        sort_by: Optional[str] = None,
        priority: int = 0,
        is_main: bool = False
    ) -> Dict[str, Any]:
        """Place an object under a parent node, returning the new node."""

    @abstractmethod
    def move_location(self, node_id: int, new_parent_node_id: int) -> Dict[str, Any]:
        pass

    @abstractmethod
    def set_name(self, object_id: int, language: str, name: str) -> None:
        pass

    @abstractmethod
    def set_field(self, object_id: int, identifier: str, value: Any, language: Optional[str] = None) -> None:
        pass

    @abstractmethod
    def set_owner(self, object_id: int, owner_id: Optional[int]) -> None:
        pass

    @abstractmethod
    def set_section(self, object_id: int, section_identifier: str) -> None:
        pass

    @abstractmethod
    def assign_relation(self, object_id: int, target_object_id: int) -> None:
        pass

    @abstractmethod
    def set_main_location(self, object_id: int, node_id: int) -> None:
        pass

    @abstractmethod
    def set_location_meta(
        self,
        node_id: int,
        sort_by: Optional[str] = None,
        priority: Optional[int] = None,
        hidden: Optional[bool] = None
    ) -> None:
        pass

    @abstractmethod
    def assign_state(self, object_id: int, group_identifier: str, state_identifier: str) -> None:
        pass

    @abstractmethod
    def publish(self, object_id: int) -> None:
        pass

    @contextmanager
    def transaction(self) -> Iterator['ContentStore']:
        """Scope a group of mutations, rolled back if the block raises.

        The default implementation has no rollback support.
        """
        yield self

    # Helpers shared by implementations

    def fetch_parent(self, node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        parent_id = node.get('parent_id')
        if parent_id is None:
            return None
        return self.fetch_node(parent_id)

    def fetch_path(self, node: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Return the ancestors of a node, root first."""
        ancestors = []
        current = self.fetch_parent(node)
        while current is not None:
            ancestors.insert(0, current)
            current = self.fetch_parent(current)
        return ancestors


__all__ = [
    'ContentStore',
    'StoreError',
    'ObjectDoesNotExist',
    'ObjectAlreadyExists',
    'StoreConnectionError',
]
