"""
Identity and remap tables for one import run.

Holds every index the importer builds while ingesting a record stream:
destination indices for sections, languages, state groups and content types,
identifier remaps, the working graph of object and node records, reverse
indices used to propagate remaps, and the missing-parent queue.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from ..converters import AttributeKind
from ..exceptions import ImportDenied
from ..models import (
    ContentTypeMapping,
    FieldMapping,
    FileRecord,
    NodeRecord,
    ObjectRecord,
    RecordStatus,
    RemapEntry,
)

logger = logging.getLogger(__name__)


class RemapTable:
    """Redirects from portable identifiers to new identifiers or to removed."""

    def __init__(self):
        self._entries: Dict[str, RemapEntry] = {}

    def add(
        self,
        original_uuid: str,
        new_uuid: Optional[str] = None,
        removed: bool = False,
        name: Optional[str] = None,
        class_identifier: Optional[str] = None
    ) -> RemapEntry:
        """
        Register a redirect, replacing any previous entry for the identifier.

        Args:
            original_uuid: Identifier referenced by records
            new_uuid: Identifier to use instead
            removed: Whether references to the identifier must be dropped
            name: Cached display name for diagnostics
            class_identifier: Cached content type for diagnostics
        """
        entry = RemapEntry(
            original_uuid=original_uuid,
            new_uuid=None if removed else new_uuid,
            removed=removed,
            name=name,
            class_identifier=class_identifier
        )
        self._entries[original_uuid] = entry
        if removed:
            logger.debug(f"Remap: {original_uuid} -> removed")
        else:
            logger.debug(f"Remap: {original_uuid} -> {new_uuid}")
        return entry

    def get(self, uuid: str) -> Optional[RemapEntry]:
        return self._entries.get(uuid)

    def resolve(self, uuid: str) -> Tuple[str, bool]:
        """
        Follow redirects to a fixed point.

        Returns:
            (final identifier, removed). Any removed hop makes the result removed.

        Raises:
            ImportDenied: If the redirects form a cycle
        """
        chain = [uuid]
        current = uuid
        while True:
            entry = self._entries.get(current)
            if entry is None:
                return current, False
            if entry.removed:
                return current, True
            if entry.new_uuid is None or entry.new_uuid == current:
                return current, False
            current = entry.new_uuid
            if current in chain:
                raise ImportDenied(
                    f"Remap cycle detected: {' -> '.join(chain + [current])}",
                    record_type='content-object',
                    identifier=uuid
                )
            chain.append(current)

    def is_removed(self, uuid: str) -> bool:
        return self.resolve(uuid)[1]

    def items(self) -> Iterator[Tuple[str, RemapEntry]]:
        return iter(self._entries.items())

    def __contains__(self, uuid: str) -> bool:
        return uuid in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class PendingChildren:
    """Children waiting for a parent node that has not been indexed yet."""

    def __init__(self):
        self._waiting: Dict[str, Set[str]] = {}

    def add(self, parent_uuid: str, child_uuid: str) -> None:
        self._waiting.setdefault(parent_uuid, set()).add(child_uuid)

    def drain(self, parent_uuid: str) -> Set[str]:
        """Remove and return the children waiting for `parent_uuid`."""
        return self._waiting.pop(parent_uuid, set())

    def discard(self, child_uuid: str) -> None:
        for parent_uuid in list(self._waiting):
            children = self._waiting[parent_uuid]
            children.discard(child_uuid)
            if not children:
                del self._waiting[parent_uuid]

    def pending(self) -> Dict[str, Set[str]]:
        return {parent: set(children) for parent, children in self._waiting.items()}

    def __contains__(self, parent_uuid: str) -> bool:
        return parent_uuid in self._waiting

    def __len__(self) -> int:
        return len(self._waiting)


class IdentityTables:
    """All indices of one import run."""

    def __init__(self):
        # Destination indices, filled by load_indices()
        self.sections: Dict[str, Dict[str, Any]] = {}
        self.languages: Dict[str, Dict[str, Any]] = {}
        self.state_groups: Dict[str, Dict[str, Any]] = {}
        self.content_types: Dict[str, Dict[str, Any]] = {}
        self.indices_loaded = False

        # Source identifier -> destination identifier, None when removed
        self.section_map: Dict[str, Optional[str]] = {}
        self.language_map: Dict[str, Optional[str]] = {}
        self.state_map: Dict[str, Optional[str]] = {}
        self.content_type_map: Dict[str, Optional[ContentTypeMapping]] = {}

        # Working graph
        self.objects: Dict[str, ObjectRecord] = {}
        self.nodes: Dict[str, NodeRecord] = {}
        self.files: Dict[str, FileRecord] = {}
        self.tags: Dict[str, Dict[str, Any]] = {}

        # Reverse indices keyed by the referenced identifier as written in the records
        self.owned: Dict[str, Set[str]] = defaultdict(set)
        self.referrers: Dict[str, Set[str]] = defaultdict(set)

        self.remaps = RemapTable()
        self.pending_children = PendingChildren()

    def load_indices(self, store) -> None:
        """Load section, language, state group and content type indices from the destination."""
        self.sections = {section['identifier']: section for section in store.list_sections()}
        self.languages = {language['locale']: language for language in store.list_languages()}
        self.state_groups = {group['identifier']: group for group in store.list_state_groups()}
        self.content_types = {
            content_type['identifier']: content_type for content_type in store.list_content_types()
        }
        self.indices_loaded = True
        logger.debug(
            f"Loaded destination indices: {len(self.sections)} sections, "
            f"{len(self.languages)} languages, {len(self.state_groups)} state groups, "
            f"{len(self.content_types)} content types"
        )

    # Nodes

    def add_node(self, node: NodeRecord, queue_missing_parent: bool = True) -> NodeRecord:
        """
        Index a node, attach it to its parent and adopt children waiting for it.

        A reference placeholder registered earlier under the same UUID is
        replaced, keeping the children already attached to it.

        Args:
            node: Node to index
            queue_missing_parent: Queue the node when its parent is unknown

        Returns:
            The indexed node, which is the existing one for duplicates
        """
        existing = self.nodes.get(node.uuid)
        if existing is not None:
            if existing.status != RecordStatus.REFERENCE or node.status == RecordStatus.REFERENCE:
                return existing
            node.children |= existing.children
            self._detach(existing)

        self.nodes[node.uuid] = node

        if node.parent_uuid is not None:
            parent = self.nodes.get(node.parent_uuid)
            if parent is not None:
                parent.children.add(node.uuid)
            elif queue_missing_parent:
                self.pending_children.add(node.parent_uuid, node.uuid)

        for child_uuid in self.pending_children.drain(node.uuid):
            node.children.add(child_uuid)

        return node

    def reparent(self, node: NodeRecord, parent: NodeRecord) -> None:
        """Move an indexed node under another indexed node."""
        self._detach(node)
        node.parent_uuid = parent.uuid
        parent.children.add(node.uuid)

    def _detach(self, node: NodeRecord) -> None:
        if node.parent_uuid is None:
            return
        parent = self.nodes.get(node.parent_uuid)
        if parent is not None:
            parent.children.discard(node.uuid)
        else:
            self.pending_children.discard(node.uuid)

    def iter_subtree(self, node: NodeRecord) -> Iterator[NodeRecord]:
        """Yield a node and all indexed descendants, pre-order."""
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            for child_uuid in reversed(current.sorted_children()):
                child = self.nodes.get(child_uuid)
                if child is not None:
                    stack.append(child)

    # Reverse indices

    def register_owner(self, owner_uuid: str, owned_uuid: str) -> None:
        self.owned[owner_uuid].add(owned_uuid)

    def register_referrer(self, target_uuid: str, referrer_uuid: str) -> None:
        self.referrers[target_uuid].add(referrer_uuid)

    def dependents_of(self, uuid: str) -> List[str]:
        """Objects owning, relating to or embedding `uuid`."""
        return sorted(self.owned.get(uuid, set()) | self.referrers.get(uuid, set()))

    # Content types

    def mapping_for(self, class_identifier: str) -> Optional[ContentTypeMapping]:
        """
        Active field map for objects of `class_identifier`.

        Types that had no content type record in the stream map onto the
        destination type of the same identifier, field for field.
        """
        if class_identifier in self.content_type_map:
            return self.content_type_map[class_identifier]
        destination = self.content_types.get(class_identifier)
        if destination is None:
            return None
        mapping = ContentTypeMapping(source_identifier=class_identifier, identifier=class_identifier)
        for identifier, definition in destination.get('fields', {}).items():
            mapping.fields[identifier] = FieldMapping(
                identifier=identifier,
                kind=AttributeKind.from_name(definition['kind']).value,
                translatable=definition.get('translatable', True)
            )
        self.content_type_map[class_identifier] = mapping
        return mapping

    def field_kind(self, class_identifier: str, field_identifier: str) -> AttributeKind:
        """Kind of a destination field.

        Raises:
            KeyError: If the content type or field is unknown
        """
        definition = self.content_types[class_identifier]['fields'][field_identifier]
        return AttributeKind.from_name(definition['kind'])

    def live_locations(self, obj: ObjectRecord) -> List[NodeRecord]:
        """Indexed nodes of an object that are not removed."""
        nodes = []
        for node_uuid in obj.locations:
            node = self.nodes.get(node_uuid)
            if node is not None and node.status != RecordStatus.REMOVED:
                nodes.append(node)
        return nodes


__all__ = ['RemapTable', 'PendingChildren', 'IdentityTables']
