"""
Verify pass.

Walks the working graph from each starting point without touching the
destination and checks that every object about to be written is complete:
owners, relations, embeds and files must resolve, and every object needs at
least one translation. Unresolvable references are settled through the
missing-* decision points; a `remove` answer is remembered as a removed remap
so the same target is never asked about twice.
"""

from typing import Any, Dict, List, Optional, Set

from ..converters import get_codec
from ..exceptions import ImportDenied, UnresolvedReferenceError
from ..models import FileRecord, NodeRecord, ObjectRecord, RecordStatus, RecordType
from .decisions import Decision, DecisionPoint
from .import_session import ImportSession


class ImportVerifier:
    """Read-only checks of the working graph before sync."""

    def __init__(self, session: ImportSession):
        self.session = session
        self.tables = session.tables
        self.store = session.store
        self.logger = session.logger

        self.verified: Set[str] = set()
        self.issues: List[Dict[str, Any]] = []
        self._removed_files: Set[str] = set()
        self._current: Optional[ObjectRecord] = None

    def verify(self, roots: List[NodeRecord]) -> Dict[str, Any]:
        """
        Verify every object reachable from the starting points.

        Returns:
            Report with the number of verified objects and the issues found
        """
        for root in roots:
            self.verify_node(root)
        self.logger.info(f"Verified {len(self.verified)} content object(s), {len(self.issues)} issue(s)")
        return {'verified': len(self.verified), 'issues': list(self.issues)}

    def verify_node(self, root: NodeRecord) -> None:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.status == RecordStatus.REMOVED:
                continue

            if node.status in (RecordStatus.NEW, RecordStatus.CREATED, RecordStatus.PRESENT):
                obj = self.tables.objects.get(node.object_uuid)
                if obj is not None and obj.uuid not in self.verified:
                    self.verify_object(obj)

            for child_uuid in reversed(node.sorted_children()):
                child = self.tables.nodes.get(child_uuid)
                if child is not None:
                    stack.append(child)

    def verify_object(self, obj: ObjectRecord) -> None:
        """
        Check one object and drop the references that cannot be resolved.

        Raises:
            ImportDenied: The object has no translation
            UnresolvedReferenceError: A reference is missing and the decision was abort
        """
        self.verified.add(obj.uuid)
        self._current = obj
        try:
            if not obj.translations:
                raise ImportDenied(
                    f"Content object '{obj.display_name}' has no translation",
                    RecordType.CONTENT_OBJECT.value,
                    obj.uuid
                )

            if obj.owner is not None:
                owner_uuid = self.resolve_reference(obj.owner.uuid, DecisionPoint.MISSING_OWNER)
                if owner_uuid is None:
                    obj.owner = None
                else:
                    obj.owner.uuid = owner_uuid

            relations = {}
            for target_uuid, reference in obj.relations.items():
                new_uuid = self.resolve_relation(target_uuid)
                if new_uuid is not None:
                    reference.uuid = new_uuid
                    relations[new_uuid] = reference
            obj.relations = relations

            for language, field_identifier, value in list(obj.iter_attribute_values()):
                codec = get_codec(self.tables.field_kind(obj.class_identifier, field_identifier))
                obj.set_attribute_value(language, field_identifier, codec.verify(value, self))
        finally:
            self._current = None

    # Resolution callbacks, also used by the codecs

    def _describe_current(self) -> str:
        if self._current is None:
            return 'unknown object'
        return f"'{self._current.display_name}' ({self._current.uuid})"

    def _exists(self, uuid: str, node: bool) -> bool:
        if node:
            record = self.tables.nodes.get(uuid)
            if record is not None:
                return record.status != RecordStatus.REMOVED
            return self.store.fetch_node_by_uuid(uuid) is not None
        return self.session.resolve_object(uuid) is not None

    def _settle_missing(self, uuid: str, point: DecisionPoint, what: str) -> None:
        """Ask what to do about a missing target, raising unless it may be removed."""
        message = f"{what} {uuid} referenced by {self._describe_current()} cannot be found. Remove the reference?"
        decision = self.session.decide(point, message, uuid=uuid, referrer=self._current and self._current.uuid)
        if decision != Decision.REMOVE:
            raise UnresolvedReferenceError(
                f"{what} {uuid} referenced by {self._describe_current()} cannot be resolved",
                RecordType.CONTENT_OBJECT.value,
                self._current.uuid if self._current else uuid
            )
        self.issues.append({
            'object': self._current.uuid if self._current else None,
            'reference': uuid,
            'point': point.value,
            'action': decision.value,
        })
        self.logger.warning(f"Removed reference to missing {what.lower()} {uuid} from {self._describe_current()}")

    def resolve_reference(self, uuid: str, point: DecisionPoint, node: bool = False) -> Optional[str]:
        """
        Resolve a reference through the remap table and check its target exists.

        Returns:
            The target UUID, or None when the reference must be dropped
        """
        target_uuid, removed = self.tables.remaps.resolve(uuid)
        if removed:
            return None
        if node:
            record = self.tables.nodes.get(target_uuid)
            if record is not None and record.status == RecordStatus.REMOVED:
                return None
        if self._exists(target_uuid, node):
            return target_uuid

        what = {
            DecisionPoint.MISSING_OWNER: 'Owner',
            DecisionPoint.MISSING_RELATION: 'Related object',
            DecisionPoint.MISSING_EMBED: 'Embedded node' if node else 'Embedded object',
        }.get(point, 'Object')
        self._settle_missing(target_uuid, point, what)
        self.tables.remaps.add(target_uuid, removed=True)
        return None

    def resolve_relation(self, uuid: str) -> Optional[str]:
        return self.resolve_reference(uuid, DecisionPoint.MISSING_RELATION)

    def resolve_embed(self, uuid: str, node: bool = False) -> Optional[str]:
        return self.resolve_reference(uuid, DecisionPoint.MISSING_EMBED, node=node)

    def resolve_file(self, uuid: str) -> Optional[FileRecord]:
        record = self.tables.files.get(uuid)
        if record is not None and record.is_resolved:
            return record
        if uuid in self._removed_files:
            return None
        self._settle_missing(uuid, DecisionPoint.MISSING_FILE, 'File')
        self._removed_files.add(uuid)
        return None

    def resolve_tag(self, uuid: str) -> bool:
        if uuid in self.tables.tags:
            return True
        return self.store.fetch_tag_by_uuid(uuid) is not None

    def warn(self, message: str) -> None:
        self.logger.warning(f"{self._describe_current()}: {message}")
        self.issues.append({
            'object': self._current.uuid if self._current else None,
            'reference': None,
            'point': None,
            'action': message,
        })


__all__ = ['ImportVerifier']
