"""
Sync pass.

Writes the verified working graph into the destination in two phases.

Phase 1 walks every tree pre-order and creates a skeleton object and its
location for each new node, so that every object and node in the import has
a destination identity. Phase 2 walks the trees again and fills in names,
attributes, owners, relations, states and location metadata. Relations and
embeds may point at objects anywhere in the import, which is why content is
only written once all identities exist.
"""

from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..converters import get_codec
from ..exceptions import SyncError
from ..models import NodeRecord, ObjectRecord, RecordStatus, UpdateScope
from ..stores import StoreError
from .decisions import Decision, DecisionPoint
from .import_session import ImportSession


class ImportSynchronizer:
    """Two-phase commit of the working graph into the destination store."""

    def __init__(self, session: ImportSession):
        self.session = session
        self.tables = session.tables
        self.store = session.store
        self.logger = session.logger
        self.dry_run = session.options.dry_run

        self._synced: Set[str] = set()

    def sync(self, roots: List[NodeRecord]) -> Dict[str, Dict[str, int]]:
        """
        Run both phases over all starting points.

        Phase 1 completes over every tree before phase 2 starts on any of them.

        Returns:
            Session statistics

        Raises:
            SyncError: A store operation failed and the decision was abort
        """
        for root in roots:
            self.create_skeletons(root)

        if self.dry_run:
            self.logger.info("[DRY RUN] Skipping content fill-in")
            return self.session.stats

        for root in roots:
            self.fill_content(root)
        return self.session.stats

    def _walk(self, root: NodeRecord):
        """Pre-order walk skipping removed subtrees, children visited after their parent is handled."""
        stack = [root]
        while stack:
            node = stack.pop()
            if node.status == RecordStatus.REMOVED:
                continue
            yield node
            if node.status == RecordStatus.REMOVED:
                continue
            for child_uuid in reversed(node.sorted_children()):
                child = self.tables.nodes.get(child_uuid)
                if child is not None:
                    stack.append(child)

    # Phase 1

    def create_skeletons(self, root: NodeRecord) -> None:
        for node in self._walk(root):
            if node.status == RecordStatus.NEW:
                self._create_node(node)
            elif node.status == RecordStatus.PRESENT:
                obj = self.tables.objects.get(node.object_uuid)
                if obj is not None and UpdateScope.LOCATION in obj.update_scope:
                    self._move_node(node)

    def _create_node(self, node: NodeRecord) -> None:
        obj = self.tables.objects[node.object_uuid]
        parent = self.tables.nodes[node.parent_uuid]

        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would create '{obj.display_name}' at node {node.uuid}")
            return

        def create() -> Tuple[int, Dict[str, Any], bool]:
            with self.store.transaction():
                created_object = False
                object_id = obj.object_id
                if object_id is None:
                    skeleton = self.store.create_skeleton(
                        obj.class_identifier,
                        obj.main_language,
                        obj.section_identifier,
                        uuid=obj.uuid
                    )
                    object_id = skeleton['id']
                    created_object = True
                location = self.store.create_location(
                    parent.node_id,
                    object_id,
                    uuid=node.uuid,
                    sort_by=node.sort_by,
                    priority=node.priority,
                    is_main=node.is_main
                )
            return object_id, location, created_object

        ok, result = self._guarded(node, 'skeleton', create)
        if not ok:
            return

        # Identities are assigned only once the transaction committed
        object_id, location, created_object = result
        obj.object_id = object_id
        node.node_id = location['id']
        node.status = RecordStatus.CREATED
        if obj.status == RecordStatus.NEW:
            obj.status = RecordStatus.CREATED
        if created_object:
            self.session.count('content_object', 'created')
        self.session.count('node', 'created')
        self.logger.debug(f"Created node {node.uuid} (id {node.node_id}) for '{obj.display_name}'")

    def _move_node(self, node: NodeRecord) -> None:
        parent = self.tables.nodes.get(node.parent_uuid) if node.parent_uuid else None
        if parent is None or parent.node_id is None:
            return
        destination = self.store.fetch_node(node.node_id)
        if destination is None or destination.get('parent_id') == parent.node_id:
            return

        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would move node {node.uuid} under {parent.uuid}")
            return

        ok, _ = self._guarded(node, 'move', lambda: self.store.move_location(node.node_id, parent.node_id))
        if ok:
            self.session.count('node', 'updated')
            self.logger.info(f"Moved node {node.uuid} under {parent.uuid}")

    # Phase 2

    def fill_content(self, root: NodeRecord) -> None:
        for node in self._walk(root):
            if node.status == RecordStatus.CREATED:
                self._fill_created(node)
            elif node.status == RecordStatus.PRESENT:
                self._update_present(node)

    def _fill_created(self, node: NodeRecord) -> None:
        obj = self.tables.objects[node.object_uuid]
        if obj.uuid not in self._synced:
            self._synced.add(obj.uuid)
            was_present = obj.status == RecordStatus.PRESENT
            scopes = obj.update_scope if was_present else UpdateScope.all()
            ok, _ = self._guarded(node, 'content', lambda: self._push_object(obj, scopes))
            if not ok:
                return
            obj.status = RecordStatus.PRESENT
            if was_present and scopes:
                self.session.count('content_object', 'updated')

        ok, _ = self._guarded(node, 'location', lambda: self._push_location(node, obj))
        if ok:
            node.status = RecordStatus.PRESENT

    def _update_present(self, node: NodeRecord) -> None:
        """Touch an existing object only within its update scope, once per run."""
        obj = self.tables.objects.get(node.object_uuid) if node.object_uuid else None
        if obj is None or obj.uuid in self._synced:
            return
        self._synced.add(obj.uuid)
        if not obj.update_scope:
            self.logger.debug(f"Content object '{obj.display_name}' left unchanged")
            return

        ok, _ = self._guarded(node, 'content', lambda: self._push_object(obj, obj.update_scope))
        if not ok:
            return
        if UpdateScope.LOCATION in obj.update_scope:
            self._guarded(node, 'location', lambda: self._push_location(node, obj))
        self.session.count('content_object', 'updated')
        self.logger.info(f"Updated content object '{obj.display_name}'")

    def _push_object(self, obj: ObjectRecord, scopes: Set[UpdateScope]) -> None:
        object_id = obj.object_id
        with self.store.transaction():
            if UpdateScope.OBJECT in scopes:
                for language, translation in obj.translations.items():
                    if translation.name:
                        self.store.set_name(object_id, language, translation.name)
                if obj.owner is not None:
                    owner_id = self.session.object_id_for(obj.owner.uuid)
                    if owner_id is not None:
                        self.store.set_owner(object_id, owner_id)
                if obj.section_identifier:
                    self.store.set_section(object_id, obj.section_identifier)
                for group, state in obj.states.items():
                    self.store.assign_state(object_id, group, state)

            if UpdateScope.ATTRIBUTE in scopes:
                for language, field_identifier, value in obj.iter_attribute_values():
                    codec = get_codec(self.tables.field_kind(obj.class_identifier, field_identifier))
                    self.store.set_field(object_id, field_identifier, codec.decode(value, self.session), language)

            if UpdateScope.RELATION in scopes:
                for target_uuid in obj.relations:
                    target_id = self.session.object_id_for(target_uuid)
                    if target_id is not None:
                        self.store.assign_relation(object_id, target_id)

            self.store.publish(object_id)

    def _push_location(self, node: NodeRecord, obj: ObjectRecord) -> None:
        if node.is_main:
            self.store.set_main_location(obj.object_id, node.node_id)
        self.store.set_location_meta(
            node.node_id,
            sort_by=node.sort_by,
            priority=node.priority,
            hidden=node.is_hidden
        )

    # Failure handling

    def _guarded(self, node: NodeRecord, phase: str, operation: Callable[[], Any]) -> Tuple[bool, Optional[Any]]:
        """
        Run a store operation, settling failures through the sync-failure decision.

        Returns:
            (succeeded, result)
        """
        try:
            return True, operation()
        except StoreError as e:
            self.logger.error(f"Sync {phase} failed for node {node.uuid}: {e}")
            self.session.record_error(phase, node.uuid, str(e))
            decision = self.session.decide(
                DecisionPoint.SYNC_FAILURE,
                f"Writing node {node.uuid} failed ({e}). Skip its subtree?",
                uuid=node.uuid,
                phase=phase
            )
            if decision == Decision.ABORT:
                raise SyncError(f"Sync {phase} failed for node {node.uuid}: {e}", uuid=node.uuid, phase=phase) from e
            self._skip_subtree(node)
            return False, None

    def _skip_subtree(self, node: NodeRecord) -> None:
        skipped = 0
        for current in self.tables.iter_subtree(node):
            if current.status in (RecordStatus.REMOVED, RecordStatus.REFERENCE):
                continue
            current.status = RecordStatus.REMOVED
            self.session.count('node', 'failed')
            skipped += 1
            obj = self.tables.objects.get(current.object_uuid) if current.object_uuid else None
            if obj is not None and obj.status == RecordStatus.NEW:
                obj.status = RecordStatus.REMOVED
                self.session.count('content_object', 'failed')
        self.logger.warning(f"Skipped {skipped} node(s) below and including {node.uuid}")


__all__ = ['ImportSynchronizer']
