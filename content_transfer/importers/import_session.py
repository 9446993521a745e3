"""
Import session.

One value owning all state of an import run: identity tables, destination
store, decider, options, statistics and the temporary file cleanup list. It is
passed explicitly to the importer, the verifier and the synchronizer.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..config_loader import get_nested
from ..models import ObjectRecord, RecordStatus
from ..stores import ContentStore
from .decisions import Decider, Decision, DecisionPoint, PolicyDecider
from .identity_tables import IdentityTables


@dataclass
class ImportOptions:
    """Operational settings of an import run."""

    interactive: bool = False
    start_node_uuid: Optional[str] = None
    file_storage: Optional[str] = None
    temp_directory: Optional[str] = None
    file_cache: Optional[str] = None
    bundle_directory: Optional[str] = None
    source_root_uuid: Optional[str] = None
    dry_run: bool = False

    @classmethod
    def from_config(cls, config: Dict[str, Any], dry_run: bool = False) -> 'ImportOptions':
        return cls(
            interactive=get_nested(config, 'import.interactive', False),
            start_node_uuid=get_nested(config, 'import.start_node'),
            file_storage=get_nested(config, 'import.file_storage'),
            temp_directory=get_nested(config, 'import.temp_directory'),
            file_cache=get_nested(config, 'import.file_cache'),
            source_root_uuid=get_nested(config, 'import.source_root_uuid'),
            dry_run=dry_run
        )


class ImportSession:
    """State shared by all passes of one import run."""

    CATEGORIES = (
        'section', 'language', 'state_group', 'content_type',
        'file', 'tag', 'content_object', 'node',
    )
    OUTCOMES = ('created', 'updated', 'skipped', 'removed', 'failed')

    def __init__(
        self,
        store: ContentStore,
        decider: Optional[Decider] = None,
        options: Optional[ImportOptions] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize import session and load the destination indices.

        Args:
            store: Destination content store
            decider: Decision callback, defaults to the default policies
            options: Operational settings
            logger: Optional logger instance
        """
        self.store = store
        self.decider = decider or PolicyDecider()
        self.options = options or ImportOptions()
        self.logger = logger or logging.getLogger(__name__)

        self.tables = IdentityTables()
        self.tables.load_indices(store)
        self.root_node = store.get_root_node()

        self.stats: Dict[str, Dict[str, int]] = {
            category: {outcome: 0 for outcome in self.OUTCOMES} for category in self.CATEGORIES
        }
        self.errors: List[Dict[str, Any]] = []
        self.export_info: Dict[str, Any] = {}
        self.temp_files: List[str] = []
        self.temp_directories: List[str] = []

        self._object_cache: Dict[str, Optional[Dict[str, Any]]] = {}

    @property
    def root_uuid(self) -> str:
        return self.root_node['uuid']

    @property
    def start_uuid(self) -> str:
        """Node receiving the top-level nodes of the stream."""
        return self.options.start_node_uuid or self.root_uuid

    def decide(self, point: DecisionPoint, message: str, **context: Any) -> Decision:
        """Ask the decider to settle a decision point."""
        return self.decider.decide(point, message, context)

    def count(self, category: str, outcome: str, amount: int = 1) -> None:
        self.stats[category][outcome] += amount

    def record_error(self, phase: str, uuid: Optional[str], error: str) -> None:
        self.errors.append({'phase': phase, 'uuid': uuid, 'error': error})

    # Lookups used by the passes and by codecs while decoding

    def resolve_object(self, uuid: str) -> Optional[Union[ObjectRecord, Dict[str, Any]]]:
        """
        Find the object behind a reference.

        Returns:
            The indexed ObjectRecord, the destination object dict, or None when
            the reference is removed or points nowhere
        """
        target_uuid, removed = self.tables.remaps.resolve(uuid)
        if removed:
            return None
        record = self.tables.objects.get(target_uuid)
        if record is not None:
            return None if record.status == RecordStatus.REMOVED else record
        if target_uuid not in self._object_cache:
            self._object_cache[target_uuid] = self.store.fetch_object_by_uuid(target_uuid)
        return self._object_cache[target_uuid]

    def object_id_for(self, uuid: str) -> Optional[int]:
        target = self.resolve_object(uuid)
        if target is None:
            return None
        if isinstance(target, ObjectRecord):
            return target.object_id
        return target['id']

    def node_id_for(self, uuid: str) -> Optional[int]:
        target_uuid, removed = self.tables.remaps.resolve(uuid)
        if removed:
            return None
        node = self.tables.nodes.get(target_uuid)
        if node is not None:
            return None if node.status == RecordStatus.REMOVED else node.node_id
        destination = self.store.fetch_node_by_uuid(target_uuid)
        return destination['id'] if destination else None

    def file_path_for(self, uuid: str) -> Optional[str]:
        record = self.tables.files.get(uuid)
        return record.local_path if record else None

    # Temporary files

    def add_temp_file(self, path: str) -> None:
        self.temp_files.append(path)

    def add_temp_directory(self, path: str) -> None:
        self.temp_directories.append(path)

    def cleanup(self) -> None:
        """Remove temporary files written during the run."""
        for path in self.temp_files:
            try:
                os.remove(path)
                self.logger.debug(f"Removed temporary file {path}")
            except FileNotFoundError:
                pass
            except OSError as e:
                self.logger.warning(f"Failed to remove temporary file {path}: {e}")
        self.temp_files = []
        for path in self.temp_directories:
            shutil.rmtree(path, ignore_errors=True)
        self.temp_directories = []


__all__ = ['ImportOptions', 'ImportSession']
