"""
Transfer orchestrator for coordinating export and import runs.

This module provides the central coordinator that sequences the phases of a
run: Collect → Finalize → Write for exports and Ingest → Verify → Sync → Report
for imports.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from tqdm import tqdm

from ..config_loader import get_nested
from ..exporters import BundleReader, BundleWriter, ContentExporter, ExportOptions
from ..importers import (
    ContentImporter,
    ImportOptions,
    ImportSession,
    ImportSynchronizer,
    ImportVerifier,
    TransformPipeline,
    create_decider,
)
from ..logger import ProgressTracker, log_section
from ..stores import MemoryContentStore, create_store
from .transfer_report import TransferReport

logger = logging.getLogger(__name__)


class TransferOrchestrator:
    """Central coordinator sequencing the phases of an export or import run."""

    def __init__(self, config: Dict[str, Any], logger: Optional[logging.Logger] = None, dry_run: bool = False):
        """
        Initialize transfer orchestrator.

        Args:
            config: Configuration dictionary
            logger: Optional logger instance
            dry_run: Preview an import without writing to the destination
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.dry_run = dry_run
        self.report_generator = TransferReport(self.logger)

        # Stores are created on demand and may be injected by callers
        self.source_store = None
        self.destination_store = None
        self.session: Optional[ImportSession] = None

    def _show_progress(self) -> bool:
        return self.logger.getEffectiveLevel() > logging.DEBUG

    # Export

    def run_export(self, start_nodes: Iterable[str], output: str) -> Dict[str, Any]:
        """
        Export the subtrees below the given nodes into a bundle.

        Args:
            start_nodes: UUIDs of the nodes to export
            output: Bundle path, `.jsonl` or `.ndjson` selects JSON lines

        Returns:
            Report dictionary

        Raises:
            ConfigurationError: A start node does not exist in the source
        """
        durations: Dict[str, float] = {}
        start_nodes = list(start_nodes)
        if self.source_store is None:
            self.source_store = create_store(self.config.get('source') or {})

        exporter = ContentExporter(self.source_store, ExportOptions.from_config(self.config), self.logger)

        log_section("Phase 1: Collect")
        started = time.time()
        with ProgressTracker(len(start_nodes), "start nodes", log_every=1) as tracker:
            for node_uuid in tqdm(start_nodes, desc="Collecting", unit="subtree", disable=not self._show_progress()):
                exporter.add_subtree(node_uuid)
                tracker.increment()
        durations['collect'] = time.time() - started

        log_section("Phase 2: Finalize")
        started = time.time()
        exporter.finalize()
        durations['finalize'] = time.time() - started

        log_section("Phase 3: Write")
        started = time.time()
        written = BundleWriter(output).write(exporter)
        durations['write'] = time.time() - started

        counts = exporter.create_type_counts()
        stats = {
            'content_object': {'exported': exporter.stats['objects']},
            'node': {'exported': exporter.stats['locations']},
            'file': {'exported': exporter.stats['files'], 'failed': exporter.stats['files_missing']},
            'tag': {'exported': exporter.stats['tags']},
            'content_type': {'exported': counts.get('content-type', 0)},
            'language': {'exported': counts.get('language', 0)},
            'section': {'exported': counts.get('section', 0)},
            'state_group': {'exported': counts.get('content-state-group', 0)},
        }
        self.logger.info(f"Export complete: {written} record(s) written to {output}")
        return self.report_generator.generate_report(
            'export', stats, durations, export_info=exporter.create_index()
        )

    # Import

    def run_import(self, bundle_path: str, verify_only: bool = False) -> Dict[str, Any]:
        """
        Import a bundle into the destination.

        Args:
            bundle_path: Bundle document or JSON-lines stream
            verify_only: Stop after the verify pass

        Returns:
            Report dictionary

        Raises:
            TransferError: Fatal import errors, see the exceptions module
        """
        durations: Dict[str, float] = {}
        verification = None
        orphans: Dict[str, Any] = {}

        reader = BundleReader(bundle_path)
        if self.destination_store is None:
            self.destination_store = create_store(self.config.get('destination') or {})

        options = ImportOptions.from_config(self.config, dry_run=self.dry_run)
        options.bundle_directory = str(reader.directory)
        decider = create_decider(options.interactive, get_nested(self.config, 'import.policies'))
        session = ImportSession(self.destination_store, decider, options, self.logger)
        self.session = session

        try:
            pipeline = TransformPipeline.from_config(self.config.get('transforms'), self.destination_store)
            importer = ContentImporter(session, pipeline)

            log_section("Phase 1: Ingest")
            started = time.time()
            total = reader.count()
            with ProgressTracker(total, "records") as tracker:
                for record in tqdm(reader.records(), total=total, desc="Ingesting", unit="record",
                                   disable=not self._show_progress()):
                    importer.import_record(record)
                    tracker.increment(record.get('__type__') if isinstance(record, dict) else None)
            orphans = importer.finalize()
            roots = importer.tree_roots()
            durations['ingest'] = time.time() - started

            log_section("Phase 2: Verify")
            started = time.time()
            verification = ImportVerifier(session).verify(roots)
            durations['verify'] = time.time() - started

            if verify_only:
                self.logger.info("Verify only, destination left untouched")
            else:
                log_section("Phase 3: Sync")
                started = time.time()
                ImportSynchronizer(session).sync(roots)
                durations['sync'] = time.time() - started
                self._save_destination()
        finally:
            session.cleanup()

        return self.report_generator.generate_report(
            'import',
            session.stats,
            durations,
            errors=session.errors,
            orphans=orphans,
            verification=verification,
            export_info=session.export_info,
            dry_run=self.dry_run
        )

    def _save_destination(self) -> None:
        """Persist a file-backed destination."""
        path = get_nested(self.config, 'destination.path')
        if not path or not isinstance(self.destination_store, MemoryContentStore):
            return
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would save destination to {path}")
            return
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.destination_store.save(path)
        self.logger.info(f"Destination saved to {path}")


__all__ = ['TransferOrchestrator']
