"""Import package for the content transfer engine.

This package reconciles a stream of portable records with a destination
content store: records are ingested into a working graph, verified, and then
written in two phases so that forward references resolve.

Package Structure:
- identity_tables: Remap table, pending-children queue and all indices of one run
- decisions: Decision points, policies and the console/policy deciders
- import_session: Session value shared by all passes, with statistics and temp file cleanup
- transform_pipeline: Record transformers and static identifier maps
- file_resolver: Resolves file records to local paths with checksum verification
- content_importer: Ingests records into the working graph
- import_verifier: Read-only verify pass
- import_synchronizer: Two-phase sync into the destination

Key Features:
- Idempotent re-import of unchanged bundles
- Forward parent and reference resolution
- Remaps propagated to records ingested earlier and later
- Update scopes for objects already present in the destination
- Dry-run mode for safe preview of import operations

Configuration Referenced:
- import.*: Interactive mode, start node, file storage, temp directory, policies
- transforms.*: Transformers and static maps per record category
"""

from .content_importer import ContentImporter
from .decisions import (
    ALLOWED_DECISIONS,
    DEFAULT_POLICIES,
    ConsoleDecider,
    Decider,
    Decision,
    DecisionPoint,
    PolicyDecider,
    create_decider,
    parse_policies,
)
from .file_resolver import FileResolver
from .identity_tables import IdentityTables, PendingChildren, RemapTable
from .import_session import ImportOptions, ImportSession
from .import_synchronizer import ImportSynchronizer
from .import_verifier import ImportVerifier
from .transform_pipeline import RecordTransformer, TransformPipeline, load_transformer

__all__ = [
    'ContentImporter',
    'ImportVerifier',
    'ImportSynchronizer',
    'ImportSession',
    'ImportOptions',
    'IdentityTables',
    'RemapTable',
    'PendingChildren',
    'FileResolver',
    'TransformPipeline',
    'RecordTransformer',
    'load_transformer',
    'Decider',
    'PolicyDecider',
    'ConsoleDecider',
    'create_decider',
    'parse_policies',
    'Decision',
    'DecisionPoint',
    'ALLOWED_DECISIONS',
    'DEFAULT_POLICIES',
]
