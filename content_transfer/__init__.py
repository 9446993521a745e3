"""
Content Transfer Engine

Moves subtrees of a hierarchical content graph between content stores as
portable, UUID-keyed records, reconciling them with the destination.

Features:
- Export of selected subtrees with their schema, files and tags
- JSON bundle documents and JSON-lines record streams
- Import that recognises objects already present and updates them in place
- Remapping of identities across records ingested before and after
- Forward references to parents and related objects resolved in two phases
- Policy driven or interactive decisions at each conflict
- Pluggable record transformers and static identifier maps
- Dry-run and verify-only modes

Basic Usage:
    1. Copy config.yaml.example to config.yaml
    2. Point `source` and `destination` at your stores
    3. Run: content-transfer export <node-uuid> -o bundle.json
    4. Run: content-transfer import bundle.json

Example Configuration (config.yaml):
    destination:
        type: rest
        base_url: "https://cms.example.com/api"
        api_token: ${CMS_API_TOKEN}

    import:
        start_node: "5b1e0c4f2d8a4e7b9c3f6a1d2e4b8c7a"
        policies:
            missing-relation: remove
"""

__version__ = "1.0.0"
__description__ = "Import/export reconciliation engine for hierarchical content"

from .config_loader import ConfigLoader, get_nested
from .exceptions import (
    ConfigurationError,
    ImportDenied,
    OrphanedNodesError,
    RecordTypeError,
    SchemaMismatchError,
    SyncError,
    TransferError,
    UnresolvedReferenceError,
)
from .logger import ProgressTracker, log_config, log_section, setup_logging

__all__ = [
    '__version__',
    '__description__',

    # Configuration
    'ConfigLoader',
    'get_nested',

    # Errors
    'TransferError',
    'ConfigurationError',
    'RecordTypeError',
    'ImportDenied',
    'SchemaMismatchError',
    'UnresolvedReferenceError',
    'OrphanedNodesError',
    'SyncError',

    # Logging
    'setup_logging',
    'ProgressTracker',
    'log_section',
    'log_config',
]
