"""Content store package.

Package Structure:
- base: ContentStore interface and store errors
- memory_store: Dictionary-backed store with snapshot rollback and JSON persistence
- rest_store: REST API client with retries, rate limiting and compensating rollback

Configuration Referenced:
- source.*: Store read by the exporter
- destination.*: Store written by the importer
"""

import logging
from pathlib import Path
from typing import Any, Dict

from .base import (
    ContentStore,
    ObjectAlreadyExists,
    ObjectDoesNotExist,
    StoreConnectionError,
    StoreError,
)
from .memory_store import DEFAULT_ROOT_UUID, MemoryContentStore
from .rest_store import RestContentStore

logger = logging.getLogger('content_transfer.stores')


def create_store(store_config: Dict[str, Any]) -> ContentStore:
    """
    Create a content store from a `source` or `destination` config section.

    Args:
        store_config: Section with `type` (memory or rest) and type specific keys

    Returns:
        Configured content store
    """
    store_type = store_config.get('type', 'memory')
    if store_type == 'rest':
        return RestContentStore.from_config(store_config)
    if store_type == 'memory':
        path = store_config.get('path')
        if path and Path(path).exists():
            logger.info(f"Loading content store from {path}")
            return MemoryContentStore.load(path)
        return MemoryContentStore(root_uuid=store_config.get('root_uuid', DEFAULT_ROOT_UUID))
    raise ValueError(f"Unknown content store type: {store_type}")


__all__ = [
    'ContentStore',
    'StoreError',
    'ObjectDoesNotExist',
    'ObjectAlreadyExists',
    'StoreConnectionError',
    'MemoryContentStore',
    'RestContentStore',
    'DEFAULT_ROOT_UUID',
    'create_store',
]
