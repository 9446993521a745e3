"""Error taxonomy for the content transfer engine."""

from typing import Optional


class TransferError(Exception):
    """Base class for all transfer errors."""


class ConfigurationError(TransferError):
    """Raised when configuration or transform registration is invalid."""


class RecordTypeError(TransferError):
    """Raised for malformed records: unknown type tag or missing required key."""

    def __init__(self, message: str, record_type: Optional[str] = None):
        super().__init__(message)
        self.record_type = record_type


class ImportDenied(TransferError):
    """Raised when the import cannot continue for the given record."""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        identifier: Optional[str] = None
    ):
        super().__init__(message)
        self.record_type = record_type
        self.identifier = identifier


class SchemaMismatchError(ImportDenied):
    """Raised when a sparse content type does not match the destination schema."""


class UnresolvedReferenceError(ImportDenied):
    """Raised when an owner, relation, embed or file cannot be resolved and policy forbids dropping it."""


class OrphanedNodesError(ImportDenied):
    """Raised when nodes are left without a parent after ingestion."""

    def __init__(self, message: str, orphans: Optional[dict] = None):
        super().__init__(message, record_type='content-object')
        self.orphans = orphans or {}


class SyncError(TransferError):
    """Raised when a structural commit against the destination fails."""

    def __init__(self, message: str, uuid: Optional[str] = None, phase: Optional[str] = None):
        super().__init__(message)
        self.uuid = uuid
        self.phase = phase


__all__ = [
    'TransferError',
    'ConfigurationError',
    'RecordTypeError',
    'ImportDenied',
    'SchemaMismatchError',
    'UnresolvedReferenceError',
    'OrphanedNodesError',
    'SyncError',
]
