"""
Orchestration package for coordinating transfer runs.

This package sequences the phases of an export (Collect → Finalize → Write) or
an import (Ingest → Verify → Sync) and summarises them in a report.
"""

from .transfer_orchestrator import TransferOrchestrator
from .transfer_report import TransferReport

__all__ = [
    'TransferOrchestrator',
    'TransferReport'
]
