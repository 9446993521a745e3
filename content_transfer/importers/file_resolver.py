"""
File record resolution.

Turns a file record into exactly one local file before any attribute
referencing it is committed. Sources are tried in order: a cached copy whose
checksum and size match, the inline base64 content (written to temporary
storage), then an external path relative to the file storage directory or the
bundle directory.
"""

import base64
import binascii
import hashlib
import logging
import mimetypes
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from ..exceptions import ImportDenied
from ..models import FileRecord

logger = logging.getLogger(__name__)


def compute_md5(file_path: Path) -> str:
    """Compute the MD5 checksum of a file."""
    hash_md5 = hashlib.md5()
    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(4096), b""):
            hash_md5.update(chunk)
    return hash_md5.hexdigest()


class FileResolver:
    """Resolves file records to local paths."""

    def __init__(
        self,
        temp_directory: Optional[str] = None,
        file_cache: Optional[str] = None,
        file_storage: Optional[str] = None,
        bundle_directory: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize file resolver.

        Args:
            temp_directory: Parent directory for temporary files, system default if None
            file_cache: Directory holding previously resolved files, named by file UUID
            file_storage: Directory holding externally stored file content
            bundle_directory: Directory of the bundle, for relative paths
            logger: Optional logger instance
        """
        self.temp_directory = temp_directory
        self.file_cache = Path(file_cache) if file_cache else None
        self.file_storage = Path(file_storage) if file_storage else None
        self.bundle_directory = Path(bundle_directory) if bundle_directory else None
        self.logger = logger or logging.getLogger(__name__)
        self.work_directory: Optional[str] = None

    def resolve(self, record: FileRecord) -> FileRecord:
        """
        Resolve a file record in place.

        Returns:
            The record, with local_path set when a source was found

        Raises:
            ImportDenied: Inline or external content does not match its checksum
        """
        if not record.found:
            self.logger.debug(f"File {record.uuid} was not found at export time")
            return record

        if record.mime_type is None:
            name = record.original_filename or record.original_path or record.path or ''
            record.mime_type, _ = mimetypes.guess_type(name)

        cached = self._from_cache(record)
        if cached is not None:
            record.local_path = str(cached)
            record.is_temporary = False
            self.logger.debug(f"File {record.uuid} reused from cache: {cached}")
            return record

        if record.content_b64:
            record.local_path = self._write_inline(record)
            record.is_temporary = True
            return record

        external = self._from_external_path(record)
        if external is not None:
            record.local_path = str(external)
            record.is_temporary = False
            self.logger.debug(f"File {record.uuid} resolved to {external}")
            return record

        self.logger.warning(
            f"File {record.uuid} ({record.original_filename or record.path}) could not be resolved"
        )
        return record

    def _matches(self, path: Path, record: FileRecord) -> bool:
        if record.size is not None and path.stat().st_size != record.size:
            return False
        if record.md5 and compute_md5(path) != record.md5:
            return False
        return True

    def _from_cache(self, record: FileRecord) -> Optional[Path]:
        if self.file_cache is None or not record.md5:
            return None
        candidate = self.file_cache / record.uuid
        if candidate.is_file() and self._matches(candidate, record):
            return candidate
        return None

    def _write_inline(self, record: FileRecord) -> str:
        try:
            content = base64.b64decode(record.content_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImportDenied(f"File {record.uuid} has invalid inline content: {e}", 'file', record.uuid) from e

        if record.md5 and hashlib.md5(content).hexdigest() != record.md5:
            raise ImportDenied(f"File {record.uuid} failed checksum verification", 'file', record.uuid)

        if self.work_directory is None:
            if self.temp_directory:
                os.makedirs(self.temp_directory, exist_ok=True)
            self.work_directory = tempfile.mkdtemp(prefix='content-transfer-', dir=self.temp_directory)

        filename = os.path.basename(record.original_filename or record.uuid)
        target = Path(self.work_directory) / record.uuid
        target.mkdir(exist_ok=True)
        target = target / filename
        target.write_bytes(content)
        record.size = len(content)
        self.logger.debug(f"File {record.uuid} written to {target}")
        return str(target)

    def _candidates(self, record: FileRecord) -> List[Path]:
        candidates = []
        for value in (record.path, record.original_path):
            if not value:
                continue
            path = Path(value)
            if path.is_absolute():
                candidates.append(path)
                continue
            if self.file_storage is not None:
                candidates.append(self.file_storage / path)
                candidates.append(self.file_storage / path.name)
            if self.bundle_directory is not None:
                candidates.append(self.bundle_directory / path)
        return candidates

    def _from_external_path(self, record: FileRecord) -> Optional[Path]:
        for candidate in self._candidates(record):
            if not candidate.is_file():
                continue
            if record.md5 and compute_md5(candidate) != record.md5:
                raise ImportDenied(
                    f"File {record.uuid} at {candidate} failed checksum verification", 'file', record.uuid
                )
            return candidate
        return None


__all__ = ['FileResolver', 'compute_md5']
