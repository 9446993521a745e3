"""Export package for the content transfer engine.

This package serialises a selection of a source content store into portable
records that reference everything by UUID.

Package Structure:
- content_exporter: Collects objects, locations, schema entries, files and tags
- bundle_io: Writes and reads JSON bundle documents and JSON-lines streams

Configuration Referenced:
- source.*: Store read by the exporter
- export.*: Include options, excluded nodes and file storage
"""

from .bundle_io import BundleReader, BundleWriter, detect_format
from .content_exporter import ContentExporter, ExportOptions

__all__ = [
    'ContentExporter',
    'ExportOptions',
    'BundleWriter',
    'BundleReader',
    'detect_format',
]
