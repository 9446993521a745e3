"""Codecs for binary file and image attributes."""

import hashlib
import os
from typing import Any, Dict, Optional

from .base import AttributeCodec, AttributeKind


def file_uuid(path: str) -> str:
    """Content-addressed file identifier, the sha1 of the original path."""
    return hashlib.sha1(path.encode('utf-8')).hexdigest()


class BinaryFileCodec(AttributeCodec):
    """
    Store value: {path, original_filename, mime_type}.

    The portable form keeps those keys and adds `uuid`, the identifier of the
    file record carrying the content. The exporter sets `found: False` when
    the file could not be read.
    """

    kind = AttributeKind.BINARY_FILE

    EXTRA_FIELDS = ()

    def encode(self, value: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        if not value or not value.get('path'):
            return None
        data = {
            'uuid': file_uuid(value['path']),
            'path': value['path'],
            'original_filename': value.get('original_filename') or os.path.basename(value['path']),
            'mime_type': value.get('mime_type'),
        }
        for key in self.EXTRA_FIELDS:
            if key in value:
                data[key] = value[key]
        return data

    def decode(self, data: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        if not data or not data.get('uuid') or data.get('found') is False:
            return None
        local_path = ctx.file_path_for(data['uuid'])
        if local_path is None:
            return None
        value = {
            'path': local_path,
            'original_filename': data.get('original_filename'),
            'mime_type': data.get('mime_type'),
        }
        for key in self.EXTRA_FIELDS:
            if key in data:
                value[key] = data[key]
        return value

    def verify(self, data: Optional[Dict[str, Any]], verifier: Any) -> Optional[Dict[str, Any]]:
        if not data:
            return None
        # The exporter could not read the source file
        if data.get('found') is False:
            return None
        record = verifier.resolve_file(data['uuid'])
        if record is None:
            return None
        if record.mime_type and record.mime_type != data.get('mime_type'):
            data = dict(data, mime_type=record.mime_type)
        return data


class ImageCodec(BinaryFileCodec):
    kind = AttributeKind.IMAGE

    EXTRA_FIELDS = ('alternative_text',)

    def verify(self, data: Optional[Dict[str, Any]], verifier: Any) -> Optional[Dict[str, Any]]:
        data = super().verify(data, verifier)
        if data is None:
            return None
        mime_type = data.get('mime_type') or ''
        if not mime_type.startswith('image/'):
            verifier.warn(
                f"File '{data.get('original_filename')}' is not an image ({mime_type or 'unknown type'}), "
                f"dropping image attribute"
            )
            return None
        return data


__all__ = ['BinaryFileCodec', 'ImageCodec', 'file_uuid']
