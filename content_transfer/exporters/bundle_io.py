"""Reading and writing record streams: a single JSON bundle or JSON lines."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from ..exceptions import RecordTypeError
from ..models import BUNDLE_SECTIONS, RecordType

logger = logging.getLogger(__name__)

FORMAT_JSON = 'json'
FORMAT_JSONL = 'jsonl'
JSONL_SUFFIXES = ('.jsonl', '.ndjson')


def detect_format(path: Union[str, Path]) -> str:
    return FORMAT_JSONL if Path(path).suffix.lower() in JSONL_SUFFIXES else FORMAT_JSON


class BundleWriter:
    """Writes the records collected by a ContentExporter."""

    def __init__(self, path: Union[str, Path], fmt: Optional[str] = None):
        self.path = Path(path)
        self.format = fmt or detect_format(path)
        if self.format not in (FORMAT_JSON, FORMAT_JSONL):
            raise ValueError(f"Unknown bundle format: {self.format}")

    def write(self, exporter) -> int:
        """
        Write the export.

        Returns:
            Number of records written, the envelope or index included
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.format == FORMAT_JSON:
            bundle = exporter.create_bundle()
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(bundle, f, indent=2, ensure_ascii=False, default=str)
            count = 1 + sum(len(bundle.get(key, [])) for key, _ in BUNDLE_SECTIONS)
        else:
            count = 0
            with open(self.path, 'w', encoding='utf-8') as f:
                f.write(json.dumps(exporter.create_index(), ensure_ascii=False, default=str) + '\n')
                count += 1
                for _, records in exporter.get_export_items().items():
                    for record in records:
                        f.write(json.dumps(record, ensure_ascii=False, default=str) + '\n')
                        count += 1
        logger.info(f"Wrote {count} record(s) to {self.path}")
        return count


class BundleReader:
    """Yields records from a bundle document or a JSON-lines stream."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @property
    def directory(self) -> Path:
        return self.path.resolve().parent

    def records(self) -> Iterator[Dict[str, Any]]:
        """
        Yield records in stream order.

        A bundle document is flattened into its index record followed by the
        records of each category in ingestion order.

        Raises:
            RecordTypeError: If a line or the document is not valid JSON
        """
        if detect_format(self.path) == FORMAT_JSONL:
            yield from self._read_lines()
            return

        with open(self.path, 'r', encoding='utf-8') as f:
            try:
                document = json.load(f)
            except json.JSONDecodeError as e:
                raise RecordTypeError(f"{self.path} is not valid JSON: {e}") from e

        if isinstance(document, list):
            yield from document
            return
        if document.get('__type__') != RecordType.BUNDLE.value:
            yield document
            return

        index = {key: value for key, value in document.items() if key not in dict(BUNDLE_SECTIONS)}
        index['__type__'] = RecordType.INDEX.value
        yield index
        for key, record_type in BUNDLE_SECTIONS:
            items = document.get(key) or []
            if isinstance(items, dict):
                items = list(items.values())
            for item in items:
                if '__type__' not in item:
                    item = dict(item, __type__=record_type.value)
                yield item

    def _read_lines(self) -> Iterator[Dict[str, Any]]:
        with open(self.path, 'r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError as e:
                    raise RecordTypeError(f"{self.path}:{line_number}: invalid JSON record: {e}") from e

    def count(self) -> int:
        return sum(1 for _ in self.records())


__all__ = ['BundleWriter', 'BundleReader', 'detect_format', 'FORMAT_JSON', 'FORMAT_JSONL']
