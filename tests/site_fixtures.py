"""Builders for in-memory sites and portable records used across the tests."""

from content_transfer.importers import (
    ContentImporter,
    ImportOptions,
    ImportSession,
    ImportSynchronizer,
    ImportVerifier,
    PolicyDecider,
)
from content_transfer.stores import DEFAULT_ROOT_UUID, MemoryContentStore

ROOT = DEFAULT_ROOT_UUID

PAGE_FIELDS = {
    'title': 'text',
    'body': 'rich-text',
    'related': 'relation',
    'links': 'relation-list',
    'attachment': 'binary-file',
    'keywords': 'tags',
}


def build_site():
    """Empty site knowing the `page` and `folder` content types."""
    store = MemoryContentStore()
    store.add_content_type('page', PAGE_FIELDS)
    store.add_content_type('folder', {'title': 'text'})
    return store


def object_record(uuid, node_uuid=None, parent_uuid=ROOT, name='Home', class_identifier='page',
                  attributes=None, **extra):
    record = {
        '__type__': 'content-object',
        'uuid': uuid,
        'class_identifier': class_identifier,
        'name': name,
        'translations': {
            'eng-GB': {'name': name, 'attributes': attributes if attributes is not None else {'title': name}},
        },
        'locations': [],
    }
    if node_uuid is not None:
        record['locations'].append({
            'uuid': node_uuid,
            'parent_node_uuid': parent_uuid,
            'sort_by': 'name',
            'priority': 0,
            'visibility': 'visible',
        })
    record.update(extra)
    return record


def start_import(store, policies=None, pipeline=None, **options):
    session = ImportSession(store, PolicyDecider(policies), ImportOptions(**options))
    return session, ContentImporter(session, pipeline)


def run_import(store, records, policies=None, pipeline=None, **options):
    """Ingest, verify and sync a record stream. Returns the session and importer."""
    session, importer = start_import(store, policies, pipeline, **options)
    for record in records:
        importer.import_record(record)
    importer.finalize()
    roots = importer.tree_roots()
    ImportVerifier(session).verify(roots)
    ImportSynchronizer(session).sync(roots)
    return session, importer
