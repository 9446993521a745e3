"""
Content importer.

Ingests portable records into the working graph of an import session:
schema-level records (sections, languages, content state groups) are
reconciled against the destination right away, content types are checked
against the destination schema, files are resolved to local paths, and
content objects become object and node records with every reference
rewritten through the transform pipeline and the remap table.

Nothing about content objects is written to the destination here; that is
the job of the verify and sync passes.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..converters import AttributeKind, get_codec
from ..exceptions import (
    ConfigurationError,
    ImportDenied,
    OrphanedNodesError,
    RecordTypeError,
    SchemaMismatchError,
)
from ..models import (
    BUNDLE_SECTIONS,
    ContentTypeMapping,
    FieldMapping,
    FileRecord,
    LocationMeta,
    NodeRecord,
    ObjectRecord,
    ObjectReference,
    RecordStatus,
    RecordType,
    Translation,
    UpdateScope,
    Visibility,
)
from .decisions import Decision, DecisionPoint
from .file_resolver import FileResolver
from .import_session import ImportSession
from .transform_pipeline import (
    CONTENT_TYPE,
    LANGUAGE,
    SECTION,
    SKIP_FIELD,
    STATE,
    TransformPipeline,
)

REQUIRED_OBJECT_KEYS = ('uuid', 'class_identifier', 'translations')
TREE_ROOT = 'tree-root'
DEFAULT_NAVIGATION_PART = 'content'


class ContentImporter:
    """Builds the working graph of an import session from portable records."""

    def __init__(self, session: ImportSession, pipeline: Optional[TransformPipeline] = None):
        """
        Initialize content importer.

        Args:
            session: Import session owning the identity tables
            pipeline: Transform pipeline, an empty one if None
        """
        self.session = session
        self.tables = session.tables
        self.store = session.store
        self.logger = session.logger
        self.pipeline = pipeline or TransformPipeline()
        self.pipeline.seed_remaps(self.tables.remaps)

        options = session.options
        if options.start_node_uuid and self.store.fetch_node_by_uuid(options.start_node_uuid) is None:
            raise ConfigurationError(f"Start node '{options.start_node_uuid}' does not exist in the destination")

        self.file_resolver = FileResolver(
            temp_directory=options.temp_directory,
            file_cache=options.file_cache,
            file_storage=options.file_storage,
            bundle_directory=options.bundle_directory,
            logger=self.logger
        )

        self.orphans: Dict[str, List[str]] = {}
        self._handlers: Dict[RecordType, Callable[[Dict[str, Any]], Any]] = {
            RecordType.SECTION: self.import_section,
            RecordType.LANGUAGE: self.import_language,
            RecordType.STATE_GROUP: self.import_state_group,
            RecordType.CONTENT_TYPE: self.import_content_type,
            RecordType.CONTENT_OBJECT: self.import_content_object,
            RecordType.FILE: self.import_file,
            RecordType.TAG: self.import_tag,
            RecordType.INDEX: self.import_index,
            RecordType.BUNDLE: self.import_bundle,
        }
        unhandled = [record_type.value for record_type in RecordType if record_type not in self._handlers]
        if unhandled:
            raise RuntimeError(f"No importer for record types: {unhandled}")

    # Dispatch

    def import_record(self, record: Dict[str, Any]) -> Any:
        """
        Import one record, dispatching on its `__type__` tag.

        Raises:
            RecordTypeError: Missing or unknown type tag
        """
        if not isinstance(record, dict):
            raise RecordTypeError(f"Record must be an object, got {type(record).__name__}")
        tag = record.get('__type__')
        if not tag:
            raise RecordTypeError("Record has no __type__ tag")
        try:
            record_type = RecordType.from_tag(tag)
        except ValueError:
            raise RecordTypeError(f"Unknown record type '{tag}'", record_type=tag) from None
        return self._handlers[record_type](record)

    @staticmethod
    def _require(record: Dict[str, Any], key: str, record_type: str) -> Any:
        value = record.get(key)
        if value is None or value == '':
            identifier = record.get('uuid') or record.get('identifier') or record.get('locale') or '<unknown>'
            raise RecordTypeError(
                f"{record_type} record '{identifier}' is missing required key '{key}'",
                record_type=record_type
            )
        return value

    # Envelopes

    def import_index(self, record: Dict[str, Any]) -> None:
        """Read export metadata and confirm the import."""
        info = {
            'export_date': record.get('export_date'),
            'types': record.get('types') or [],
            'type_counts': record.get('type_counts') or {},
            'source_root_uuid': record.get('source_root_uuid'),
        }
        self.session.export_info.update(info)
        if info['source_root_uuid'] and not self.session.options.source_root_uuid:
            self.session.options.source_root_uuid = info['source_root_uuid']

        self.logger.info(f"Export date: {info['export_date'] or 'unknown'}")
        self.logger.info(f"Record types: {', '.join(info['types']) or 'none listed'}")
        for category, count in info['type_counts'].items():
            self.logger.info(f"  {category}: {count}")

        decision = self.session.decide(
            DecisionPoint.CONTINUE_IMPORT,
            f"Import records exported on {info['export_date'] or 'unknown date'}?"
        )
        if decision != Decision.CONTINUE:
            raise ImportDenied("Import aborted before ingesting records", record_type=record.get('__type__'))

    def import_bundle(self, record: Dict[str, Any]) -> None:
        """Import a bundle envelope, category by category in dependency order."""
        self.import_index(record)
        for key, record_type in BUNDLE_SECTIONS:
            items = record.get(key) or []
            if isinstance(items, dict):
                items = list(items.values())
            if items:
                self.logger.info(f"Importing {len(items)} {key.replace('_', ' ')}")
            for item in items:
                if '__type__' not in item:
                    item = dict(item, __type__=record_type.value)
                self.import_record(item)

    # Schema-level records

    def _import_indexed(
        self,
        category: str,
        record_type: str,
        label: str,
        index: Dict[str, Dict[str, Any]],
        identifier: str,
        planned: Dict[str, Any],
        is_identical: Callable[[Dict[str, Any]], bool],
        create: Callable[[], Dict[str, Any]],
        update: Callable[[], Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Skip identical entries, confirm overwrites, confirm creation of absent ones."""
        existing = index.get(identifier)
        if existing is not None:
            if is_identical(existing):
                self.logger.debug(f"{label} already exists and is identical, skipping")
                self.session.count(category, 'skipped')
                return existing

            decision = self.session.decide(
                DecisionPoint.OVERWRITE_EXISTING,
                f"{label} differs from the destination. Overwrite it?",
                identifier=identifier
            )
            if decision == Decision.ABORT:
                raise ImportDenied(f"{label} differs from the destination, import aborted", record_type, identifier)
            if decision != Decision.OVERWRITE:
                self.session.count(category, 'skipped')
                return existing

            if self.session.options.dry_run:
                self.logger.info(f"[DRY RUN] Would update {label}")
                entry = dict(existing, **planned)
            else:
                entry = update()
                self.logger.info(f"Updated {label}")
            index[identifier] = entry
            self.session.count(category, 'updated')
            return entry

        decision = self.session.decide(
            DecisionPoint.IMPORT_NEW,
            f"{label} does not exist in the destination. Create it?",
            identifier=identifier
        )
        if decision != Decision.CREATE:
            raise ImportDenied(
                f"{label} does not exist in the destination, cannot continue", record_type, identifier
            )

        if self.session.options.dry_run:
            self.logger.info(f"[DRY RUN] Would create {label}")
            entry = dict(planned, id=None)
        else:
            entry = create()
            self.logger.info(f"Created {label}")
        index[identifier] = entry
        self.session.count(category, 'created')
        return entry

    def import_section(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        identifier = self._require(record, 'identifier', RecordType.SECTION.value)
        transformed = self.pipeline.transform(SECTION, record)
        if transformed.get('removed'):
            self.tables.section_map[identifier] = None
            self.session.count('section', 'removed')
            return None

        target = transformed['identifier']
        self.tables.section_map[identifier] = target
        fields = {
            'name': transformed.get('name') or target,
            'navigation_part_identifier': transformed.get('navigation_part_identifier') or DEFAULT_NAVIGATION_PART,
        }
        return self._import_indexed(
            category='section',
            record_type=RecordType.SECTION.value,
            label=f"Section '{target}'",
            index=self.tables.sections,
            identifier=target,
            planned=dict(fields, identifier=target),
            is_identical=lambda existing: all(existing.get(key) == value for key, value in fields.items()),
            create=lambda: self.store.create_section(target, fields['name'], fields['navigation_part_identifier']),
            update=lambda: self.store.update_section(target, **fields)
        )

    def import_language(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        locale = self._require(record, 'locale', RecordType.LANGUAGE.value)
        transformed = self.pipeline.transform(LANGUAGE, record)
        if transformed.get('removed'):
            self.tables.language_map[locale] = None
            self.session.count('language', 'removed')
            return None

        target = transformed['locale']
        self.tables.language_map[locale] = target
        name = transformed.get('name') or target
        return self._import_indexed(
            category='language',
            record_type=RecordType.LANGUAGE.value,
            label=f"Content language '{target}'",
            index=self.tables.languages,
            identifier=target,
            planned={'locale': target, 'name': name},
            is_identical=lambda existing: existing.get('name') == name,
            create=lambda: self.store.create_language(target, name),
            update=lambda: self.store.update_language(target, name=name)
        )

    def import_state_group(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        identifier = self._require(record, 'identifier', RecordType.STATE_GROUP.value)
        transformed = self.pipeline.transform(STATE, record)
        if transformed.get('removed'):
            self.tables.state_map[identifier] = None
            self.session.count('state_group', 'removed')
            return None

        target = transformed['identifier']
        self.tables.state_map[identifier] = target
        states = transformed.get('states') or {}
        if isinstance(states, list):
            states = {state['identifier']: {'translations': state.get('translations') or {}} for state in states}
        translations = transformed.get('translations') or {}
        return self._import_indexed(
            category='state_group',
            record_type=RecordType.STATE_GROUP.value,
            label=f"Content state group '{target}'",
            index=self.tables.state_groups,
            identifier=target,
            planned={'identifier': target, 'translations': translations, 'states': states},
            is_identical=lambda existing: set(states) <= set(existing.get('states') or {}),
            create=lambda: self.store.create_state_group(target, translations, states),
            update=lambda: self.store.update_state_group(target, states)
        )

    def import_content_type(self, record: Dict[str, Any]) -> Optional[ContentTypeMapping]:
        """
        Check a sparse content type against the destination schema.

        Raises:
            ImportDenied: Full content type definitions are not supported
            SchemaMismatchError: Type or field missing, or field kinds differ
        """
        identifier = self._require(record, 'identifier', RecordType.CONTENT_TYPE.value)
        if 'type_map' not in record or record.get('sparse') is False:
            raise ImportDenied(
                f"Content type '{identifier}': only sparse content type records are supported",
                RecordType.CONTENT_TYPE.value,
                identifier
            )

        transformed = self.pipeline.transform(CONTENT_TYPE, record)
        if transformed.get('removed'):
            self.tables.content_type_map[identifier] = None
            self.session.count('content_type', 'removed')
            return None

        target = transformed['identifier']
        destination = self.tables.content_types.get(target)
        if destination is None:
            raise SchemaMismatchError(
                f"Content type '{target}' does not exist in the destination",
                RecordType.CONTENT_TYPE.value,
                target
            )

        field_map = transformed.get('field_map') or {}
        mapping = ContentTypeMapping(source_identifier=identifier, identifier=target)
        for source_field, kind_name in (transformed.get('type_map') or {}).items():
            destination_field = field_map.get(source_field, source_field)
            if destination_field == SKIP_FIELD or kind_name == SKIP_FIELD:
                mapping.skipped.add(source_field)
                continue
            try:
                kind = AttributeKind.from_name(kind_name)
            except ValueError:
                raise SchemaMismatchError(
                    f"Content type '{identifier}': field '{source_field}' has unknown kind '{kind_name}'",
                    RecordType.CONTENT_TYPE.value,
                    identifier
                ) from None

            definition = destination.get('fields', {}).get(destination_field)
            if definition is None:
                raise SchemaMismatchError(
                    f"Content type '{target}' has no field '{destination_field}'",
                    RecordType.CONTENT_TYPE.value,
                    target
                )
            destination_kind = AttributeKind.from_name(definition['kind'])
            if destination_kind != kind:
                raise SchemaMismatchError(
                    f"Field '{target}.{destination_field}' is '{destination_kind.value}' in the destination, "
                    f"record declares '{kind.value}'",
                    RecordType.CONTENT_TYPE.value,
                    target
                )
            mapping.fields[source_field] = FieldMapping(
                identifier=destination_field,
                kind=kind.value,
                translatable=definition.get('translatable', True)
            )

        self.tables.content_type_map[identifier] = mapping
        self.session.count('content_type', 'skipped')
        self.logger.debug(
            f"Content type '{identifier}' -> '{target}': {len(mapping.fields)} fields, "
            f"{len(mapping.skipped)} skipped"
        )
        return mapping

    def import_file(self, record: Dict[str, Any]) -> FileRecord:
        uuid = self._require(record, 'uuid', RecordType.FILE.value)
        existing = self.tables.files.get(uuid)
        if existing is not None and existing.is_resolved:
            self.session.count('file', 'skipped')
            return existing

        file_record = self.file_resolver.resolve(FileRecord.from_dict(record))
        self.tables.files[uuid] = file_record

        if file_record.is_temporary:
            self.session.add_temp_file(file_record.local_path)
            work_directory = self.file_resolver.work_directory
            if work_directory and work_directory not in self.session.temp_directories:
                self.session.add_temp_directory(work_directory)

        self.session.count('file', 'created' if file_record.is_resolved else 'skipped')
        return file_record

    def import_tag(self, record: Dict[str, Any]) -> Dict[str, Any]:
        uuid = self._require(record, 'uuid', RecordType.TAG.value)
        self.tables.tags[uuid] = record
        return record

    # Content objects

    def _resolver(self, uuid: str) -> Optional[str]:
        target_uuid, removed = self.tables.remaps.resolve(uuid)
        return None if removed else target_uuid

    def import_content_object(self, record: Dict[str, Any]) -> Optional[ObjectRecord]:
        """
        Ingest a content object record.

        Returns:
            The object record, or None when the object was removed or skipped
        """
        for key in REQUIRED_OBJECT_KEYS:
            self._require(record, key, RecordType.CONTENT_OBJECT.value)

        original_uuid = record['uuid']
        transformed = self.pipeline.transform_content_object(record, self.tables.remaps)
        target_uuid, removed = self.tables.remaps.resolve(original_uuid)

        if removed:
            self.logger.info(f"Content object '{record.get('name') or original_uuid}' removed by transform")
            self._register_removed(transformed)
            self.session.count('content_object', 'removed')
            self.remap_existing_objects(original_uuid)
            return None

        if target_uuid != original_uuid:
            self.logger.debug(f"Content object {original_uuid} remapped to {target_uuid}")
            self.remap_existing_objects(original_uuid)
        transformed['uuid'] = target_uuid

        existing = self.tables.objects.get(target_uuid)
        if existing is not None:
            return self._merge_duplicate(existing, transformed, original_uuid)

        obj = self.transform_content_object(transformed, original_uuid)

        destination = self.store.fetch_object_by_uuid(obj.uuid)
        if destination is not None:
            obj.status = RecordStatus.PRESENT
            obj.object_id = destination['id']
            obj.update_scope = self._update_scope_for(transformed, obj)
        else:
            decision = self.session.decide(
                DecisionPoint.IMPORT_NEW,
                f"Content object '{obj.display_name}' ({obj.uuid}) does not exist in the destination. Create it?",
                uuid=obj.uuid
            )
            if decision == Decision.ABORT:
                raise ImportDenied(
                    f"Content object '{obj.display_name}' was not confirmed for creation, import aborted",
                    RecordType.CONTENT_OBJECT.value,
                    obj.uuid
                )
            if decision != Decision.CREATE:
                self.tables.remaps.add(obj.uuid, removed=True, name=obj.display_name,
                                       class_identifier=obj.class_identifier)
                self._register_removed(transformed)
                self.session.count('content_object', 'skipped')
                self.remap_existing_objects(obj.uuid)
                return None

        self.tables.objects[obj.uuid] = obj
        self._index_references(obj)
        for location in list(obj.locations.values()):
            self._register_location(obj, location)
        return obj

    def _update_scope_for(self, record: Dict[str, Any], obj: ObjectRecord) -> set:
        """Record-level `update` list wins over the overwrite decision."""
        if record.get('update') is not None:
            try:
                return UpdateScope.parse(record['update'])
            except ValueError as e:
                raise RecordTypeError(
                    f"Content object '{obj.uuid}' has an invalid update scope: {e}",
                    RecordType.CONTENT_OBJECT.value
                ) from e

        decision = self.session.decide(
            DecisionPoint.OVERWRITE_EXISTING,
            f"Content object '{obj.display_name}' ({obj.uuid}) already exists. Overwrite it?",
            uuid=obj.uuid
        )
        if decision == Decision.ABORT:
            raise ImportDenied(
                f"Content object '{obj.display_name}' already exists, import aborted",
                RecordType.CONTENT_OBJECT.value,
                obj.uuid
            )
        return UpdateScope.all() if decision == Decision.OVERWRITE else set()

    def transform_content_object(self, record: Dict[str, Any], original_uuid: Optional[str] = None) -> ObjectRecord:
        """
        Build an object record with every reference rewritten.

        Order: main node, owner, section, class and attribute names, languages,
        states, relations, attribute references, location parents.

        Raises:
            SchemaMismatchError: The content type does not exist in the destination
        """
        uuid = record['uuid']
        class_source = record['class_identifier']
        mapping = self.tables.mapping_for(class_source)
        if mapping is None:
            raise SchemaMismatchError(
                f"Content type '{class_source}' of content object '{uuid}' does not exist in the destination",
                RecordType.CONTENT_OBJECT.value,
                uuid
            )

        main_node = record.get('main_node')
        if isinstance(main_node, dict):
            main_node = main_node.get('uuid')
        main_node_uuid = self._resolver(main_node) if main_node else None

        owner = None
        owner_data = record.get('owner')
        if isinstance(owner_data, str):
            owner_data = {'uuid': owner_data}
        if owner_data and owner_data.get('uuid'):
            owner = ObjectReference.from_dict(owner_data)
            new_owner_uuid = self._resolver(owner.uuid)
            if new_owner_uuid is None:
                self.logger.debug(f"Content object {uuid}: owner {owner.uuid} was removed")
                owner = None
            else:
                owner.uuid = new_owner_uuid

        section = record.get('section_identifier')
        if section is not None:
            section = self.tables.section_map.get(section, section)

        obj = ObjectRecord(
            uuid=uuid,
            class_identifier=mapping.identifier,
            owner=owner,
            section_identifier=section,
            original_uuid=original_uuid or uuid,
            remote_hint=record.get('object_id'),
            name=record.get('name')
        )

        for locale, translation in (record.get('translations') or {}).items():
            target_locale = self.tables.language_map.get(locale, locale)
            if target_locale is None:
                self.logger.debug(f"Content object {uuid}: dropping translation '{locale}'")
                continue
            obj.translations[target_locale] = Translation(
                name=(translation or {}).get('name'),
                attributes=self._map_attributes((translation or {}).get('attributes'), mapping, uuid)
            )
        obj.attributes = self._map_attributes(record.get('attributes'), mapping, uuid)

        for group, state in (record.get('states') or {}).items():
            target_group = self.tables.state_map.get(group, group)
            if target_group is not None:
                obj.states[target_group] = state

        related = record.get('related') or []
        if isinstance(related, dict):
            related = list(related.values())
        for item in related:
            if isinstance(item, str):
                item = {'uuid': item}
            reference = ObjectReference.from_dict(item)
            new_uuid = self._resolver(reference.uuid)
            if new_uuid is None:
                self.logger.debug(f"Content object {uuid}: dropping relation to removed {reference.uuid}")
                continue
            reference.uuid = new_uuid
            obj.relations[new_uuid] = reference

        for data in record.get('locations') or []:
            location = self._transform_location(data)
            obj.locations[location.uuid] = location

        if main_node_uuid not in obj.locations:
            flagged = [node_uuid for node_uuid, location in obj.locations.items() if location.is_main]
            main_node_uuid = flagged[0] if flagged else next(iter(obj.locations), None)
        for node_uuid, location in obj.locations.items():
            location.is_main = node_uuid == main_node_uuid
        obj.main_node_uuid = main_node_uuid

        return obj

    def _transform_location(self, data: Dict[str, Any]) -> LocationMeta:
        """Resolve a location's own UUID and its parent, mapping the source root onto the destination root."""
        if not data.get('uuid'):
            raise RecordTypeError("Location is missing required key 'uuid'", RecordType.CONTENT_OBJECT.value)
        parent = data.get('parent_node_uuid')
        location = LocationMeta.from_dict(dict(data, parent_node_uuid=parent or ''))
        location.original_parent_node_uuid = parent
        location.uuid = self.tables.remaps.resolve(location.uuid)[0]

        source_root = self.session.options.source_root_uuid
        if not parent or data.get('node_type') == TREE_ROOT or (source_root and parent == source_root):
            location.parent_node_uuid = self.session.start_uuid
        else:
            location.parent_node_uuid = self.tables.remaps.resolve(parent)[0]
        return location

    def _map_attributes(self, values: Optional[Dict[str, Any]], mapping: ContentTypeMapping, uuid: str) -> Dict[str, Any]:
        """Rename fields onto the destination type and rewrite their references."""
        mapped = {}
        for field_identifier, value in (values or {}).items():
            if field_identifier in mapping.skipped:
                continue
            field_mapping = mapping.field_for(field_identifier)
            if field_mapping is None:
                self.logger.warning(
                    f"Content object {uuid}: field '{field_identifier}' is not part of "
                    f"content type '{mapping.identifier}', dropping it"
                )
                continue
            codec = get_codec(field_mapping.kind)
            mapped[field_mapping.identifier] = codec.remap(value, self._resolver)
        return mapped

    def _index_references(self, obj: ObjectRecord) -> None:
        if obj.owner is not None:
            self.tables.register_owner(obj.owner.uuid, obj.uuid)
        for target_uuid in obj.relations:
            self.tables.register_referrer(target_uuid, obj.uuid)
        for _, field_identifier, value in obj.iter_attribute_values():
            codec = get_codec(self.tables.field_kind(obj.class_identifier, field_identifier))
            for target_uuid in codec.references(value):
                self.tables.register_referrer(target_uuid, obj.uuid)

    def _rewrite_references(self, obj: ObjectRecord) -> None:
        if obj.owner is not None:
            new_owner_uuid = self._resolver(obj.owner.uuid)
            if new_owner_uuid is None:
                obj.owner = None
            else:
                obj.owner.uuid = new_owner_uuid

        relations = {}
        for target_uuid, reference in obj.relations.items():
            new_uuid = self._resolver(target_uuid)
            if new_uuid is not None:
                reference.uuid = new_uuid
                relations[new_uuid] = reference
        obj.relations = relations

        for language, field_identifier, value in list(obj.iter_attribute_values()):
            codec = get_codec(self.tables.field_kind(obj.class_identifier, field_identifier))
            if codec.references(value):
                obj.set_attribute_value(language, field_identifier, codec.remap(value, self._resolver))

    def remap_existing_objects(self, uuid: str) -> int:
        """
        Rewrite already ingested objects that own, relate to or embed `uuid`.

        Called whenever a remap for `uuid` is registered, so references
        ingested before the remap end up consistent with later ones.

        Returns:
            Number of objects rewritten
        """
        rewritten = 0
        for dependent_uuid in self.tables.dependents_of(uuid):
            obj = self.tables.objects.get(dependent_uuid)
            if obj is None:
                continue
            self._rewrite_references(obj)
            self._index_references(obj)
            rewritten += 1
        if rewritten:
            self.logger.debug(f"Rewrote references to {uuid} in {rewritten} object(s)")
        return rewritten

    def _merge_duplicate(self, existing: ObjectRecord, record: Dict[str, Any], original_uuid: str) -> ObjectRecord:
        """A second record for the same object contributes its locations."""
        incoming = self.transform_content_object(record, original_uuid)
        has_main = existing.main_node_uuid in existing.locations
        for node_uuid, location in incoming.locations.items():
            if node_uuid in existing.locations:
                continue
            location.is_main = not has_main and node_uuid == incoming.main_node_uuid
            if location.is_main:
                existing.main_node_uuid = node_uuid
                has_main = True
            existing.locations[node_uuid] = location
            self._register_location(existing, location)
        self.logger.debug(f"Merged duplicate record for content object {existing.uuid}")
        return existing

    # Nodes

    def _ensure_parent(self, parent_uuid: Optional[str]) -> None:
        """Index a destination node that is not part of the stream as a reference node."""
        if not parent_uuid or parent_uuid in self.tables.nodes:
            return
        destination = self.store.fetch_node_by_uuid(parent_uuid)
        if destination is None:
            return
        self.tables.add_node(NodeRecord(
            uuid=parent_uuid,
            parent_uuid=None,
            object_uuid=None,
            status=RecordStatus.REFERENCE,
            node_id=destination['id']
        ))

    def _register_location(self, obj: ObjectRecord, location: LocationMeta) -> NodeRecord:
        existing = self.tables.nodes.get(location.uuid)
        if existing is not None and existing.status != RecordStatus.REFERENCE:
            if existing.object_uuid != obj.uuid:
                self.logger.warning(
                    f"Node {location.uuid} is claimed by {existing.object_uuid} and {obj.uuid}, keeping the first"
                )
            return existing

        self._ensure_parent(location.parent_node_uuid)

        destination = self.store.fetch_node_by_uuid(location.uuid)
        if destination is not None:
            if destination.get('object_id') != obj.object_id:
                raise ImportDenied(
                    f"Node {location.uuid} already exists in the destination for another object",
                    RecordType.CONTENT_OBJECT.value,
                    obj.uuid
                )
            status = RecordStatus.PRESENT
            node_id = destination['id']
        elif obj.status == RecordStatus.PRESENT and UpdateScope.LOCATION not in obj.update_scope:
            aliased = self._alias_to_main_location(obj, location)
            if aliased is not None:
                return aliased
            status = RecordStatus.NEW
            node_id = None
        else:
            status = RecordStatus.NEW
            node_id = None

        node = NodeRecord(
            uuid=location.uuid,
            parent_uuid=location.parent_node_uuid,
            object_uuid=obj.uuid,
            status=status,
            sort_by=location.sort_by,
            priority=location.priority,
            visibility=location.visibility,
            is_main=location.is_main,
            node_id=node_id,
            original_uuid=location.original_uuid,
            original_parent_uuid=location.original_parent_node_uuid
        )
        location.node_id = node_id
        return self.tables.add_node(node)

    def _alias_to_main_location(self, obj: ObjectRecord, location: LocationMeta) -> Optional[NodeRecord]:
        """
        Redirect a location of a present object onto its destination main node.

        Used when locations are outside the update scope, so children
        addressed to the portable location land under the existing node.
        """
        destination = self.store.fetch_object(obj.object_id)
        if not destination or not destination.get('main_node_id'):
            return None
        main_node = self.store.fetch_node(destination['main_node_id'])
        if main_node is None:
            return None

        self.tables.remaps.add(location.uuid, main_node['uuid'])
        self.remap_existing_objects(location.uuid)
        del obj.locations[location.uuid]

        parent = self.store.fetch_parent(main_node)
        parent_uuid = parent['uuid'] if parent else None
        self._ensure_parent(parent_uuid)

        meta = LocationMeta(
            uuid=main_node['uuid'],
            parent_node_uuid=parent_uuid,
            sort_by=main_node.get('sort_by') or location.sort_by,
            priority=main_node.get('priority', 0),
            visibility=Visibility.HIDDEN if main_node.get('hidden') else Visibility.VISIBLE,
            is_main=True,
            node_id=main_node['id'],
            original_uuid=location.original_uuid
        )
        obj.locations[meta.uuid] = meta
        obj.main_node_uuid = meta.uuid

        node = self.tables.add_node(NodeRecord(
            uuid=meta.uuid,
            parent_uuid=parent_uuid,
            object_uuid=obj.uuid,
            status=RecordStatus.PRESENT,
            sort_by=meta.sort_by,
            priority=meta.priority,
            visibility=meta.visibility,
            is_main=True,
            node_id=meta.node_id,
            original_uuid=location.original_uuid,
            original_parent_uuid=location.original_parent_node_uuid
        ))
        for child_uuid in self.tables.pending_children.drain(location.uuid):
            child = self.tables.nodes.get(child_uuid)
            if child is not None:
                child.parent_uuid = node.uuid
                node.children.add(child_uuid)
        self.logger.debug(f"Location {location.uuid} of present object {obj.uuid} aliased to node {node.uuid}")
        return node

    def _register_removed(self, record: Dict[str, Any]) -> None:
        """Index the locations of a removed object so their subtrees are skipped."""
        for data in record.get('locations') or []:
            if not data.get('uuid'):
                continue
            location = self._transform_location(data)
            self.tables.add_node(
                NodeRecord(
                    uuid=location.uuid,
                    parent_uuid=location.parent_node_uuid,
                    object_uuid=record.get('uuid'),
                    status=RecordStatus.REMOVED,
                    original_uuid=location.original_uuid,
                    original_parent_uuid=location.original_parent_node_uuid
                ),
                queue_missing_parent=False
            )

    # Finalize

    def _start_node(self) -> NodeRecord:
        start_uuid = self.session.start_uuid
        node = self.tables.nodes.get(start_uuid)
        if node is not None:
            if node.status == RecordStatus.REMOVED:
                raise ConfigurationError(f"Start node '{start_uuid}' is removed in this import")
            return node
        destination = self.store.fetch_node_by_uuid(start_uuid)
        if destination is None:
            raise ConfigurationError(f"Start node '{start_uuid}' does not exist in the destination")
        return self.tables.add_node(NodeRecord(
            uuid=start_uuid,
            parent_uuid=None,
            object_uuid=None,
            status=RecordStatus.REFERENCE,
            node_id=destination['id']
        ))

    def finalize(self) -> Dict[str, List[str]]:
        """
        Settle nodes still waiting for a parent and drop objects without locations.

        Returns:
            Orphaned nodes per missing parent, empty when there were none

        Raises:
            OrphanedNodesError: Orphans exist and the decision was not to reparent
        """
        pending = self.tables.pending_children.pending()
        self.orphans = {parent_uuid: sorted(children) for parent_uuid, children in sorted(pending.items())}

        if self.orphans:
            total = sum(len(children) for children in self.orphans.values())
            for parent_uuid, children in self.orphans.items():
                self.logger.warning(f"Parent node {parent_uuid} not found for: {', '.join(children)}")

            decision = self.session.decide(
                DecisionPoint.ORPHANED_NODES,
                f"{total} node(s) reference parents missing from the bundle and the destination. "
                f"Attach them under the start node?",
                orphans=self.orphans
            )
            if decision != Decision.REPARENT:
                raise OrphanedNodesError(
                    f"{total} node(s) reference missing parent nodes: {', '.join(self.orphans)}",
                    orphans=self.orphans
                )

            start = self._start_node()
            for parent_uuid in self.orphans:
                for child_uuid in sorted(self.tables.pending_children.drain(parent_uuid)):
                    child = self.tables.nodes[child_uuid]
                    child.parent_uuid = start.uuid
                    start.children.add(child_uuid)
            self.logger.info(f"Attached {total} orphaned node(s) under start node {start.uuid}")

        self._remove_subtrees()

        for obj in list(self.tables.objects.values()):
            if obj.status == RecordStatus.NEW and not self.tables.live_locations(obj):
                self.logger.warning(
                    f"Content object '{obj.display_name}' ({obj.uuid}) has no location, skipping it"
                )
                obj.status = RecordStatus.REMOVED
                self.tables.remaps.add(obj.uuid, removed=True, name=obj.display_name,
                                       class_identifier=obj.class_identifier)
                self.remap_existing_objects(obj.uuid)
                self.session.count('content_object', 'skipped')

        return self.orphans

    def _remove_subtrees(self) -> None:
        """Nodes below a removed node are removed with it."""
        removed = [node for node in self.tables.nodes.values() if node.status == RecordStatus.REMOVED]
        for top in removed:
            for node in self.tables.iter_subtree(top):
                if node.status in (RecordStatus.REMOVED, RecordStatus.REFERENCE):
                    continue
                self.logger.info(f"Node {node.uuid} is below removed node {top.uuid}, skipping it")
                node.status = RecordStatus.REMOVED

    def tree_roots(self) -> List[NodeRecord]:
        """Starting points of the verify and sync walks."""
        roots = [
            node for node in self.tables.nodes.values()
            if node.parent_uuid is None and node.status == RecordStatus.REFERENCE
        ]
        return sorted(roots, key=lambda node: node.uuid)


__all__ = ['ContentImporter', 'REQUIRED_OBJECT_KEYS', 'TREE_ROOT']
