"""Codecs for attributes pointing at other content objects."""

from typing import Any, List, Optional

from .base import AttributeCodec, AttributeKind, Resolver


class RelationCodec(AttributeCodec):
    """Single object relation: local object id in the store, UUID when portable."""

    kind = AttributeKind.RELATION

    def encode(self, value: Optional[int], ctx: Any) -> Optional[str]:
        if value is None:
            return None
        return ctx.object_uuid(value)

    def decode(self, data: Optional[str], ctx: Any) -> Optional[int]:
        if not data:
            return None
        return ctx.object_id_for(data)

    def references(self, data: Optional[str]) -> List[str]:
        return [data] if data else []

    def remap(self, data: Optional[str], resolve: Resolver) -> Optional[str]:
        if not data:
            return None
        return resolve(data)

    def verify(self, data: Optional[str], verifier: Any) -> Optional[str]:
        if not data:
            return None
        return verifier.resolve_relation(data)


class RelationListCodec(AttributeCodec):
    """Ordered list of related objects. Removed targets are filtered out."""

    kind = AttributeKind.RELATION_LIST

    def encode(self, value: Optional[List[int]], ctx: Any) -> List[str]:
        uuids = []
        for object_id in value or []:
            uuid = ctx.object_uuid(object_id)
            if uuid:
                uuids.append(uuid)
        return uuids

    def decode(self, data: Optional[List[str]], ctx: Any) -> List[int]:
        ids = []
        for uuid in data or []:
            object_id = ctx.object_id_for(uuid)
            if object_id is not None:
                ids.append(object_id)
        return ids

    def references(self, data: Optional[List[str]]) -> List[str]:
        return list(data or [])

    def remap(self, data: Optional[List[str]], resolve: Resolver) -> List[str]:
        remapped = []
        for uuid in data or []:
            new_uuid = resolve(uuid)
            if new_uuid is not None and new_uuid not in remapped:
                remapped.append(new_uuid)
        return remapped

    def verify(self, data: Optional[List[str]], verifier: Any) -> List[str]:
        verified = []
        for uuid in data or []:
            new_uuid = verifier.resolve_relation(uuid)
            if new_uuid is not None and new_uuid not in verified:
                verified.append(new_uuid)
        return verified


class TagsCodec(AttributeCodec):
    """Tag assignments as a list of {uuid, keyword}."""

    kind = AttributeKind.TAGS

    def encode(self, value: Optional[List[dict]], ctx: Any) -> List[dict]:
        return [{'uuid': tag['uuid'], 'keyword': tag.get('keyword')} for tag in value or []]

    def decode(self, data: Optional[List[dict]], ctx: Any) -> List[dict]:
        return [{'uuid': tag['uuid'], 'keyword': tag.get('keyword')} for tag in data or []]

    def verify(self, data: Optional[List[dict]], verifier: Any) -> List[dict]:
        kept = []
        for tag in data or []:
            if verifier.resolve_tag(tag['uuid']):
                kept.append(tag)
            else:
                verifier.warn(f"Dropping unknown tag '{tag.get('keyword')}' ({tag['uuid']})")
        return kept


__all__ = ['RelationCodec', 'RelationListCodec', 'TagsCodec']
