"""
Rich text codec.

Rich text is stored as an XML document, `{"xml": "<section>...</section>"}`.
Embeds and links reference other content by local identity
(`object_id`, `node_id`); the portable form references them by UUID
(`object_uuid`, `node_uuid`). A reference that cannot be resolved drops the
element: embeds are removed, links are unwrapped so their text survives.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from .base import AttributeCodec, AttributeKind, Resolver

logger = logging.getLogger(__name__)

EMBED_TAGS = ('embed', 'embed-inline')
LINK_TAGS = ('link',)
REFERENCE_TAGS = EMBED_TAGS + LINK_TAGS

# attribute -> (replacement attribute, converter returning None when unresolvable)
AttributeHandlers = Dict[str, Tuple[str, Callable[[str], Optional[Any]]]]


def _replace_attribute(tag: Tag, old: str, new: str, value: str) -> None:
    """Swap an attribute in place, keeping attribute order."""
    tag.attrs = {
        (new if key == old else key): (value if key == old else existing)
        for key, existing in tag.attrs.items()
    }


def _drop_reference(tag: Tag) -> None:
    if tag.name in EMBED_TAGS:
        tag.decompose()
    else:
        tag.unwrap()


def _serialize(soup: BeautifulSoup) -> str:
    # Top-level nodes only, so no XML declaration is prepended
    return ''.join(str(child) for child in soup.contents)


class RichTextCodec(AttributeCodec):
    kind = AttributeKind.RICH_TEXT

    def _transform(self, data: Optional[Dict[str, Any]], handlers: AttributeHandlers) -> Optional[Dict[str, Any]]:
        if not data or not data.get('xml'):
            return data
        soup = BeautifulSoup(data['xml'], 'xml')
        for tag in soup.find_all(REFERENCE_TAGS):
            for attribute, (new_attribute, convert) in handlers.items():
                current = tag.get(attribute)
                if current is None:
                    continue
                new_value = convert(current)
                if new_value is None:
                    logger.debug(f"Dropping <{tag.name}> referencing {attribute}={current}")
                    _drop_reference(tag)
                    break
                _replace_attribute(tag, attribute, new_attribute, str(new_value))
        return dict(data, xml=_serialize(soup))

    def encode(self, value: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        return self._transform(value, {
            'object_id': ('object_uuid', lambda object_id: ctx.object_uuid(int(object_id))),
            'node_id': ('node_uuid', lambda node_id: ctx.node_uuid(int(node_id))),
        })

    def decode(self, data: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        return self._transform(data, {
            'object_uuid': ('object_id', ctx.object_id_for),
            'node_uuid': ('node_id', ctx.node_id_for),
        })

    def references(self, data: Optional[Dict[str, Any]]) -> List[str]:
        if not data or not data.get('xml'):
            return []
        soup = BeautifulSoup(data['xml'], 'xml')
        uuids = []
        for tag in soup.find_all(REFERENCE_TAGS):
            uuid = tag.get('object_uuid') or tag.get('node_uuid')
            if uuid and uuid not in uuids:
                uuids.append(uuid)
        return uuids

    def remap(self, data: Optional[Dict[str, Any]], resolve: Resolver) -> Optional[Dict[str, Any]]:
        return self._transform(data, {
            'object_uuid': ('object_uuid', resolve),
            'node_uuid': ('node_uuid', resolve),
        })

    def verify(self, data: Optional[Dict[str, Any]], verifier: Any) -> Optional[Dict[str, Any]]:
        return self._transform(data, {
            'object_uuid': ('object_uuid', verifier.resolve_embed),
            'node_uuid': ('node_uuid', lambda uuid: verifier.resolve_embed(uuid, node=True)),
        })


__all__ = ['RichTextCodec', 'EMBED_TAGS', 'LINK_TAGS']
