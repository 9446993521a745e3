"""
Attribute kinds and the codec interface.

A codec converts one attribute kind between the value a content store holds
(local identities, absolute paths) and its portable form (UUIDs, file
identifiers). Codecs are stateless; everything they need to look up is passed
in as a context object:

- export context: object_uuid(object_id), node_uuid(node_id)
- import context: object_id_for(uuid), node_id_for(uuid), file_path_for(uuid)
- verifier: resolve_relation(uuid), resolve_embed(uuid, node=False),
  resolve_file(uuid), resolve_tag(uuid), warn(message)
"""

from enum import Enum
from typing import Any, Callable, List, Optional

# Resolver used by remap(): returns the new UUID, or None when the target was removed
Resolver = Callable[[str], Optional[str]]


class AttributeKind(Enum):
    """Closed set of attribute kinds."""
    TEXT = "text"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    SELECTION = "selection"
    PRICE = "price"
    USER = "user"
    RELATION = "relation"
    RELATION_LIST = "relation-list"
    RICH_TEXT = "rich-text"
    BINARY_FILE = "binary-file"
    IMAGE = "image"
    TAGS = "tags"

    @classmethod
    def from_name(cls, name: str) -> 'AttributeKind':
        """Resolve a kind name or legacy datatype string.

        Raises:
            ValueError: If the name is unknown
        """
        if isinstance(name, cls):
            return name
        return cls(DATATYPE_ALIASES.get(name, name))


# Datatype strings used by the original exporter
DATATYPE_ALIASES = {
    'ezstring': AttributeKind.TEXT.value,
    'eztext': AttributeKind.TEXT.value,
    'ezemail': AttributeKind.TEXT.value,
    'ezisbn': AttributeKind.TEXT.value,
    'ezboolean': AttributeKind.BOOLEAN.value,
    'ezinteger': AttributeKind.INTEGER.value,
    'ezfloat': AttributeKind.FLOAT.value,
    'ezselection': AttributeKind.SELECTION.value,
    'ezprice': AttributeKind.PRICE.value,
    'ezuser': AttributeKind.USER.value,
    'ezobjectrelation': AttributeKind.RELATION.value,
    'ezobjectrelationlist': AttributeKind.RELATION_LIST.value,
    'ezxmltext': AttributeKind.RICH_TEXT.value,
    'ezbinaryfile': AttributeKind.BINARY_FILE.value,
    'ezimage': AttributeKind.IMAGE.value,
    'eztags': AttributeKind.TAGS.value,
}


class AttributeCodec:
    """Encode, decode and verify one attribute kind.

    The defaults describe a plain value without references.
    """

    kind: AttributeKind

    def encode(self, value: Any, ctx: Any) -> Any:
        """Store value to portable form."""
        return value

    def decode(self, data: Any, ctx: Any) -> Any:
        """Portable form to store value."""
        return data

    def references(self, data: Any) -> List[str]:
        """Object UUIDs referenced by the portable form."""
        return []

    def remap(self, data: Any, resolve: Resolver) -> Any:
        """Rewrite referenced UUIDs through `resolve`."""
        return data

    def verify(self, data: Any, verifier: Any) -> Any:
        """Return the possibly rewritten data, or None to null the field."""
        return data


__all__ = ['AttributeKind', 'AttributeCodec', 'DATATYPE_ALIASES', 'Resolver']
