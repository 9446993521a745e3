"""Attribute codec set.

One codec per AttributeKind, shared by the exporter and the importer.

Package Structure:
- base: AttributeKind enum, legacy datatype aliases and the AttributeCodec interface
- scalar_codecs: text, boolean, integer, float, selection, price and user codecs
- reference_codecs: relation, relation list and tag codecs
- file_codecs: binary file and image codecs
- rich_text: XML rich text with embed and link references
"""

from typing import Dict, Union

from .base import DATATYPE_ALIASES, AttributeCodec, AttributeKind, Resolver
from .file_codecs import BinaryFileCodec, ImageCodec, file_uuid
from .reference_codecs import RelationCodec, RelationListCodec, TagsCodec
from .rich_text import RichTextCodec
from .scalar_codecs import (
    BooleanCodec,
    FloatCodec,
    IntegerCodec,
    PriceCodec,
    SelectionCodec,
    TextCodec,
    UserCodec,
)

CODECS: Dict[AttributeKind, AttributeCodec] = {
    codec.kind: codec for codec in (
        TextCodec(),
        BooleanCodec(),
        IntegerCodec(),
        FloatCodec(),
        SelectionCodec(),
        PriceCodec(),
        UserCodec(),
        RelationCodec(),
        RelationListCodec(),
        RichTextCodec(),
        BinaryFileCodec(),
        ImageCodec(),
        TagsCodec(),
    )
}

_unhandled = [kind.value for kind in AttributeKind if kind not in CODECS]
if _unhandled:
    raise RuntimeError(f"No codec registered for attribute kinds: {', '.join(_unhandled)}")


def get_codec(kind: Union[str, AttributeKind]) -> AttributeCodec:
    """
    Return the codec for an attribute kind.

    Args:
        kind: AttributeKind or kind name, legacy datatype strings accepted

    Raises:
        ValueError: If the kind is unknown
    """
    return CODECS[AttributeKind.from_name(kind)]


__all__ = [
    'AttributeKind',
    'AttributeCodec',
    'DATATYPE_ALIASES',
    'Resolver',
    'CODECS',
    'get_codec',
    'file_uuid',
    'TextCodec',
    'BooleanCodec',
    'IntegerCodec',
    'FloatCodec',
    'SelectionCodec',
    'PriceCodec',
    'UserCodec',
    'RelationCodec',
    'RelationListCodec',
    'TagsCodec',
    'RichTextCodec',
    'BinaryFileCodec',
    'ImageCodec',
]
