"""Codecs for attribute kinds holding plain values."""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .base import AttributeCodec, AttributeKind


class TextCodec(AttributeCodec):
    kind = AttributeKind.TEXT

    def decode(self, data: Any, ctx: Any) -> Optional[str]:
        if data is None:
            return None
        return str(data)


class BooleanCodec(AttributeCodec):
    kind = AttributeKind.BOOLEAN

    def encode(self, value: Any, ctx: Any) -> Optional[bool]:
        return None if value is None else bool(value)

    def decode(self, data: Any, ctx: Any) -> Optional[bool]:
        if data is None:
            return None
        if isinstance(data, str):
            return data.strip().lower() in ('1', 'true', 'yes')
        return bool(data)


class IntegerCodec(AttributeCodec):
    kind = AttributeKind.INTEGER

    def decode(self, data: Any, ctx: Any) -> Optional[int]:
        if data is None or data == '':
            return None
        return int(data)


class FloatCodec(AttributeCodec):
    kind = AttributeKind.FLOAT

    def decode(self, data: Any, ctx: Any) -> Optional[float]:
        if data is None or data == '':
            return None
        return float(data)


class SelectionCodec(AttributeCodec):
    """Selected option indices, an empty selection is an empty list."""

    kind = AttributeKind.SELECTION

    def encode(self, value: Any, ctx: Any) -> List[int]:
        return [int(option) for option in (value or [])]

    def decode(self, data: Any, ctx: Any) -> List[int]:
        return [int(option) for option in (data or [])]


class PriceCodec(AttributeCodec):
    """Prices travel with the amount as a string so no precision is lost."""

    kind = AttributeKind.PRICE

    def encode(self, value: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        if value is None:
            return None
        data = dict(value)
        data['amount'] = str(value.get('amount', '0'))
        return data

    def decode(self, data: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        if data is None:
            return None
        value = dict(data)
        try:
            value['amount'] = Decimal(str(data.get('amount', '0')))
        except InvalidOperation as e:
            raise ValueError(f"Invalid price amount: {data.get('amount')!r}") from e
        return value


class UserCodec(AttributeCodec):
    """User account credentials: login, email, password hash and hash type."""

    kind = AttributeKind.USER

    FIELDS = ('login', 'email', 'password_hash', 'password_hash_type', 'enabled')

    def encode(self, value: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        if value is None:
            return None
        return {key: value[key] for key in self.FIELDS if key in value}

    def decode(self, data: Optional[Dict[str, Any]], ctx: Any) -> Optional[Dict[str, Any]]:
        if data is None:
            return None
        return {key: data[key] for key in self.FIELDS if key in data}


__all__ = [
    'TextCodec',
    'BooleanCodec',
    'IntegerCodec',
    'FloatCodec',
    'SelectionCodec',
    'PriceCodec',
    'UserCodec',
]
