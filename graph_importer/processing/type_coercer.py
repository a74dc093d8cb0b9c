# -*- coding: utf-8 -*-
"""
Type coercion from raw CSV strings to typed property values.

Dispatch is a closed table keyed by PropertyKind, so adding a kind means adding
one parser here and one enum member in dataclasses. Cardinality is applied by
coerce_property(): list properties are split on a delimiter and always come back
as a list, empty when the raw string is blank.

Examples:
    from graph_importer.processing.type_coercer import coerce, coerce_property

    coerce("-42", PropertyKind.INTEGER)                            # -42
    coerce("TRUE", PropertyKind.BOOLEAN)                           # True
    coerce_property("a@x.com;b@x.com", PropertySpec(PropertyKind.STRING, Cardinality.LIST))
    # ['a@x.com', 'b@x.com']
"""
# Standard library
import re
from typing import Callable, Dict, Optional

# Local
from graph_importer.utils.dataclasses import (
    PropertyKind,
    PropertySpec,
    ScalarValue,
    TypedValue,
)
from graph_importer.utils.exceptions import TypeCoercionError

_INTEGER_RE = re.compile(r"^[+-]?[0-9]+$")

_BOOLEANS = {"true": True, "false": False}


def _to_integer(raw: str) -> int:
    text = raw.strip()
    if not _INTEGER_RE.match(text):
        raise TypeCoercionError(raw, PropertyKind.INTEGER)
    return int(text, 10)


def _to_boolean(raw: str) -> bool:
    try:
        return _BOOLEANS[raw.strip().lower()]
    except KeyError:
        raise TypeCoercionError(raw, PropertyKind.BOOLEAN) from None


def _to_float(raw: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        raise TypeCoercionError(raw, PropertyKind.FLOAT) from None


def _to_string(raw: str) -> str:
    return raw


_COERCERS: Dict[PropertyKind, Callable[[str], ScalarValue]] = {
    PropertyKind.INTEGER: _to_integer,
    PropertyKind.STRING: _to_string,
    PropertyKind.BOOLEAN: _to_boolean,
    PropertyKind.FLOAT: _to_float,
}


def coerce(raw: str, kind: PropertyKind) -> ScalarValue:
    """
    Convert one raw string to a value of the given kind.

    Args:
        raw: Raw CSV field
        kind: Declared property kind

    Returns:
        Typed scalar value

    Raises:
        TypeCoercionError: raw cannot be parsed as kind
    """
    return _COERCERS[kind](raw)


def coerce_property(
    raw: str,
    spec: PropertySpec,
    list_delimiter: str = ";",
    property_name: Optional[str] = None,
    row_number: Optional[int] = None
) -> TypedValue:
    """
    Convert a raw field honoring the property's cardinality.

    Single cardinality yields one value. List cardinality yields an ordered
    list: blank raw -> [], otherwise one element per non-blank segment.

    Raises:
        TypeCoercionError: with property name and row number attached
    """
    try:
        if not spec.is_list:
            return coerce(raw, spec.kind)
        return [
            coerce(segment, spec.kind)
            for segment in raw.split(list_delimiter)
            if segment.strip()
        ]
    except TypeCoercionError as e:
        raise TypeCoercionError(e.raw, e.kind, property_name, row_number) from None
