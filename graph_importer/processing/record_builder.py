# -*- coding: utf-8 -*-
"""
Build typed vertex records and edge specs from raw CSV records.

Only columns declared in the property type table become properties; extra
columns are ignored so CSV exports can grow without breaking a load, and
declared columns absent from the row are simply omitted (no defaults).
"""
# Standard library
from typing import Optional

# Local
from graph_importer.processing.type_coercer import coerce_property
from graph_importer.utils.config import LABEL_COLUMN, SOURCE_COLUMN, TARGET_COLUMN
from graph_importer.utils.dataclasses import (
    EdgeSpec,
    PropertyKind,
    PropertySpec,
    PropertyTypeTable,
    RawRecord,
    ScalarValue,
    TypedRecord,
)
from graph_importer.utils.exceptions import MissingKeyError

_KEY_FALLBACK = PropertySpec(PropertyKind.STRING)


def build_record(
    raw: RawRecord,
    table: PropertyTypeTable,
    list_delimiter: str = ";"
) -> TypedRecord:
    """
    Coerce every declared column of a raw record.

    Args:
        raw: Decoded CSV row
        table: Property type table for the job
        list_delimiter: Separator for list-cardinality values

    Returns:
        Property name -> typed value (list for list cardinality)

    Raises:
        TypeCoercionError: a value does not parse as its declared kind
    """
    record: TypedRecord = {}
    for name, value in raw.values.items():
        spec = table.get(name)
        if spec is None:
            continue
        record[name] = coerce_property(
            value, spec, list_delimiter, property_name=name, row_number=raw.row_number
        )
    return record


def coerce_key(
    raw_key: Optional[str],
    table: PropertyTypeTable,
    key_property: str,
    row_number: Optional[int] = None,
    column: Optional[str] = None
) -> ScalarValue:
    """
    Coerce a business key with the key property's declared kind.

    Keys are always single-valued; an undeclared key property is a string.

    Raises:
        MissingKeyError: key column absent or blank
        TypeCoercionError: key does not parse as its kind
    """
    if raw_key is None or not raw_key.strip():
        raise MissingKeyError(f"missing business key in column '{column or key_property}'", row_number)

    spec = table.get(key_property, _KEY_FALLBACK)
    single = PropertySpec(spec.kind)
    return coerce_property(raw_key.strip(), single, property_name=key_property, row_number=row_number)


def edge_label(raw: RawRecord, default_label: str, label_column: str = LABEL_COLUMN) -> str:
    """Edge label from the label column, or the default when absent or blank."""
    return (raw.values.get(label_column) or "").strip() or default_label


def build_edge_spec(
    raw: RawRecord,
    table: PropertyTypeTable,
    key_property: str,
    default_label: str,
    list_delimiter: str = ";",
    source_column: str = SOURCE_COLUMN,
    target_column: str = TARGET_COLUMN,
    label_column: str = LABEL_COLUMN
) -> EdgeSpec:
    """
    Build an EdgeSpec: both endpoint keys, the edge label and typed properties.

    The endpoint and label columns are structural and never become edge
    properties, even when a property of the same name is declared.
    """
    values = raw.values
    label = edge_label(raw, default_label, label_column)

    source_key = coerce_key(values.get(source_column), table, key_property, raw.row_number, source_column)
    target_key = coerce_key(values.get(target_column), table, key_property, raw.row_number, target_column)

    structural = {source_column, target_column, label_column}
    properties = build_record(
        RawRecord(raw.row_number, {k: v for k, v in values.items() if k not in structural}),
        table,
        list_delimiter,
    )
    return EdgeSpec(
        label=label,
        source_key=source_key,
        target_key=target_key,
        properties=properties,
        row_number=raw.row_number,
    )
