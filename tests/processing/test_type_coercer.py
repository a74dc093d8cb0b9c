"""
Type coercion test suite.

Tests scalar parsing per kind and list cardinality splitting.

Run: pytest tests/processing/test_type_coercer.py -v
"""

import pytest

from graph_importer.processing.type_coercer import coerce, coerce_property
from graph_importer.utils.dataclasses import Cardinality, PropertyKind, PropertySpec
from graph_importer.utils.exceptions import TypeCoercionError

STRING_LIST = PropertySpec(PropertyKind.STRING, Cardinality.LIST)
INT_LIST = PropertySpec(PropertyKind.INTEGER, Cardinality.LIST)


# ============================================================================
# Scalars
# ============================================================================

class TestCoerce:
    """Single values per kind"""

    @pytest.mark.parametrize("raw,expected", [
        ("42", 42),
        ("-7", -7),
        ("+3", 3),
        (" 12 ", 12),
        ("0", 0),
        ("9223372036854775807", 9223372036854775807),
    ])
    def test_integer(self, raw, expected):
        assert coerce(raw, PropertyKind.INTEGER) == expected

    @pytest.mark.parametrize("raw", ["", "abc", "1.5", "1e3", "12a", "--1"])
    def test_integer_rejects(self, raw):
        with pytest.raises(TypeCoercionError) as exc_info:
            coerce(raw, PropertyKind.INTEGER)
        assert exc_info.value.raw == raw
        assert exc_info.value.kind is PropertyKind.INTEGER

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("TRUE", True), ("False", False), (" false ", False),
    ])
    def test_boolean(self, raw, expected):
        assert coerce(raw, PropertyKind.BOOLEAN) is expected

    @pytest.mark.parametrize("raw", ["", "yes", "1", "t"])
    def test_boolean_rejects(self, raw):
        with pytest.raises(TypeCoercionError):
            coerce(raw, PropertyKind.BOOLEAN)

    def test_float(self):
        assert coerce("2.5", PropertyKind.FLOAT) == 2.5
        assert coerce("-1e3", PropertyKind.FLOAT) == -1000.0

    def test_float_rejects(self):
        with pytest.raises(TypeCoercionError):
            coerce("two", PropertyKind.FLOAT)

    def test_string_is_unchanged(self):
        assert coerce("  Alice  ", PropertyKind.STRING) == "  Alice  "
        assert coerce("", PropertyKind.STRING) == ""


# ============================================================================
# Cardinality
# ============================================================================

class TestCoerceProperty:
    """List splitting and error context"""

    def test_single_value(self):
        assert coerce_property("5", PropertySpec(PropertyKind.INTEGER)) == 5

    def test_list_split(self):
        assert coerce_property("a@x.com;b@x.com", STRING_LIST) == ["a@x.com", "b@x.com"]

    def test_list_keeps_order(self):
        assert coerce_property("3;1;2", INT_LIST) == [3, 1, 2]

    def test_list_single_element(self):
        assert coerce_property("a@x.com", STRING_LIST) == ["a@x.com"]

    def test_blank_list_is_empty(self):
        assert coerce_property("", STRING_LIST) == []
        assert coerce_property("   ", STRING_LIST) == []

    def test_empty_segments_dropped(self):
        assert coerce_property("a;;b;", STRING_LIST) == ["a", "b"]

    def test_custom_delimiter(self):
        assert coerce_property("1|2", INT_LIST, list_delimiter="|") == [1, 2]

    def test_bad_list_element(self):
        with pytest.raises(TypeCoercionError) as exc_info:
            coerce_property("1;x;3", INT_LIST, property_name="scores", row_number=4)

        error = exc_info.value
        assert error.raw == "x"
        assert error.property_name == "scores"
        assert error.row_number == 4
        assert "Row 4" in str(error)

    def test_error_carries_property_name(self):
        with pytest.raises(TypeCoercionError) as exc_info:
            coerce_property("abc", PropertySpec(PropertyKind.INTEGER), property_name="id")
        assert "id" in str(exc_info.value)
