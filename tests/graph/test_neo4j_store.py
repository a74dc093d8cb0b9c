"""
Neo4j store adapter test suite.

Uses Mock sessions and transactions; no database required.

Run: pytest tests/graph/test_neo4j_store.py -v
"""

from unittest.mock import MagicMock, Mock

import pytest
from neo4j.exceptions import (
    AuthError,
    ClientError,
    ConstraintError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

from graph_importer.graph.neo4j_store import (
    Neo4jGraphStore,
    Neo4jTransaction,
    parse_property_type,
    quote_identifier,
    translate_error,
    translated_errors,
)
from graph_importer.utils.dataclasses import Cardinality, PropertyKind, PropertySpec
from graph_importer.utils.exceptions import (
    StoreConnectionError,
    StoreError,
    TransientStoreError,
)


def result_with(ref):
    result = Mock()
    result.single.return_value = {"ref": ref} if ref is not None else None
    return result


@pytest.fixture
def neo_tx():
    return Mock()


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def tx(session, neo_tx):
    return Neo4jTransaction(session, neo_tx)


# ============================================================================
# Helpers
# ============================================================================

class TestHelpers:
    """Identifier quoting, type parsing, error translation"""

    def test_quote_identifier(self):
        assert quote_identifier("Person") == "`Person`"
        assert quote_identifier("we`ird") == "`we``ird`"

    def test_quote_empty_identifier(self):
        with pytest.raises(ValueError):
            quote_identifier("")

    @pytest.mark.parametrize("text,expected", [
        ("INTEGER", PropertySpec(PropertyKind.INTEGER)),
        ("string", PropertySpec(PropertyKind.STRING)),
        ("LIST<STRING NOT NULL>", PropertySpec(PropertyKind.STRING, Cardinality.LIST)),
        ("LIST<FLOAT>", PropertySpec(PropertyKind.FLOAT, Cardinality.LIST)),
        ("DATE", None),
        ("INTEGER | STRING", None),
    ])
    def test_parse_property_type(self, text, expected):
        assert parse_property_type(text) == expected

    @pytest.mark.parametrize("error,expected", [
        (ServiceUnavailable("down"), StoreConnectionError),
        (SessionExpired("gone"), StoreConnectionError),
        (AuthError("nope"), StoreConnectionError),
        (TransientError("deadlock"), TransientStoreError),
        (ConstraintError("duplicate"), TransientStoreError),
        (ClientError("syntax"), StoreError),
    ])
    def test_translate_error(self, error, expected):
        translated = translate_error(error)
        assert type(translated) is expected

    def test_translated_errors_chains_cause(self):
        original = ServiceUnavailable("down")
        with pytest.raises(StoreConnectionError) as exc_info:
            with translated_errors():
                raise original
        assert exc_info.value.__cause__ is original

    def test_other_exceptions_pass_through(self):
        with pytest.raises(KeyError):
            with translated_errors():
                raise KeyError("x")


# ============================================================================
# Transactions
# ============================================================================

class TestNeo4jTransaction:
    """Cypher issued per operation"""

    def test_find_vertex(self, tx, neo_tx):
        neo_tx.run.return_value = result_with("4:abc:1")

        assert tx.find_vertex("Person", "id", 1) == "4:abc:1"
        query = neo_tx.run.call_args.args[0]
        assert "MATCH (n:`Person` {`id`: $key})" in query
        assert neo_tx.run.call_args.kwargs == {"key": 1}

    def test_find_vertex_any_label(self, tx, neo_tx):
        neo_tx.run.return_value = result_with(None)

        assert tx.find_vertex(None, "id", 1) is None
        assert "MATCH (n {`id`: $key})" in neo_tx.run.call_args.args[0]

    def test_create_vertex(self, tx, neo_tx):
        neo_tx.run.return_value = result_with("4:abc:2")

        assert tx.create_vertex("Person", {"id": 2}) == "4:abc:2"
        assert neo_tx.run.call_args.kwargs == {"props": {"id": 2}}

    def test_update_vertex(self, tx, neo_tx):
        tx.update_vertex("4:abc:2", {"name": "Bob"})

        query = neo_tx.run.call_args.args[0]
        assert "SET n += $props" in query
        neo_tx.run.return_value.consume.assert_called_once()

    def test_update_without_properties_is_skipped(self, tx, neo_tx):
        tx.update_vertex("4:abc:2", {})
        tx.update_edge("5:abc:1", {})
        neo_tx.run.assert_not_called()

    def test_find_and_create_edge(self, tx, neo_tx):
        neo_tx.run.side_effect = [result_with(None), result_with("5:abc:1")]

        assert tx.find_edge("knows", "a", "b") is None
        assert tx.create_edge("knows", "a", "b", {"since": 2020}) == "5:abc:1"
        assert "[r:`knows`]" in neo_tx.run.call_args.args[0]

    def test_create_edge_without_endpoints(self, tx, neo_tx):
        neo_tx.run.return_value = result_with(None)

        with pytest.raises(StoreError):
            tx.create_edge("knows", "a", "b", {})

    def test_driver_errors_translated(self, tx, neo_tx):
        neo_tx.run.side_effect = TransientError("lock timeout")

        with pytest.raises(TransientStoreError):
            tx.find_vertex("Person", "id", 1)

    def test_commit_closes_session(self, tx, neo_tx, session):
        tx.commit()

        neo_tx.commit.assert_called_once()
        session.close.assert_called_once()

    def test_failed_commit_closes_session(self, tx, neo_tx, session):
        neo_tx.commit.side_effect = ConstraintError("duplicate key")

        with pytest.raises(TransientStoreError):
            tx.commit()
        session.close.assert_called_once()

    def test_rollback_after_commit_is_noop(self, tx, neo_tx, session):
        tx.commit()
        tx.rollback()

        neo_tx.rollback.assert_not_called()
        session.close.assert_called_once()

    def test_rollback_error_is_logged(self, tx, neo_tx, session):
        neo_tx.rollback.side_effect = ServiceUnavailable("down")

        tx.rollback()

        session.close.assert_called_once()


# ============================================================================
# Store
# ============================================================================

class TestNeo4jGraphStore:
    """Sessions and schema introspection"""

    def test_begin_opens_session_per_transaction(self):
        driver = MagicMock()

        store = Neo4jGraphStore(driver, database="graph")
        tx = store.begin()

        driver.session.assert_called_once_with(database="graph")
        assert isinstance(tx, Neo4jTransaction)

    def test_begin_failure_closes_session(self):
        driver = MagicMock()
        session = driver.session.return_value
        session.begin_transaction.side_effect = SessionExpired("gone")

        with pytest.raises(StoreConnectionError):
            Neo4jGraphStore(driver).begin()
        session.close.assert_called_once()

    def test_unreachable_store(self):
        driver = MagicMock()
        driver.session.side_effect = ServiceUnavailable("down")

        with pytest.raises(StoreConnectionError):
            Neo4jGraphStore(driver).begin()

    def test_declared_property_specs(self):
        driver = MagicMock()
        driver.execute_query.return_value = (
            [
                {"properties": ["id"], "propertyType": "INTEGER"},
                {"properties": ["email"], "propertyType": "LIST<STRING NOT NULL>"},
                {"properties": ["born"], "propertyType": "DATE"},
            ],
            None,
            None,
        )

        specs = Neo4jGraphStore(driver).declared_property_specs("Person")

        assert specs == {
            "id": PropertySpec(PropertyKind.INTEGER),
            "email": PropertySpec(PropertyKind.STRING, Cardinality.LIST),
        }
        assert driver.execute_query.call_args.kwargs["label"] == "Person"

    @pytest.mark.parametrize("count,expected", [(1, True), (0, False)])
    def test_has_key_constraint(self, count, expected):
        driver = MagicMock()
        driver.execute_query.return_value = ([{"count": count}], None, None)

        assert Neo4jGraphStore(driver).has_key_constraint("Person", "id") is expected
        assert driver.execute_query.call_args.kwargs["key"] == "id"
