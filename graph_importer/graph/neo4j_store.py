# -*- coding: utf-8 -*-
"""
Neo4j implementation of the graph store contract.

Wraps an already-open neo4j.Driver. Every GraphTransaction is backed by its own
session and explicit transaction, so worker threads never share a session.
Vertex and edge handles are Neo4j element ids, valid inside the transaction
that produced them.

Driver exceptions are translated at this boundary:
    ServiceUnavailable, SessionExpired, AuthError -> StoreConnectionError
    TransientError, ConstraintError               -> TransientStoreError
    any other Neo4jError / DriverError            -> StoreError

ConstraintError counts as transient: two workers creating the same
business key race on the uniqueness constraint, and the retried batch finds
the vertex the winner committed.

Example:
    from neo4j import GraphDatabase
    from graph_importer.graph.neo4j_store import Neo4jGraphStore

    driver = GraphDatabase.driver(uri, auth=(user, password))
    store = Neo4jGraphStore(driver)
    tx = store.begin()
    ref = tx.create_vertex("Person", {"id": 1, "name": "Alice"})
    tx.commit()
"""
# Standard library
import re
from contextlib import contextmanager
from typing import Dict, Optional

# Third-party
from neo4j import Driver
from neo4j.exceptions import (
    AuthError,
    ConstraintError,
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

# Local
from graph_importer.graph.store import GraphStore, GraphTransaction
from graph_importer.utils.dataclasses import (
    Cardinality,
    PropertyKind,
    PropertySpec,
    VertexRef,
)
from graph_importer.utils.exceptions import (
    StoreConnectionError,
    StoreError,
    TransientStoreError,
)
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)

NEO4J_TYPES = {
    "INTEGER": PropertyKind.INTEGER,
    "STRING": PropertyKind.STRING,
    "BOOLEAN": PropertyKind.BOOLEAN,
    "FLOAT": PropertyKind.FLOAT,
}

_LIST_TYPE_RE = re.compile(r"^LIST\s*<\s*(\w+)(?:\s+NOT\s+NULL)?\s*>$", re.IGNORECASE)

_UNIQUE_CONSTRAINT_TYPES = ["UNIQUENESS", "NODE_PROPERTY_UNIQUENESS", "NODE_KEY"]


def translate_error(error: Exception) -> Exception:
    """Map a neo4j driver exception to the loader hierarchy."""
    if isinstance(error, (ServiceUnavailable, SessionExpired, AuthError)):
        return StoreConnectionError(str(error))
    if isinstance(error, (TransientError, ConstraintError)):
        return TransientStoreError(str(error))
    return StoreError(str(error))


@contextmanager
def translated_errors():
    try:
        yield
    except (Neo4jError, DriverError) as e:
        raise translate_error(e) from e


def quote_identifier(name: str) -> str:
    """Backtick-quote a label, relationship type or property name."""
    if not name:
        raise ValueError("Empty Cypher identifier")
    return "`" + name.replace("`", "``") + "`"


def parse_property_type(type_name: str) -> Optional[PropertySpec]:
    """
    Parse a Neo4j property type ('INTEGER', 'LIST<STRING NOT NULL>', ...).

    Returns None for types the loader cannot produce (unions, temporals).
    """
    text = type_name.strip().upper()
    match = _LIST_TYPE_RE.match(text)
    if match:
        kind = NEO4J_TYPES.get(match.group(1))
        return PropertySpec(kind, Cardinality.LIST) if kind else None
    kind = NEO4J_TYPES.get(text)
    return PropertySpec(kind) if kind else None


def _match_node(variable: str, label: Optional[str]) -> str:
    if label:
        return f"({variable}:{quote_identifier(label)}"
    return f"({variable}"


class Neo4jTransaction(GraphTransaction):
    """Explicit Neo4j transaction owning its session."""

    def __init__(self, session, tx):
        self._session = session
        self._tx = tx
        self._closed = False

    def _single(self, query: str, **params):
        with translated_errors():
            record = self._tx.run(query, **params).single()
        return record["ref"] if record else None

    def find_vertex(self, label, key_property, key) -> Optional[VertexRef]:
        query = (
            f"MATCH {_match_node('n', label)} {{{quote_identifier(key_property)}: $key}}) "
            "RETURN elementId(n) AS ref LIMIT 1"
        )
        return self._single(query, key=key)

    def create_vertex(self, label, properties) -> VertexRef:
        query = f"CREATE (n:{quote_identifier(label)}) SET n = $props RETURN elementId(n) AS ref"
        return self._single(query, props=properties)

    def update_vertex(self, ref, properties) -> None:
        if not properties:
            return
        with translated_errors():
            self._tx.run("MATCH (n) WHERE elementId(n) = $ref SET n += $props",
                         ref=ref, props=properties).consume()

    def find_edge(self, label, source, target) -> Optional[str]:
        query = (
            f"MATCH (a)-[r:{quote_identifier(label)}]->(b) "
            "WHERE elementId(a) = $source AND elementId(b) = $target "
            "RETURN elementId(r) AS ref LIMIT 1"
        )
        return self._single(query, source=source, target=target)

    def create_edge(self, label, source, target, properties) -> str:
        query = (
            "MATCH (a) WHERE elementId(a) = $source "
            "MATCH (b) WHERE elementId(b) = $target "
            f"CREATE (a)-[r:{quote_identifier(label)}]->(b) SET r = $props "
            "RETURN elementId(r) AS ref"
        )
        ref = self._single(query, source=source, target=target, props=properties)
        if ref is None:
            raise StoreError(f"Endpoints vanished while creating {label} edge")
        return ref

    def update_edge(self, ref, properties) -> None:
        if not properties:
            return
        with translated_errors():
            self._tx.run("MATCH ()-[r]->() WHERE elementId(r) = $ref SET r += $props",
                         ref=ref, props=properties).consume()

    def commit(self) -> None:
        try:
            with translated_errors():
                self._tx.commit()
        finally:
            self._close()

    def rollback(self) -> None:
        if self._closed:
            return
        try:
            self._tx.rollback()
        except (Neo4jError, DriverError) as e:
            # The server discards the transaction when the connection drops
            logger.warning(f"Rollback failed: {e}")
        finally:
            self._close()

    def _close(self):
        if not self._closed:
            self._closed = True
            self._session.close()


class Neo4jGraphStore(GraphStore):
    """
    GraphStore over a neo4j.Driver.

    The driver's connection pool serves concurrent workers; the caller owns
    the driver and closes it.
    """

    def __init__(self, driver: Driver, database: Optional[str] = None):
        """
        Args:
            driver: Open neo4j driver
            database: Target database (None = server default)
        """
        self.driver = driver
        self.database = database

    def begin(self) -> Neo4jTransaction:
        with translated_errors():
            session = self.driver.session(database=self.database)
            try:
                tx = session.begin_transaction()
            except BaseException:
                session.close()
                raise
        return Neo4jTransaction(session, tx)

    def declared_property_specs(self, label: str) -> Dict[str, PropertySpec]:
        """Read property type constraints (Neo4j 5.9+ enterprise) for a label."""
        query = """
        SHOW CONSTRAINTS YIELD type, labelsOrTypes, properties, propertyType
        WHERE type IN ['NODE_PROPERTY_TYPE', 'RELATIONSHIP_PROPERTY_TYPE']
          AND $label IN labelsOrTypes
        RETURN properties, propertyType
        """
        with translated_errors():
            records, _, _ = self.driver.execute_query(query, label=label, database_=self.database)

        specs = {}
        for record in records:
            spec = parse_property_type(record["propertyType"])
            if spec is None:
                logger.debug(f"Ignoring unsupported type {record['propertyType']} on {label}")
                continue
            for name in record["properties"]:
                specs[name] = spec
        return specs

    def has_key_constraint(self, label: str, key_property: str) -> bool:
        query = """
        SHOW CONSTRAINTS YIELD type, labelsOrTypes, properties
        WHERE type IN $types AND $label IN labelsOrTypes AND properties = [$key]
        RETURN count(*) AS count
        """
        with translated_errors():
            records, _, _ = self.driver.execute_query(
                query, types=_UNIQUE_CONSTRAINT_TYPES, label=label, key=key_property,
                database_=self.database,
            )
        return bool(records) and records[0]["count"] > 0
