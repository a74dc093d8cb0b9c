# -*- coding: utf-8 -*-
"""
Schema bootstrap and pre-flight schema check.

SchemaManager performs the one-time, sequential schema setup against Neo4j:
a uniqueness constraint on the business key of every vertex label (this also
creates the index used for key lookups) and, optionally, property type
constraints mirroring the property type table.

SchemaValidator runs before a load job starts: it builds one sample record
and compares every value against the store's declared property types. Any
disagreement raises SchemaMismatchError and the job does not start.

Examples:
    manager = SchemaManager(driver)
    manager.define_schema(["Person"], table, enforce_types=False)

    SchemaValidator(store).check(table, "Person", sample_record)
"""
# Standard library
import re
from typing import Iterable, Optional

# Third-party
from neo4j import Driver

# Local
from graph_importer.graph.neo4j_store import quote_identifier, translated_errors
from graph_importer.graph.store import GraphStore
from graph_importer.utils.config import KEY_PROPERTY
from graph_importer.utils.dataclasses import (
    PropertyKind,
    PropertySpec,
    PropertyTypeTable,
    TypedRecord,
)
from graph_importer.utils.exceptions import SchemaMismatchError
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)

_CYPHER_TYPES = {
    PropertyKind.INTEGER: "INTEGER",
    PropertyKind.STRING: "STRING",
    PropertyKind.BOOLEAN: "BOOLEAN",
    PropertyKind.FLOAT: "FLOAT",
}


def cypher_type(spec: PropertySpec) -> str:
    """Neo4j type expression for a property spec."""
    base = _CYPHER_TYPES[spec.kind]
    return f"LIST<{base} NOT NULL>" if spec.is_list else base


def _constraint_name(*parts: str) -> str:
    return re.sub(r"[^0-9a-zA-Z_]", "_", "_".join(parts)).lower()


class SchemaManager:
    """One-time Neo4j schema setup."""

    def __init__(self, driver: Driver, database: Optional[str] = None,
                 key_property: str = KEY_PROPERTY):
        self.driver = driver
        self.database = database
        self.key_property = key_property

    def _run(self, query: str, **params):
        with translated_errors():
            return self.driver.execute_query(query, database_=self.database, **params)

    def clear_database(self) -> int:
        """
        Delete all nodes and relationships.

        Returns:
            Number of nodes deleted
        """
        logger.warning("Clearing entire database...")
        records, _, _ = self._run("MATCH (n) DETACH DELETE n RETURN count(n) AS count")
        count = records[0]["count"] if records else 0
        logger.info(f"Deleted {count} nodes and all relationships")
        return count

    def create_key_constraints(self, vertex_labels: Iterable[str]) -> int:
        """Uniqueness constraint on the key property for every vertex label."""
        created = 0
        for label in vertex_labels:
            name = _constraint_name(label, self.key_property, "unique")
            self._run(
                f"CREATE CONSTRAINT {quote_identifier(name)} IF NOT EXISTS "
                f"FOR (n:{quote_identifier(label)}) "
                f"REQUIRE n.{quote_identifier(self.key_property)} IS UNIQUE"
            )
            logger.debug(f"Created: {name}")
            created += 1
        return created

    def create_type_constraints(self, vertex_labels: Iterable[str],
                                table: PropertyTypeTable) -> int:
        """Property type constraints (Neo4j 5.9+ enterprise) for every label/property."""
        created = 0
        for label in vertex_labels:
            for prop, spec in table.items():
                name = _constraint_name(label, prop, "type")
                self._run(
                    f"CREATE CONSTRAINT {quote_identifier(name)} IF NOT EXISTS "
                    f"FOR (n:{quote_identifier(label)}) "
                    f"REQUIRE n.{quote_identifier(prop)} IS :: {cypher_type(spec)}"
                )
                logger.debug(f"Created: {name}")
                created += 1
        return created

    def define_schema(self, vertex_labels: Iterable[str], table: PropertyTypeTable,
                      enforce_types: bool = False):
        """
        Declare key constraints, plus type constraints when enforce_types.

        Edge labels and property keys need no declaration in Neo4j.
        """
        vertex_labels = list(vertex_labels)
        logger.info(f"Declaring schema for vertex labels: {', '.join(vertex_labels)}")
        keys = self.create_key_constraints(vertex_labels)
        types = self.create_type_constraints(vertex_labels, table) if enforce_types else 0
        logger.info(f"Created {keys} key constraints and {types} type constraints")


class SchemaValidator:
    """Pre-flight comparison of a sample record with the store schema."""

    def __init__(self, store: GraphStore, key_property: str = KEY_PROPERTY):
        self.store = store
        self.key_property = key_property

    def check(self, table: PropertyTypeTable, label: str,
              sample: Optional[TypedRecord] = None, check_key: bool = True):
        """
        Raise SchemaMismatchError when the table or sample disagree with the store.

        Args:
            table: Property type table of the job
            label: Vertex or edge label the sample belongs to
            sample: One typed record (optional; without it only the
                declared tables are compared)
            check_key: Warn when the label has no key uniqueness constraint
                (vertex labels only)
        """
        declared = self.store.declared_property_specs(label)
        for prop, store_spec in declared.items():
            spec = table.get(prop)
            if spec is not None and spec != store_spec:
                raise SchemaMismatchError(
                    f"{label}.{prop}: loader declares {cypher_type(spec)}, "
                    f"store declares {cypher_type(store_spec)}"
                )

        for prop, value in (sample or {}).items():
            spec = declared.get(prop) or table.get(prop)
            if spec is None:
                continue
            values = value if isinstance(value, list) else [value]
            if isinstance(value, list) != spec.is_list or not all(spec.kind.matches(v) for v in values):
                raise SchemaMismatchError(
                    f"{label}.{prop}: value {value!r} does not match {cypher_type(spec)}"
                )

        if check_key and not self.store.has_key_constraint(label, self.key_property):
            logger.warning(
                f"No uniqueness constraint on {label}.{self.key_property}: "
                f"concurrent workers may create duplicate vertices"
            )
