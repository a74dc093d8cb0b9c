# -*- coding: utf-8 -*-
"""
Graph store contract used by the bulk loader.

The loader never talks to a database driver directly: each worker opens one
GraphTransaction per batch through GraphStore.begin() and either commits it or
rolls it back. Implementations must let transactions from different threads
run concurrently and in isolation; the loader does not serialize them.

Implementations raise the loader's exception types:
    - TransientStoreError for conflicts, timeouts and uniqueness races
    - StoreError for any other failure of the current transaction
    - StoreConnectionError when the store is unreachable
"""
# Standard library
from abc import ABC, abstractmethod
from typing import Dict, Optional

# Local
from graph_importer.utils.dataclasses import (
    PropertySpec,
    ScalarValue,
    TypedRecord,
    VertexRef,
)


class GraphTransaction(ABC):
    """One isolated unit of work against the store."""

    @abstractmethod
    def find_vertex(self, label: Optional[str], key_property: str,
                    key: ScalarValue) -> Optional[VertexRef]:
        """Exact-match lookup by business key (label None = any label)."""

    @abstractmethod
    def create_vertex(self, label: str, properties: TypedRecord) -> VertexRef:
        """Create a vertex and return its handle."""

    @abstractmethod
    def update_vertex(self, ref: VertexRef, properties: TypedRecord) -> None:
        """Overwrite the given properties, keeping all others."""

    @abstractmethod
    def find_edge(self, label: str, source: VertexRef, target: VertexRef) -> Optional[str]:
        """Existing edge of this label from source to target, if any."""

    @abstractmethod
    def create_edge(self, label: str, source: VertexRef, target: VertexRef,
                    properties: TypedRecord) -> str:
        """Create a directed edge and return its handle."""

    @abstractmethod
    def update_edge(self, ref: str, properties: TypedRecord) -> None:
        """Overwrite the given edge properties, keeping all others."""

    @abstractmethod
    def commit(self) -> None:
        """Make every mutation of this transaction durable."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard every mutation; safe to call after a failed commit."""


class GraphStore(ABC):
    """Already-open connection to a graph store; the loader never closes it."""

    @abstractmethod
    def begin(self) -> GraphTransaction:
        """Open a new, independent transaction."""

    def declared_property_specs(self, label: str) -> Dict[str, PropertySpec]:
        """
        Property types the store enforces for a label.

        Stores without typed schemas return an empty mapping, which makes
        the pre-flight schema check a no-op.
        """
        return {}

    def has_key_constraint(self, label: str, key_property: str) -> bool:
        """Whether the store guarantees key uniqueness for a label."""
        return False
