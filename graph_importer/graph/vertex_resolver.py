# -*- coding: utf-8 -*-
"""
Business-key vertex resolution (find-or-create) inside a transaction.

A vertex found by its key is upserted: the row's properties overwrite the
stored ones and the existing handle is returned, so loading the same file twice
does not duplicate vertices. Handles are never cached across calls; every
lookup goes to the store's key index within the caller's transaction.

Concurrent workers may race to create the same key before either commits.
Uniqueness is delegated to the store's uniqueness constraint on the key: the
losing commit fails with TransientStoreError, the bulk loader retries that
batch, and the retry resolves to the committed vertex.

Example:
    resolver = VertexResolver(key_property="id")
    ref = resolver.resolve_or_create(tx, 1, "Person", {"id": 1, "name": "Alice"})
"""
# Standard library
from typing import Optional

# Local
from graph_importer.graph.store import GraphTransaction
from graph_importer.utils.config import KEY_PROPERTY
from graph_importer.utils.dataclasses import ScalarValue, TypedRecord, VertexRef
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)


class VertexResolver:
    """Find-or-create vertices by business key."""

    def __init__(self, key_property: str = KEY_PROPERTY):
        self.key_property = key_property

    def resolve(
        self,
        tx: GraphTransaction,
        key: ScalarValue,
        label: Optional[str] = None,
        key_property: Optional[str] = None
    ) -> Optional[VertexRef]:
        """
        Look up a vertex by key without creating it.

        Args:
            tx: Active transaction
            key: Business key value
            label: Vertex label to search (None = any label)
            key_property: Override of the resolver's key property

        Returns:
            Vertex handle, or None when no vertex has this key
        """
        return tx.find_vertex(label, key_property or self.key_property, key)

    def resolve_or_create(
        self,
        tx: GraphTransaction,
        key: ScalarValue,
        label: str,
        properties: Optional[TypedRecord] = None,
        key_property: Optional[str] = None
    ) -> VertexRef:
        """
        Return the vertex with this key, creating or upserting it.

        Args:
            tx: Active transaction
            key: Business key value
            label: Label for lookup and for a newly created vertex
            properties: Properties to store (the key is always included)
            key_property: Override of the resolver's key property

        Returns:
            Handle of the existing or newly created vertex
        """
        key_property = key_property or self.key_property
        props = dict(properties or {})
        props[key_property] = key

        ref = tx.find_vertex(label, key_property, key)
        if ref is not None:
            tx.update_vertex(ref, props)
            return ref

        logger.debug(f"Creating {label} vertex {key_property}={key!r}")
        return tx.create_vertex(label, props)
