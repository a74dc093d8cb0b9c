# -*- coding: utf-8 -*-
"""
Shared fixtures: an in-memory GraphStore and CSV file helpers.

InMemoryGraphStore stages every mutation inside its transaction and applies
it atomically on commit, so rolled back or failed batches leave no trace.
Commits can be made to fail on demand to exercise the retry path, and a
uniqueness check on (label, key) mimics a store key constraint.
"""

# Standard library
import itertools
import threading
from collections import deque
from typing import Dict, List, Optional

# Third-party
import pytest

# Local
from graph_importer.graph.store import GraphStore, GraphTransaction
from graph_importer.utils.exceptions import StoreError, TransientStoreError


# ============================================================================
# In-memory store
# ============================================================================

class InMemoryTransaction(GraphTransaction):
    """Staged mutations over a snapshot-free view of the committed graph."""

    def __init__(self, store: "InMemoryGraphStore"):
        self.store = store
        self.new_vertices: Dict[str, dict] = {}
        self.vertex_updates: Dict[str, dict] = {}
        self.new_edges: Dict[str, dict] = {}
        self.edge_updates: Dict[str, dict] = {}
        self.closed = False

    # ---------- vertices ----------

    def _vertex_view(self, ref):
        if ref in self.new_vertices:
            vertex = self.new_vertices[ref]
            props = dict(vertex["props"])
        else:
            with self.store.lock:
                vertex = self.store.vertices.get(ref)
                if vertex is None:
                    return None
                props = dict(vertex["props"])
        props.update(self.vertex_updates.get(ref, {}))
        return {"label": vertex["label"], "props": props}

    def find_vertex(self, label, key_property, key):
        self.store.check_failure("find_vertex")
        with self.store.lock:
            refs = list(self.store.vertices)
        for ref in list(self.new_vertices) + refs:
            vertex = self._vertex_view(ref)
            if label is not None and vertex["label"] != label:
                continue
            if vertex["props"].get(key_property) == key:
                return ref
        return None

    def create_vertex(self, label, properties):
        ref = self.store.next_ref("v")
        self.new_vertices[ref] = {"label": label, "props": dict(properties)}
        return ref

    def update_vertex(self, ref, properties):
        if ref in self.new_vertices:
            self.new_vertices[ref]["props"].update(properties)
        else:
            self.vertex_updates.setdefault(ref, {}).update(properties)

    # ---------- edges ----------

    def find_edge(self, label, source, target):
        with self.store.lock:
            committed = list(self.store.edges.items())
        for ref, edge in list(self.new_edges.items()) + committed:
            if (edge["label"], edge["source"], edge["target"]) == (label, source, target):
                return ref
        return None

    def create_edge(self, label, source, target, properties):
        ref = self.store.next_ref("e")
        self.new_edges[ref] = {
            "label": label, "source": source, "target": target, "props": dict(properties),
        }
        return ref

    def update_edge(self, ref, properties):
        if ref in self.new_edges:
            self.new_edges[ref]["props"].update(properties)
        else:
            self.edge_updates.setdefault(ref, {}).update(properties)

    # ---------- lifecycle ----------

    def commit(self):
        if self.closed:
            raise StoreError("Transaction already closed")
        self.closed = True
        self.store.apply(self)

    def rollback(self):
        self.closed = True
        with self.store.lock:
            self.store.rollbacks += 1


class InMemoryGraphStore(GraphStore):
    """Thread-safe in-memory graph with failure injection."""

    def __init__(self, declared_specs: Optional[Dict[str, dict]] = None,
                 key_constraint: bool = True, key_property: str = "id"):
        self.lock = threading.Lock()
        self.vertices: Dict[str, dict] = {}
        self.edges: Dict[str, dict] = {}
        self.commits = 0
        self.rollbacks = 0
        self.begins = 0
        self.declared_specs = declared_specs or {}
        self.key_constraint = key_constraint
        self.key_property = key_property
        self._ids = itertools.count(1)
        self._commit_failures = deque()
        self._op_failures: Dict[str, deque] = {}
        self.before_commit = None

    # ---------- failure injection ----------

    def fail_next_commits(self, count: int, error_factory=None):
        """Make the next `count` commits raise (default TransientStoreError)."""
        factory = error_factory or (lambda: TransientStoreError("injected commit conflict"))
        with self.lock:
            self._commit_failures.extend(factory for _ in range(count))

    def fail_operation(self, name: str, error: Exception, count: int = 1):
        with self.lock:
            self._op_failures.setdefault(name, deque()).extend([error] * count)

    def check_failure(self, name: str):
        with self.lock:
            pending = self._op_failures.get(name)
            error = pending.popleft() if pending else None
        if error is not None:
            raise error

    # ---------- GraphStore ----------

    def begin(self):
        self.check_failure("begin")
        with self.lock:
            self.begins += 1
        return InMemoryTransaction(self)

    def declared_property_specs(self, label):
        return dict(self.declared_specs.get(label, {}))

    def has_key_constraint(self, label, key_property):
        return self.key_constraint

    def next_ref(self, prefix: str) -> str:
        with self.lock:
            return f"{prefix}{next(self._ids)}"

    def apply(self, tx: InMemoryTransaction):
        if self.before_commit is not None:
            self.before_commit(tx)
        with self.lock:
            if self._commit_failures:
                raise self._commit_failures.popleft()()
            if self.key_constraint:
                self._check_unique(tx)
            for ref, vertex in tx.new_vertices.items():
                self.vertices[ref] = {"label": vertex["label"], "props": dict(vertex["props"])}
            for ref, props in tx.vertex_updates.items():
                self.vertices[ref]["props"].update(props)
            for ref, edge in tx.new_edges.items():
                self.edges[ref] = dict(edge, props=dict(edge["props"]))
            for ref, props in tx.edge_updates.items():
                self.edges[ref]["props"].update(props)
            self.commits += 1

    def _check_unique(self, tx: InMemoryTransaction):
        existing = {
            (vertex["label"], vertex["props"].get(self.key_property))
            for vertex in self.vertices.values()
        }
        for vertex in tx.new_vertices.values():
            key = (vertex["label"], vertex["props"].get(self.key_property))
            if key in existing:
                raise TransientStoreError(f"duplicate key {key}")
            existing.add(key)

    # ---------- inspection ----------

    def vertices_with_label(self, label: str) -> List[dict]:
        return [v["props"] for v in self.vertices.values() if v["label"] == label]

    def vertex(self, label: str, key) -> Optional[dict]:
        matches = [p for p in self.vertices_with_label(label) if p.get(self.key_property) == key]
        assert len(matches) <= 1, f"duplicate {label} vertices for key {key!r}"
        return matches[0] if matches else None

    def ref_of(self, label: str, key) -> Optional[str]:
        for ref, vertex in self.vertices.items():
            if vertex["label"] == label and vertex["props"].get(self.key_property) == key:
                return ref
        return None

    def edges_with_label(self, label: str) -> List[dict]:
        return [e for e in self.edges.values() if e["label"] == label]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store():
    return InMemoryGraphStore()


@pytest.fixture
def store_factory():
    return InMemoryGraphStore


@pytest.fixture
def write_csv(tmp_path):
    """Write a CSV file from lines and return its path."""
    def _write(name: str, lines: List[str]):
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture
def person_types():
    return {"id": int, "name": str, "surname": str, "email": str, "date": str}


@pytest.fixture
def person_cardinalities():
    return {"email": "list"}
