# -*- coding: utf-8 -*-
"""
Core data structures for the CSV-to-graph bulk loader.

Single source of truth for all loader data structures: property kinds and
cardinalities, the immutable property type table, raw and typed records,
edge specs, batches, load jobs and load reports. Import from this module
rather than individual modules for consistency.

Examples:
    from graph_importer.utils.dataclasses import PropertyTypeTable, Cardinality

    table = PropertyTypeTable.from_tables(
        {"id": int, "name": str, "email": str},
        {"email": Cardinality.LIST},
    )
    table["email"].cardinality   # Cardinality.LIST
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Optional, Union

from graph_importer.utils.exceptions import MalformedRowError


# ============================================================================
# ENUMS
# ============================================================================

class PropertyKind(Enum):
    """Declared data type of a property."""
    INTEGER = "integer"
    STRING = "string"
    BOOLEAN = "boolean"
    FLOAT = "float"

    @classmethod
    def parse(cls, value) -> "PropertyKind":
        """
        Resolve a kind from an enum member, a name or a Python type.

        Accepts Python types (int, str, bool, float) as well as names
        like 'long' or 'string'.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, type):
            try:
                return _KIND_BY_TYPE[value]
            except KeyError:
                raise ValueError(f"Unsupported property type: {value.__name__}") from None
        if isinstance(value, str):
            try:
                return _KIND_BY_NAME[value.strip().lower()]
            except KeyError:
                raise ValueError(f"Unsupported property type: {value!r}") from None
        raise ValueError(f"Unsupported property type: {value!r}")

    def matches(self, value: Any) -> bool:
        """Check that a Python value's runtime kind is this kind."""
        if self is PropertyKind.BOOLEAN:
            return isinstance(value, bool)
        if self is PropertyKind.INTEGER:
            return isinstance(value, int) and not isinstance(value, bool)
        if self is PropertyKind.FLOAT:
            return isinstance(value, float)
        return isinstance(value, str)


_KIND_BY_TYPE = {
    int: PropertyKind.INTEGER,
    str: PropertyKind.STRING,
    bool: PropertyKind.BOOLEAN,
    float: PropertyKind.FLOAT,
}

_KIND_BY_NAME = {
    "integer": PropertyKind.INTEGER,
    "int": PropertyKind.INTEGER,
    "long": PropertyKind.INTEGER,
    "string": PropertyKind.STRING,
    "str": PropertyKind.STRING,
    "boolean": PropertyKind.BOOLEAN,
    "bool": PropertyKind.BOOLEAN,
    "float": PropertyKind.FLOAT,
    "double": PropertyKind.FLOAT,
}


class Cardinality(Enum):
    """Single value vs ordered multi-value list."""
    SINGLE = "single"
    LIST = "list"

    @classmethod
    def parse(cls, value) -> "Cardinality":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                raise ValueError(f"Unsupported cardinality: {value!r}") from None
        raise ValueError(f"Unsupported cardinality: {value!r}")


class BatchState(Enum):
    """Lifecycle of a batch inside the bulk loader."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    COMMITTED = "committed"
    FAILED = "failed"
    ABORTED = "aborted"


# ============================================================================
# PROPERTY TYPES
# ============================================================================

@dataclass(frozen=True)
class PropertySpec:
    """Declared kind and cardinality of one property."""
    kind: PropertyKind
    cardinality: Cardinality = Cardinality.SINGLE

    @property
    def is_list(self) -> bool:
        return self.cardinality is Cardinality.LIST


class PropertyTypeTable(Mapping):
    """
    Immutable mapping from property name to PropertySpec.

    Constructed once per job and shared read-only by every worker.
    """

    __slots__ = ("_specs",)

    def __init__(self, specs: Optional[Mapping] = None):
        frozen = {}
        for name, spec in (specs or {}).items():
            if not isinstance(spec, PropertySpec):
                raise TypeError(f"Expected PropertySpec for '{name}', got {type(spec).__name__}")
            frozen[name] = spec
        object.__setattr__(self, "_specs", MappingProxyType(frozen))

    def __setattr__(self, name, value):
        raise AttributeError("PropertyTypeTable is immutable")

    @classmethod
    def from_tables(
        cls,
        types: Mapping,
        cardinalities: Optional[Mapping] = None
    ) -> "PropertyTypeTable":
        """
        Build a table from separate type and cardinality tables.

        Args:
            types: property name -> kind (PropertyKind, name or Python type)
            cardinalities: property name -> Cardinality (or 'single'/'list').
                Properties without an entry are single-valued.

        Raises:
            ValueError: unknown kind/cardinality, or a cardinality declared
                for a property with no declared type
        """
        cardinalities = cardinalities or {}
        untyped = set(cardinalities) - set(types)
        if untyped:
            raise ValueError(f"Cardinality declared for untyped properties: {sorted(untyped)}")

        specs = {
            name: PropertySpec(
                kind=PropertyKind.parse(kind),
                cardinality=Cardinality.parse(cardinalities.get(name, Cardinality.SINGLE)),
            )
            for name, kind in types.items()
        }
        return cls(specs)

    def __getitem__(self, name: str) -> PropertySpec:
        return self._specs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __repr__(self) -> str:
        inner = ", ".join(
            f"{name}={spec.kind.value}/{spec.cardinality.value}"
            for name, spec in self._specs.items()
        )
        return f"PropertyTypeTable({inner})"


# ============================================================================
# RECORDS
# ============================================================================

ScalarValue = Union[int, str, bool, float]
TypedValue = Union[ScalarValue, List[ScalarValue]]
TypedRecord = Dict[str, TypedValue]

# Opaque store handle (Neo4j element id)
VertexRef = str


@dataclass
class RawRecord:
    """One CSV data row: column name -> raw string."""
    row_number: int
    values: Dict[str, str]


@dataclass
class EdgeSpec:
    """Typed edge properties plus business keys of both endpoints."""
    label: str
    source_key: ScalarValue
    target_key: ScalarValue
    properties: TypedRecord = field(default_factory=dict)
    row_number: Optional[int] = None


@dataclass(frozen=True)
class EdgeEndpoints:
    """Vertex labels and key property used to resolve one edge label's endpoints."""
    source_label: Optional[str] = None
    target_label: Optional[str] = None
    key_property: Optional[str] = None


# ============================================================================
# BATCHES AND JOBS
# ============================================================================

@dataclass
class Batch:
    """
    Bounded group of records committed together in one transaction.

    Owned by exactly one worker at a time; discarded after commit or abort.
    """
    index: int
    records: List[Any]
    attempts: int = 0
    state: BatchState = BatchState.PENDING
    last_error: Optional[BaseException] = None

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class LoadJob:
    """One input file plus its load configuration."""
    source: Any
    property_table: PropertyTypeTable
    has_header: bool = True
    batch_size: int = 20000
    num_threads: int = 10
    max_retries: int = 1
    fieldnames: Optional[List[str]] = None
    vertex_label: Optional[str] = None
    edge_label: Optional[str] = None
    edge_endpoints: Mapping = field(default_factory=dict)
    create_missing_endpoints: bool = False

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be >= 1, got {self.num_threads}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")


# ============================================================================
# REPORTS
# ============================================================================

@dataclass
class AbortedBatch:
    """Batch that exhausted its retries."""
    batch_index: int
    last_error: BaseException
    attempts: int = 0


@dataclass
class LoadReport:
    """Outcome of one load job."""
    records_committed: int = 0
    batches_committed: int = 0
    batches_aborted: List[AbortedBatch] = field(default_factory=list)
    batches_not_attempted: List[int] = field(default_factory=list)
    malformed_rows: List[MalformedRowError] = field(default_factory=list)
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        """True when nothing was aborted, skipped or left unprocessed."""
        return not (self.batches_aborted or self.batches_not_attempted
                    or self.malformed_rows or self.cancelled)

    def as_dict(self) -> Dict[str, Any]:
        """JSON-serializable summary."""
        return {
            'records_committed': self.records_committed,
            'batches_committed': self.batches_committed,
            'batches_aborted': [
                {
                    'batch_index': aborted.batch_index,
                    'attempts': aborted.attempts,
                    'last_error': f"{type(aborted.last_error).__name__}: {aborted.last_error}",
                }
                for aborted in self.batches_aborted
            ],
            'batches_not_attempted': list(self.batches_not_attempted),
            'malformed_rows': [err.row_number for err in self.malformed_rows],
            'cancelled': self.cancelled,
            'elapsed_seconds': round(self.elapsed_seconds, 3),
        }
