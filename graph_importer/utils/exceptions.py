# -*- coding: utf-8 -*-
"""
Exception hierarchy for the bulk import pipeline.

Errors are grouped by how far they propagate:
    - MalformedRowError, UnreadableRowError: one CSV row, reported and skipped
      by default (an undecodable input ends the file)
    - RecordError subclasses: one record, fail the containing batch
    - StoreError / TransientStoreError: one batch, retried then aborted
    - SchemaMismatchError, StoreConnectionError: fatal, abort the whole job
"""
from typing import Optional


class LoaderError(Exception):
    """Base class for all loader errors."""


class MalformedRowError(LoaderError):
    """CSV row whose field count does not match the header."""

    def __init__(self, row_number: int, expected: int, actual: int):
        self.row_number = row_number
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Row {row_number}: expected {expected} fields, got {actual}"
        )


class UnreadableRowError(MalformedRowError):
    """
    CSV row that cannot be read at all: bad csv syntax or undecodable bytes.

    Unrecoverable errors end the input; nothing after the row can be read.
    """

    def __init__(self, row_number: int, reason: str, recoverable: bool = True):
        self.row_number = row_number
        self.expected = None
        self.actual = None
        self.reason = reason
        self.recoverable = recoverable
        LoaderError.__init__(self, f"Row {row_number}: {reason}")


class RecordError(LoaderError):
    """A single record could not be applied."""

    def __init__(self, message: str, row_number: Optional[int] = None):
        self.row_number = row_number
        if row_number is not None:
            message = f"Row {row_number}: {message}"
        super().__init__(message)


class TypeCoercionError(RecordError):
    """Raw value cannot be converted to its declared kind."""

    def __init__(self, raw: str, kind, property_name: Optional[str] = None,
                 row_number: Optional[int] = None):
        self.raw = raw
        self.kind = kind
        self.property_name = property_name
        kind_name = getattr(kind, "value", kind)
        target = f"property '{property_name}'" if property_name else "value"
        super().__init__(f"cannot coerce {raw!r} to {kind_name} for {target}", row_number)


class MissingKeyError(RecordError):
    """Vertex or edge row without its business key."""


class EndpointNotFoundError(RecordError):
    """Edge endpoint key not found and creation-on-miss disabled."""


class StoreError(LoaderError):
    """Store-side failure of one batch."""


class TransientStoreError(StoreError):
    """Conflict, timeout or constraint race; safe to retry."""


class SchemaMismatchError(LoaderError):
    """Store schema disagrees with the supplied type/cardinality tables."""


class StoreConnectionError(LoaderError, ConnectionError):
    """Graph store unreachable or session lost."""
