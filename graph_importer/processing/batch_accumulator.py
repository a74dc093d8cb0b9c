# -*- coding: utf-8 -*-
"""
Partition a record stream into fixed-size batches.

Pure partitioning: no coercion, no I/O. For R records and batch size B the
output is ceil(R/B) batches, all of size B except possibly the last, never
empty. Batch indexes are 0-based and consecutive in file order.
"""
# Standard library
from typing import Iterable, Iterator, List

# Local
from graph_importer.utils.dataclasses import Batch


def accumulate(records: Iterable, batch_size: int) -> Iterator[Batch]:
    """
    Lazily group records into batches.

    Args:
        records: Any iterable of records (consumed once)
        batch_size: Records per batch, >= 1

    Yields:
        Batch objects in PENDING state
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    index = 0
    buf: List = []
    for record in records:
        buf.append(record)
        if len(buf) >= batch_size:
            yield Batch(index=index, records=buf)
            index += 1
            buf = []
    if buf:
        yield Batch(index=index, records=buf)
