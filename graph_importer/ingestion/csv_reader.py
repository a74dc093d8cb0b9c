# -*- coding: utf-8 -*-
"""
CSV row decoder producing raw records.

Turns a delimited text file into a lazy, finite, non-restartable stream of
RawRecord objects keyed by the header's column names. Quoted fields may contain
the delimiter, quotes (doubled) and newlines. Rows whose field count differs
from the header are not yielded: a MalformedRowError is handed to the caller's
on_malformed callback, which skips the row by returning or halts the file by
raising. Without a callback the row is logged and skipped. Rows the csv module
rejects are reported the same way as an UnreadableRowError; undecodable bytes
are reported once as an unrecoverable UnreadableRowError and end the stream.

Examples:
    from graph_importer.ingestion.csv_reader import iter_raw_records

    malformed = []
    for record in iter_raw_records("data/person.csv", on_malformed=malformed.append):
        print(record.row_number, record.values["name"])
"""
# Standard library
import csv
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, TextIO, Union

# Local
from graph_importer.utils.dataclasses import RawRecord
from graph_importer.utils.exceptions import MalformedRowError, UnreadableRowError
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)

MalformedHandler = Callable[[MalformedRowError], None]
Source = Union[str, Path, TextIO]

_BOM = "\ufeff"


@contextmanager
def open_source(source: Source, encoding: str = "utf-8-sig") -> Iterator[TextIO]:
    """
    Yield a readable text handle for a path or an already-open handle.

    Paths are opened (and closed on exit) with newline='' as the csv module
    requires; handles are passed through and left open for their owner.
    """
    if isinstance(source, (str, Path)):
        with open(source, "r", encoding=encoding, newline="") as f:
            yield f
    else:
        yield source


class CsvRowDecoder:
    """
    Lazy CSV decoder: one RawRecord per data row.

    Row numbers count data rows from 1 (the header is not counted, blank
    lines are skipped and not counted).
    """

    def __init__(
        self,
        handle: TextIO,
        has_header: bool = True,
        fieldnames: Optional[List[str]] = None,
        delimiter: str = ",",
        quotechar: str = '"',
        on_malformed: Optional[MalformedHandler] = None
    ):
        """
        Args:
            handle: Open text handle
            has_header: First non-blank row holds the column names
            fieldnames: Column names; required when has_header is False,
                overrides the header row names otherwise
            delimiter: Field delimiter
            quotechar: Quote character (doubled inside quoted fields)
            on_malformed: Called with each MalformedRowError
        """
        if not has_header and not fieldnames:
            raise ValueError("fieldnames are required when the file has no header row")

        self.handle = handle
        self.has_header = has_header
        self.fieldnames = list(fieldnames) if fieldnames else None
        self.delimiter = delimiter
        self.quotechar = quotechar
        self.on_malformed = on_malformed
        self.columns: Optional[List[str]] = self.fieldnames
        self._consumed = False

    def __iter__(self) -> Iterator[RawRecord]:
        if self._consumed:
            raise RuntimeError("CsvRowDecoder can only be iterated once")
        self._consumed = True
        return self._records()

    def _records(self) -> Iterator[RawRecord]:
        reader = csv.reader(
            self.handle,
            delimiter=self.delimiter,
            quotechar=self.quotechar,
            doublequote=True,
        )

        if self.has_header:
            header = next((row for row in reader if row), None)
            if header is None:
                logger.warning("Empty CSV input (no header row)")
                return
            if self.fieldnames is None:
                header[0] = header[0].lstrip(_BOM)
                self.columns = [name.strip() for name in header]

        columns = self.columns
        row_number = 0
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                row_number += 1
                self._report(UnreadableRowError(row_number, f"csv error: {e}"))
                continue
            except UnicodeDecodeError as e:
                # The text layer decodes whole chunks, so rows before the bad
                # byte in the same chunk are lost as well
                self._report(UnreadableRowError(
                    row_number + 1,
                    f"cannot decode input after row {row_number} ({e.encoding}: {e.reason})",
                    recoverable=False,
                ))
                return

            if not row:
                continue
            row_number += 1

            if len(row) != len(columns):
                self._report(MalformedRowError(row_number, len(columns), len(row)))
                continue

            yield RawRecord(row_number=row_number, values=dict(zip(columns, row)))

    def _report(self, error: MalformedRowError):
        if self.on_malformed is not None:
            self.on_malformed(error)
        elif getattr(error, "recoverable", True):
            logger.warning(f"Skipping malformed row: {error}")
        else:
            logger.error(f"Input ends at unreadable row: {error}")


def iter_raw_records(
    source: Source,
    has_header: bool = True,
    fieldnames: Optional[List[str]] = None,
    on_malformed: Optional[MalformedHandler] = None,
    delimiter: str = ","
) -> Iterator[RawRecord]:
    """
    Decode a CSV path or handle into RawRecords.

    Paths are opened lazily on first iteration and closed when the
    generator is exhausted or closed.
    """
    with open_source(source) as handle:
        decoder = CsvRowDecoder(
            handle,
            has_header=has_header,
            fieldnames=fieldnames,
            delimiter=delimiter,
            on_malformed=on_malformed,
        )
        yield from decoder
