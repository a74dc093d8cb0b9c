# -*- coding: utf-8 -*-
"""
Concurrent CSV-to-graph bulk loader.

Reads one CSV file, partitions its rows into fixed-size batches and applies
each batch in its own store transaction on a fixed pool of worker threads.
The calling thread is the single producer: it decodes rows and feeds a bounded
work queue, so memory stays proportional to batch_size x (queue_depth +
num_threads) whatever the file size.

Batch lifecycle:
    PENDING -> IN_FLIGHT -> COMMITTED
    PENDING -> IN_FLIGHT -> FAILED -> PENDING          (retry)
    PENDING -> IN_FLIGHT -> FAILED -> ABORTED          (retries exhausted)

A batch may fail max_retries times and still commit; its (max_retries + 1)-th
failure aborts it. Retried batches go to a separate retry queue that workers
drain before taking new work, so a worker never blocks on a full work queue.
Within a batch records are applied in file order; across batches and workers
no order is guaranteed, which is why vertex files must be loaded to completion
before edge files.

Individual batch failures never raise. They are collected in the LoadReport
together with malformed rows. Undecodable bytes mid-file end the input: the
job is cancelled and the report marks it so. Only setup failures (unopenable
file, schema mismatch, lost connection) abort a job and propagate to the
caller, after all workers have stopped and rolled back. While a progress bar
is shown, console log lines are written through tqdm so the bar stays intact.

Examples:
    from graph_importer.graph.bulk_loader import BulkLoader
    from graph_importer.graph.neo4j_store import Neo4jGraphStore

    loader = BulkLoader(Neo4jGraphStore(driver), show_progress=True)
    report = loader.load_vertices(
        "data/vertices/person.csv", True, 20000, 10, 1,
        {"id": int, "name": str, "email": str},
        {"email": "list"},
    )
    report = loader.load_edges(
        "data/edges/knows.csv", {"knows": EdgeEndpoints("Person", "Person")},
        True, True, 20000, 10, 1, {"id": int, "date": str},
    )
"""
# Standard library
import itertools
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from functools import partial
from typing import Callable, Mapping, Optional, Set

# Third-party
from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

# Local
from graph_importer.graph.schema import SchemaValidator
from graph_importer.graph.store import GraphStore, GraphTransaction
from graph_importer.graph.vertex_resolver import VertexResolver
from graph_importer.ingestion.csv_reader import CsvRowDecoder, open_source
from graph_importer.processing.batch_accumulator import accumulate
from graph_importer.processing.record_builder import (
    build_edge_spec,
    build_record,
    coerce_key,
    edge_label,
)
from graph_importer.utils.config import (
    DEFAULT_EDGE_LABEL,
    DEFAULT_VERTEX_LABEL,
    LABEL_COLUMN,
    LOADER_CONFIG,
    SOURCE_COLUMN,
    TARGET_COLUMN,
)
from graph_importer.utils.dataclasses import (
    AbortedBatch,
    Batch,
    BatchState,
    EdgeEndpoints,
    LoadJob,
    LoadReport,
    PropertyTypeTable,
    RawRecord,
    ScalarValue,
    VertexRef,
)
from graph_importer.utils.exceptions import (
    EndpointNotFoundError,
    MalformedRowError,
    RecordError,
    SchemaMismatchError,
    StoreConnectionError,
    UnreadableRowError,
)
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)

# Seconds a blocked queue operation waits before re-checking cancellation
POLL_INTERVAL = 0.05

FATAL_ERRORS = (SchemaMismatchError, StoreConnectionError)

ApplyRecord = Callable[[GraphTransaction, RawRecord], None]


def as_endpoints(value) -> EdgeEndpoints:
    """Accept EdgeEndpoints, a (source_label, target_label) pair or a dict."""
    if isinstance(value, EdgeEndpoints):
        return value
    if isinstance(value, Mapping):
        return EdgeEndpoints(**value)
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return EdgeEndpoints(source_label=value[0], target_label=value[1])
    raise ValueError(f"Invalid edge endpoint entry: {value!r}")


class _LoadRun:
    """Queues, counters and report of one running job."""

    def __init__(self, job: LoadJob, store: GraphStore, apply_record: ApplyRecord,
                 queue_depth: int, retry_backoff: float, max_retry_backoff: float,
                 pbar: tqdm):
        self.job = job
        self.store = store
        self.apply_record = apply_record
        self.retry_backoff = retry_backoff
        self.max_retry_backoff = max_retry_backoff
        self.pbar = pbar

        self.work_queue: queue.Queue = queue.Queue(maxsize=queue_depth)
        self.retry_queue: queue.Queue = queue.Queue()
        self.cancelled = threading.Event()
        self.producer_done = threading.Event()

        self.lock = threading.Lock()
        self.outstanding = 0
        self.report = LoadReport()
        self.fatal: Optional[BaseException] = None

    # ---------- producer side ----------

    def record_malformed(self, error: MalformedRowError):
        with self.lock:
            self.report.malformed_rows.append(error)
        if isinstance(error, UnreadableRowError) and not error.recoverable:
            logger.error(f"Input unreadable, stopping job: {error}")
            self.cancel()
        else:
            logger.warning(f"Skipping malformed row: {error}")

    def produce(self, batches):
        for batch in batches:
            with self.lock:
                self.outstanding += 1
            while True:
                if self.cancelled.is_set():
                    self._not_attempted(batch)
                    return
                try:
                    self.work_queue.put(batch, timeout=POLL_INTERVAL)
                    break
                except queue.Full:
                    continue

    # ---------- worker side ----------

    def worker_loop(self):
        try:
            while True:
                batch = self._next_batch()
                if batch is None:
                    return
                self._process(batch)
        except BaseException as e:
            logger.exception("Worker crashed")
            self._set_fatal(e)
            raise

    def _next_batch(self) -> Optional[Batch]:
        while not self.cancelled.is_set():
            try:
                return self.retry_queue.get_nowait()
            except queue.Empty:
                pass
            try:
                return self.work_queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                with self.lock:
                    finished = self.outstanding == 0
                if finished and self.producer_done.is_set():
                    return None
        return None

    def _process(self, batch: Batch):
        batch.state = BatchState.IN_FLIGHT
        tx = None
        try:
            tx = self.store.begin()
            for record in batch.records:
                self.apply_record(tx, record)
            tx.commit()
        except FATAL_ERRORS as e:
            self._rollback(tx)
            batch.attempts += 1
            batch.last_error = e
            self._abort(batch)
            self._set_fatal(e)
            return
        except Exception as e:
            self._rollback(tx)
            self._fail(batch, e)
            return
        self._commit(batch)

    def _rollback(self, tx: Optional[GraphTransaction]):
        if tx is None:
            return
        try:
            tx.rollback()
        except Exception as e:
            logger.warning(f"Rollback failed: {e}")

    def _fail(self, batch: Batch, error: Exception):
        batch.attempts += 1
        batch.last_error = error
        batch.state = BatchState.FAILED
        max_retries = self.job.max_retries

        if batch.attempts > max_retries or self.cancelled.is_set():
            self._abort(batch)
            return

        logger.warning(
            f"Batch {batch.index} failed (attempt {batch.attempts}/{max_retries + 1}): "
            f"{type(error).__name__}: {error}"
        )
        if self.retry_backoff > 0:
            delay = min(self.retry_backoff * 2 ** (batch.attempts - 1), self.max_retry_backoff)
            if self.cancelled.wait(delay):
                self._abort(batch)
                return
        batch.state = BatchState.PENDING
        self.retry_queue.put(batch)

    def _commit(self, batch: Batch):
        batch.state = BatchState.COMMITTED
        with self.lock:
            self.report.records_committed += len(batch)
            self.report.batches_committed += 1
            self.outstanding -= 1
            self.pbar.update(len(batch))
        logger.debug(f"Batch {batch.index} committed ({len(batch)} records)")

    def _abort(self, batch: Batch):
        batch.state = BatchState.ABORTED
        logger.error(
            f"Batch {batch.index} aborted after {batch.attempts} attempt(s): "
            f"{type(batch.last_error).__name__}: {batch.last_error}"
        )
        with self.lock:
            self.report.batches_aborted.append(
                AbortedBatch(batch.index, batch.last_error, batch.attempts)
            )
            self.outstanding -= 1

    def _not_attempted(self, batch: Batch):
        with self.lock:
            self.report.batches_not_attempted.append(batch.index)
            self.outstanding -= 1

    # ---------- job control ----------

    def cancel(self):
        self.cancelled.set()

    def _set_fatal(self, error: BaseException):
        with self.lock:
            if self.fatal is None:
                self.fatal = error
        self.cancelled.set()

    def drain(self):
        """Account for batches left in the queues after cancellation."""
        while True:
            try:
                self._not_attempted(self.work_queue.get_nowait())
            except queue.Empty:
                break
        while True:
            try:
                self._abort(self.retry_queue.get_nowait())
            except queue.Empty:
                break


class BulkLoader:
    """
    Concurrent, retrying CSV bulk loader over a GraphStore.

    One loader may run several jobs in sequence (vertex files first, then
    edge files). The store connection is owned by the caller.
    """

    def __init__(
        self,
        store: GraphStore,
        resolver: Optional[VertexResolver] = None,
        queue_depth: int = LOADER_CONFIG['queue_depth'],
        retry_backoff: float = LOADER_CONFIG['retry_backoff'],
        max_retry_backoff: float = LOADER_CONFIG['max_retry_backoff'],
        list_delimiter: str = LOADER_CONFIG['list_delimiter'],
        default_vertex_label: str = DEFAULT_VERTEX_LABEL,
        default_edge_label: str = DEFAULT_EDGE_LABEL,
        preflight: bool = True,
        show_progress: bool = False
    ):
        """
        Args:
            store: Open graph store
            resolver: Vertex resolver (default: key property 'id')
            queue_depth: Work queue capacity in batches
            retry_backoff: Base delay before a retry, doubled per attempt (0 = none)
            max_retry_backoff: Upper bound for the retry delay
            list_delimiter: Separator of list-cardinality values
            default_vertex_label: Label for rows without a label column
            default_edge_label: Label for edge rows without a label column
            preflight: Check one sample record against the store schema first
            show_progress: Display a tqdm progress bar
        """
        if queue_depth < 1:
            raise ValueError(f"queue_depth must be >= 1, got {queue_depth}")
        self.store = store
        self.resolver = resolver or VertexResolver()
        self.queue_depth = queue_depth
        self.retry_backoff = retry_backoff
        self.max_retry_backoff = max_retry_backoff
        self.list_delimiter = list_delimiter
        self.default_vertex_label = default_vertex_label
        self.default_edge_label = default_edge_label
        self.preflight = preflight
        self.show_progress = show_progress
        self.validator = SchemaValidator(store, self.resolver.key_property)

        self._active_runs: Set[_LoadRun] = set()
        self._runs_lock = threading.Lock()

    @property
    def key_property(self) -> str:
        return self.resolver.key_property

    def cancel(self):
        """
        Cooperatively cancel running jobs.

        Workers finish their in-flight batch, then stop; queued batches are
        reported as not attempted.
        """
        with self._runs_lock:
            runs = list(self._active_runs)
        if runs:
            logger.warning("Cancelling load job")
        for run in runs:
            run.cancel()

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def load_vertices(
        self,
        file,
        has_header: bool = True,
        batch_size: int = LOADER_CONFIG['batch_size'],
        num_threads: int = LOADER_CONFIG['num_threads'],
        max_retries: int = LOADER_CONFIG['max_retries'],
        property_types: Optional[Mapping] = None,
        property_cardinalities: Optional[Mapping] = None,
        vertex_label: Optional[str] = None,
        fieldnames: Optional[list] = None
    ) -> LoadReport:
        """
        Load one vertex CSV file.

        Each row becomes (or upserts) one vertex keyed by the key property.
        The label comes from the row's label column, else vertex_label,
        else the default vertex label.

        Args:
            file: Path or open text handle
            has_header: First row holds column names
            batch_size: Records per transaction
            num_threads: Worker threads
            max_retries: Retries per batch before it is aborted
            property_types: Name -> kind, or a ready PropertyTypeTable
            property_cardinalities: Name -> cardinality (default single)
            vertex_label: Label for rows without a label column
            fieldnames: Column names for header-less files (default: the
                property table's names in declaration order)

        Returns:
            LoadReport

        Raises:
            OSError: input cannot be opened
            SchemaMismatchError: store schema disagrees with the tables
            StoreConnectionError: store unreachable
        """
        table = self._table(property_types, property_cardinalities)
        if not has_header and fieldnames is None:
            fieldnames = list(table)
        job = LoadJob(
            source=file,
            property_table=table,
            has_header=has_header,
            batch_size=batch_size,
            num_threads=num_threads,
            max_retries=max_retries,
            fieldnames=fieldnames,
            vertex_label=vertex_label,
        )
        return self._run(job, self._apply_vertex, self._check_vertex_schema, "Vertices")

    def load_edges(
        self,
        file,
        edge_endpoint_key_map: Optional[Mapping] = None,
        has_header: bool = True,
        create_missing_endpoints: bool = False,
        batch_size: int = LOADER_CONFIG['batch_size'],
        num_threads: int = LOADER_CONFIG['num_threads'],
        max_retries: int = LOADER_CONFIG['max_retries'],
        property_types: Optional[Mapping] = None,
        fieldnames: Optional[list] = None,
        label: Optional[str] = None
    ) -> LoadReport:
        """
        Load one edge CSV file.

        Rows carry the source key ('from'), target key ('to'), an optional
        edge label ('label') and edge properties. Both endpoints are resolved
        by business key; at most one edge of a label joins the same ordered
        pair, so reloading updates instead of duplicating.

        Args:
            file: Path or open text handle
            edge_endpoint_key_map: Edge label -> EdgeEndpoints (or a
                (source_label, target_label) pair / dict). Unlisted labels
                resolve endpoints by key across all labels.
            has_header: First row holds column names
            create_missing_endpoints: Create endpoint vertices (key only)
                when not found; otherwise the batch fails with
                EndpointNotFoundError
            batch_size: Records per transaction
            num_threads: Worker threads
            max_retries: Retries per batch before it is aborted
            property_types: Name -> kind of edge properties and the key
            fieldnames: Column names for header-less files (default: from,
                to, then the property table's names other than the key)
            label: Edge label for rows without a label column (default:
                the loader's default edge label)

        Returns:
            LoadReport
        """
        table = self._table(property_types, None)
        if not has_header and fieldnames is None:
            fieldnames = [SOURCE_COLUMN, TARGET_COLUMN] + [
                name for name in table
                if name not in (SOURCE_COLUMN, TARGET_COLUMN, LABEL_COLUMN, self.key_property)
            ]
        endpoints = {
            label: as_endpoints(value)
            for label, value in (edge_endpoint_key_map or {}).items()
        }
        job = LoadJob(
            source=file,
            property_table=table,
            has_header=has_header,
            batch_size=batch_size,
            num_threads=num_threads,
            max_retries=max_retries,
            fieldnames=fieldnames,
            edge_label=label,
            edge_endpoints=endpoints,
            create_missing_endpoints=create_missing_endpoints,
        )
        return self._run(job, self._apply_edge, self._check_edge_schema, "Edges")

    # =========================================================================
    # JOB EXECUTION
    # =========================================================================

    @staticmethod
    def _table(property_types, property_cardinalities) -> PropertyTypeTable:
        if isinstance(property_types, PropertyTypeTable):
            if property_cardinalities:
                raise ValueError("Cardinalities must be part of a ready PropertyTypeTable")
            return property_types
        return PropertyTypeTable.from_tables(property_types or {}, property_cardinalities)

    def _run(self, job: LoadJob, apply, check_schema, desc: str) -> LoadReport:
        start_time = time.time()
        logger.info(
            f"{desc}: loading {job.source} (batch size {job.batch_size}, "
            f"{job.num_threads} threads, {job.max_retries} retries)"
        )

        progress_logging = logging_redirect_tqdm() if self.show_progress else nullcontext()
        with open_source(job.source) as handle, progress_logging, \
                tqdm(desc=desc, unit="rows", disable=not self.show_progress) as pbar:
            run = _LoadRun(
                job, self.store, partial(apply, job=job), self.queue_depth,
                self.retry_backoff, self.max_retry_backoff, pbar,
            )
            decoder = CsvRowDecoder(
                handle,
                has_header=job.has_header,
                fieldnames=job.fieldnames,
                on_malformed=run.record_malformed,
            )
            records = iter(decoder)
            first = next(records, None)
            if first is None:
                logger.warning(f"{desc}: no data rows in {job.source}")
            else:
                if self.preflight:
                    check_schema(job, first)
                records = itertools.chain([first], records)

            with self._runs_lock:
                self._active_runs.add(run)
            try:
                self._execute(run, records)
            finally:
                with self._runs_lock:
                    self._active_runs.discard(run)

        if run.fatal is not None:
            logger.error(f"{desc}: job aborted: {run.fatal}")
            raise run.fatal

        report = run.report
        report.cancelled = run.cancelled.is_set()
        report.batches_aborted.sort(key=lambda aborted: aborted.batch_index)
        report.batches_not_attempted.sort()
        report.elapsed_seconds = time.time() - start_time

        logger.info(
            f"{desc}: committed {report.records_committed} records in "
            f"{report.batches_committed} batches, {len(report.batches_aborted)} aborted, "
            f"{len(report.batches_not_attempted)} not attempted, "
            f"{len(report.malformed_rows)} malformed rows ({report.elapsed_seconds:.1f}s)"
        )
        return report

    def _execute(self, run: _LoadRun, records):
        job = run.job
        with ThreadPoolExecutor(max_workers=job.num_threads,
                                thread_name_prefix="graph-loader") as executor:
            futures = [executor.submit(run.worker_loop) for _ in range(job.num_threads)]
            try:
                run.produce(accumulate(records, job.batch_size))
            except BaseException:
                run.cancel()
                raise
            finally:
                run.producer_done.set()
                for future in futures:
                    future.exception()

        run.drain()

    # =========================================================================
    # PRE-FLIGHT
    # =========================================================================

    def _check_vertex_schema(self, job: LoadJob, sample: RawRecord):
        label = self._vertex_label(sample, job)
        try:
            typed = build_record(sample, job.property_table, self.list_delimiter)
        except RecordError as e:
            logger.warning(f"Pre-flight sample not usable ({e}); checking declared types only")
            typed = None
        self.validator.check(job.property_table, label, typed)

    def _check_edge_schema(self, job: LoadJob, sample: RawRecord):
        label = edge_label(sample, self._default_edge_label(job))
        try:
            typed = build_edge_spec(
                sample, job.property_table, self._edge_key_property(job, label),
                self._default_edge_label(job), self.list_delimiter,
            ).properties
        except RecordError as e:
            logger.warning(f"Pre-flight sample not usable ({e}); checking declared types only")
            typed = None
        self.validator.check(job.property_table, label, typed, check_key=False)

    # =========================================================================
    # RECORD APPLICATION (worker threads)
    # =========================================================================

    def _vertex_label(self, raw: RawRecord, job: LoadJob) -> str:
        return ((raw.values.get(LABEL_COLUMN) or "").strip()
                or job.vertex_label or self.default_vertex_label)

    def _apply_vertex(self, tx: GraphTransaction, raw: RawRecord, job: LoadJob):
        properties = build_record(raw, job.property_table, self.list_delimiter)
        key = coerce_key(raw.values.get(self.key_property), job.property_table,
                         self.key_property, raw.row_number)
        self.resolver.resolve_or_create(tx, key, self._vertex_label(raw, job), properties)

    def _default_edge_label(self, job: LoadJob) -> str:
        return job.edge_label or self.default_edge_label

    def _edge_key_property(self, job: LoadJob, label: str) -> str:
        endpoints = job.edge_endpoints.get(label)
        return (endpoints and endpoints.key_property) or self.key_property

    def _apply_edge(self, tx: GraphTransaction, raw: RawRecord, job: LoadJob):
        label = edge_label(raw, self._default_edge_label(job))
        endpoints = job.edge_endpoints.get(label) or EdgeEndpoints()
        key_property = endpoints.key_property or self.key_property
        edge = build_edge_spec(raw, job.property_table, key_property,
                               self._default_edge_label(job), self.list_delimiter)

        source = self._endpoint(tx, edge.source_key, endpoints.source_label, key_property, job, raw)
        target = self._endpoint(tx, edge.target_key, endpoints.target_label, key_property, job, raw)

        existing = tx.find_edge(edge.label, source, target)
        if existing is not None:
            tx.update_edge(existing, edge.properties)
        else:
            tx.create_edge(edge.label, source, target, edge.properties)

    def _endpoint(self, tx: GraphTransaction, key: ScalarValue, label: Optional[str],
                  key_property: str, job: LoadJob, raw: RawRecord) -> VertexRef:
        ref = self.resolver.resolve(tx, key, label, key_property)
        if ref is not None:
            return ref
        if not job.create_missing_endpoints:
            raise EndpointNotFoundError(
                f"no {label or 'vertex'} with {key_property}={key!r}", raw.row_number
            )
        return self.resolver.resolve_or_create(
            tx, key, label or self.default_vertex_label, None, key_property
        )
