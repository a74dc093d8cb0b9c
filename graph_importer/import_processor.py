# -*- coding: utf-8 -*-
"""
CSV directory import orchestrator and command line entry point.

Imports every CSV file under a vertex directory and an edge directory into
Neo4j. Vertex files are loaded to completion before any edge file starts, so
every edge endpoint that exists in the input is committed before edges look it
up. The schema (labels, property types and cardinalities, edge endpoint labels)
comes from a JSON file; without one, the Person/knows example schema is used.

Schema file format:
    {
        "vertex_labels": ["Person"],
        "edge_labels": ["knows"],
        "edge_endpoints": {"knows": {"source_label": "Person", "target_label": "Person"}},
        "properties": {
            "id": {"type": "long"},
            "email": {"type": "string", "cardinality": "list"}
        }
    }

Examples:
    # Command line (credentials default to NEO4J_* environment variables)
    # python -m graph_importer.import_processor \\
    #     --vertex-dir data/vertices \\
    #     --edge-dir data/edges \\
    #     --schema schema.json \\
    #     --clear

    # Python API
    from graph_importer.import_processor import CsvImportProcessor, load_schema_file

    processor = CsvImportProcessor(driver, load_schema_file(Path("schema.json")))
    reports = processor.run_import(vertex_files, edge_files, clear_db=True)
"""
# Standard library
import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

# Third-party
from neo4j import GraphDatabase

# Local
from graph_importer.graph.bulk_loader import BulkLoader, as_endpoints
from graph_importer.graph.neo4j_store import Neo4jGraphStore
from graph_importer.graph.schema import SchemaManager
from graph_importer.utils.config import (
    DEBUG_MODE,
    LOADER_CONFIG,
    NEO4J_DATABASE,
    NEO4J_PASSWORD,
    NEO4J_URI,
    NEO4J_USER,
)
from graph_importer.utils.dataclasses import (
    EdgeEndpoints,
    LoadReport,
    PropertyKind,
    PropertyTypeTable,
)
from graph_importer.utils.exceptions import LoaderError
from graph_importer.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


@dataclass
class ImportSchema:
    """Labels, property types and edge endpoints of one import."""
    vertex_labels: List[str]
    edge_labels: List[str]
    property_table: PropertyTypeTable
    edge_endpoints: Dict[str, EdgeEndpoints] = field(default_factory=dict)

    @property
    def edge_property_types(self) -> Dict[str, PropertyKind]:
        """Edge properties are single-valued; only the kinds carry over."""
        return {name: spec.kind for name, spec in self.property_table.items()}


DEFAULT_SCHEMA = {
    "vertex_labels": ["Person"],
    "edge_labels": ["knows"],
    "edge_endpoints": {"knows": {"source_label": "Person", "target_label": "Person"}},
    "properties": {
        "id": {"type": "long"},
        "name": {"type": "string"},
        "surname": {"type": "string"},
        "email": {"type": "string", "cardinality": "list"},
        "date": {"type": "string"},
    },
}


def parse_schema(data: Dict) -> ImportSchema:
    """Build an ImportSchema from its JSON form."""
    properties = data.get("properties", {})
    types = {name: prop["type"] for name, prop in properties.items()}
    cardinalities = {
        name: prop["cardinality"]
        for name, prop in properties.items()
        if "cardinality" in prop
    }
    return ImportSchema(
        vertex_labels=list(data.get("vertex_labels", [])),
        edge_labels=list(data.get("edge_labels", [])),
        property_table=PropertyTypeTable.from_tables(types, cardinalities),
        edge_endpoints={
            label: as_endpoints(value)
            for label, value in data.get("edge_endpoints", {}).items()
        },
    )


def load_schema_file(path: Path) -> ImportSchema:
    """Load a schema JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return parse_schema(data)


def list_all_files(directory: Path) -> List[Path]:
    """All files under a directory at any depth, in a stable order."""
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")
    return sorted(path for path in directory.rglob("*") if path.is_file())


class CsvImportProcessor:
    """
    Orchestrates a full directory import.

    Handles:
    - Optional database clearing
    - Schema bootstrap (key uniqueness constraints)
    - Vertex files, then edge files, through one BulkLoader
    """

    def __init__(
        self,
        driver,
        schema: ImportSchema,
        database: Optional[str] = None,
        batch_size: int = LOADER_CONFIG['batch_size'],
        num_threads: int = LOADER_CONFIG['num_threads'],
        max_retries: int = LOADER_CONFIG['max_retries'],
        create_missing_endpoints: bool = True,
        show_progress: bool = True
    ):
        self.driver = driver
        self.schema = schema
        self.batch_size = batch_size
        self.num_threads = num_threads
        self.max_retries = max_retries
        self.create_missing_endpoints = create_missing_endpoints

        self.schema_manager = SchemaManager(driver, database)
        self.loader = BulkLoader(Neo4jGraphStore(driver, database), show_progress=show_progress)

    def run_import(
        self,
        vertex_files: List[Path],
        edge_files: List[Path],
        clear_db: bool = False,
        define_schema: bool = True,
        enforce_types: bool = False
    ) -> Dict[str, LoadReport]:
        """
        Run the complete import.

        Args:
            vertex_files: Vertex CSV files
            edge_files: Edge CSV files (loaded after all vertex files)
            clear_db: Delete all existing nodes and relationships first
            define_schema: Create key constraints before loading
            enforce_types: Also create property type constraints

        Returns:
            File path -> LoadReport, in load order
        """
        if clear_db:
            self.schema_manager.clear_database()
        if define_schema:
            self.schema_manager.define_schema(
                self.schema.vertex_labels, self.schema.property_table, enforce_types
            )

        reports: Dict[str, LoadReport] = {}
        logger.info(f"Loading {len(vertex_files)} vertex files")
        for path in vertex_files:
            reports[str(path)] = self.loader.load_vertices(
                path, True, self.batch_size, self.num_threads, self.max_retries,
                self.schema.property_table,
                vertex_label=self._label_from_path(path, self.schema.vertex_labels),
            )

        logger.info(f"Loading {len(edge_files)} edge files")
        for path in edge_files:
            reports[str(path)] = self.loader.load_edges(
                path, self.schema.edge_endpoints, True, self.create_missing_endpoints,
                self.batch_size, self.num_threads, self.max_retries,
                self.schema.edge_property_types,
                label=self._label_from_path(path, self.schema.edge_labels),
            )

        self._log_summary(reports)
        return reports

    @staticmethod
    def _label_from_path(path: Path, labels: List[str]) -> Optional[str]:
        """
        Vertex or edge label for files without a label column.

        A file named after a declared label (person.csv -> Person, knows.csv
        -> knows) gets that label; with a single declared label every file
        gets it.
        """
        by_name = {label.lower(): label for label in labels}
        if path.stem.lower() in by_name:
            return by_name[path.stem.lower()]
        if len(labels) == 1:
            return labels[0]
        return None

    @staticmethod
    def _log_summary(reports: Dict[str, LoadReport]):
        logger.info("=" * 60)
        logger.info("IMPORT SUMMARY")
        logger.info("=" * 60)
        for path, report in reports.items():
            status = "✓" if report.succeeded else "✗"
            logger.info(f"{status} {path}: {json.dumps(report.as_dict())}")


def main():
    """Main entry point for directory import."""
    parser = argparse.ArgumentParser(
        description='Bulk import CSV vertex and edge files into Neo4j'
    )
    parser.add_argument('--vertex-dir', type=Path, required=True,
                        help='Directory of vertex CSV files (searched recursively)')
    parser.add_argument('--edge-dir', type=Path,
                        help='Directory of edge CSV files (searched recursively)')
    parser.add_argument('--schema', type=Path,
                        help='Schema JSON file (default: Person/knows example schema)')
    parser.add_argument('--uri', default=NEO4J_URI,
                        help='Neo4j URI (default: NEO4J_URI env var)')
    parser.add_argument('--user', default=NEO4J_USER,
                        help='Neo4j username (default: NEO4J_USER env var or "neo4j")')
    parser.add_argument('--password', default=NEO4J_PASSWORD,
                        help='Neo4j password (default: NEO4J_PASSWORD env var)')
    parser.add_argument('--database', default=NEO4J_DATABASE,
                        help='Neo4j database (default: NEO4J_DATABASE env var or server default)')
    parser.add_argument('--batch-size', type=int, default=LOADER_CONFIG['batch_size'])
    parser.add_argument('--threads', type=int, default=LOADER_CONFIG['num_threads'])
    parser.add_argument('--max-retries', type=int, default=LOADER_CONFIG['max_retries'])
    parser.add_argument('--no-create-endpoints', action='store_true',
                        help='Fail edge batches whose endpoints do not exist')
    parser.add_argument('--clear', action='store_true',
                        help='Delete all nodes and relationships before importing')
    parser.add_argument('--skip-schema', action='store_true',
                        help='Do not create key constraints')
    parser.add_argument('--enforce-types', action='store_true',
                        help='Create property type constraints (Neo4j 5.9+ enterprise)')
    parser.add_argument('--log-level', default='DEBUG' if DEBUG_MODE else 'INFO',
                        help='Log level name (default: INFO, DEBUG when DEBUG_MODE is set)')
    parser.add_argument('--log-file', help='Also write logs to this file')

    args = parser.parse_args()
    if not args.password:
        parser.error("--password required (or set NEO4J_PASSWORD env var)")

    try:
        setup_logging(args.log_level, log_file=args.log_file)
    except ValueError as e:
        parser.error(str(e))

    schema = load_schema_file(args.schema) if args.schema else parse_schema(DEFAULT_SCHEMA)
    vertex_files = list_all_files(args.vertex_dir)
    edge_files = list_all_files(args.edge_dir) if args.edge_dir else []

    driver = GraphDatabase.driver(args.uri, auth=(args.user, args.password))
    try:
        driver.verify_connectivity()
        logger.info(f"Connected to Neo4j at {args.uri}")
        processor = CsvImportProcessor(
            driver,
            schema,
            database=args.database,
            batch_size=args.batch_size,
            num_threads=args.threads,
            max_retries=args.max_retries,
            create_missing_endpoints=not args.no_create_endpoints,
        )
        reports = processor.run_import(
            vertex_files,
            edge_files,
            clear_db=args.clear,
            define_schema=not args.skip_schema,
            enforce_types=args.enforce_types,
        )
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        sys.exit(130)
    except LoaderError as e:
        logger.error(f"Import failed: {e}")
        sys.exit(1)
    finally:
        driver.close()
        logger.info("Neo4j connection closed")

    sys.exit(0 if all(report.succeeded for report in reports.values()) else 1)


if __name__ == '__main__':
    main()
