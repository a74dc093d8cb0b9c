# graph_importer/utils/config.py

import os
from dotenv import load_dotenv

load_dotenv()

# Neo4j connection
NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
NEO4J_USER = os.getenv("NEO4J_USER", "neo4j")
NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD")
NEO4J_DATABASE = os.getenv("NEO4J_DATABASE")  # None = server default database

# Loader defaults (overridable per job)
LOADER_CONFIG = {
    'batch_size': int(os.getenv("LOADER_BATCH_SIZE", "20000")),
    'num_threads': int(os.getenv("LOADER_NUM_THREADS", "10")),
    'max_retries': int(os.getenv("LOADER_MAX_RETRIES", "1")),

    # Work queue depth in batches; memory ~ batch_size x (queue_depth + num_threads)
    'queue_depth': int(os.getenv("LOADER_QUEUE_DEPTH", "20")),

    # Seconds; retry n sleeps retry_backoff * 2**(n-1), capped at max_retry_backoff
    'retry_backoff': float(os.getenv("LOADER_RETRY_BACKOFF", "0.1")),
    'max_retry_backoff': float(os.getenv("LOADER_MAX_RETRY_BACKOFF", "5.0")),

    'list_delimiter': os.getenv("LOADER_LIST_DELIMITER", ";"),
}

# Graph conventions
KEY_PROPERTY = "id"
DEFAULT_VERTEX_LABEL = "vertex"
DEFAULT_EDGE_LABEL = "edge"

# Reserved CSV columns (never stored as properties unless declared)
LABEL_COLUMN = "label"
SOURCE_COLUMN = "from"
TARGET_COLUMN = "to"

# Debug
DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"
