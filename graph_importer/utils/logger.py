# -*- coding: utf-8 -*-
"""
Logging setup for the graph import pipeline.

Loads run on a pool of worker threads, so every line carries the thread name
(graph-loader_0, graph-loader_1, ... or MainThread for the producer). The
entry point calls setup_logging() once; modules only ever call
get_logger(__name__).

Examples:
    from graph_importer.utils.logger import setup_logging
    setup_logging("DEBUG", log_file="logs/import.log")

    from graph_importer.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Loading vertices")
"""
# Standard library
import logging
import sys
from pathlib import Path
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that flood INFO during bulk loads (routing, pool events)
NOISY_LOGGERS = ("neo4j",)

_logging_configured = False


def resolve_level(level: Union[int, str]) -> int:
    """Accept a numeric level or a name such as 'debug'."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    format_string: str = DEFAULT_FORMAT,
    library_level: Union[int, str] = logging.WARNING
) -> None:
    """
    Configure root logging once per process.

    Args:
        level: Pipeline log level, numeric or by name
        log_file: Also append to this file (parent directories are created)
        format_string: Log record format
        library_level: Floor for the driver loggers in NOISY_LOGGERS
    """
    global _logging_configured

    if _logging_configured:
        return

    level = resolve_level(level)
    formatter = logging.Formatter(format_string)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='a', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    floor = max(level, resolve_level(library_level))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Module logger (name is typically __name__)."""
    return logging.getLogger(name)
