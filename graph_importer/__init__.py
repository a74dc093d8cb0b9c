# -*- coding: utf-8 -*-
"""
CSV-to-graph bulk import package.

Top-level package containing all loader components: CSV row decoding, type
coercion and record building, batch accumulation, vertex resolution, the
concurrent bulk loader and the Neo4j store adapter.
"""

__version__ = "0.1.0"
