# -*- coding: utf-8 -*-
"""
Graph package for the store contract, the Neo4j adapter and the bulk loader.

Contains store (transaction contract), neo4j_store (Neo4j driver adapter),
vertex_resolver (key-based upsert), schema (bootstrap and pre-flight check)
and bulk_loader (concurrent batched import engine).
"""
