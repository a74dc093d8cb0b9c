# -*- coding: utf-8 -*-
"""
Processing package: type coercion, record building and batch accumulation.

Everything here is pure and thread-agnostic; no module performs graph I/O.
"""
