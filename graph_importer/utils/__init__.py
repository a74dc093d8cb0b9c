# -*- coding: utf-8 -*-
"""
Utilities package for common functionality across the import pipeline.

Contains logging setup, environment configuration, the exception hierarchy and
the shared dataclasses used throughout the codebase.
"""
