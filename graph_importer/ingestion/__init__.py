# -*- coding: utf-8 -*-
"""
Ingestion package for reading CSV input files into raw records.
"""
