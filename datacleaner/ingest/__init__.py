"""
Ingestion
=========

Text chunking for extraction and CSV/XLSX table import/export.
"""
