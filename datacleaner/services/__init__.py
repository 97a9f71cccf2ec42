"""
Services
========

Extraction, deduplication, relevance verification, grid filtering,
price updates and the table store.
"""
