"""
Data Cleaner Service
====================

LLM-assisted cleaning of tabular profile data.

Features:
- Chunked LLM extraction of profile records from pasted text
- Natural-key deduplication on import
- Batch relevance classification with per-row verification state
- Faceted grid filtering with multi-column "unique only" mode
- Rate-sheet OCR price matching (price updater variant)
"""

__version__ = "1.0.0"
