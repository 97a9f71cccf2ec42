"""
Utilities
=========

Logging, error taxonomy, id generation, JSON recovery and file validation.
"""
