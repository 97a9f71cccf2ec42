"""
HTTP API
========

FastAPI application, routes, dependencies and Prometheus metrics.
"""
