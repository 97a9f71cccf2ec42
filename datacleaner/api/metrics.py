"""
Prometheus Metrics for the Data Cleaner Service
================================================

Counters and histograms for LLM calls and table mutations.

Metrics are exposed via the /metrics endpoint for Prometheus scraping.

Usage:
    from datacleaner.api.metrics import record_llm_request, CHUNKS_PROCESSED

    CHUNKS_PROCESSED.labels(outcome="success").inc()
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Metric Definitions
# =============================================================================

LLM_REQUESTS_TOTAL = Counter(
    "datacleaner_llm_requests_total",
    "Total LLM requests",
    ["model", "operation", "status"],  # status: success, http_error, network_error, empty, bad_body
)

LLM_REQUEST_DURATION = Histogram(
    "datacleaner_llm_request_seconds",
    "LLM request duration in seconds",
    ["model", "operation"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf")],
)

LLM_TOKENS_PROCESSED = Counter(
    "datacleaner_llm_tokens_total",
    "Total tokens reported by the LLM provider",
    ["model", "direction"],  # direction: input, output
)

CHUNKS_PROCESSED = Counter(
    "datacleaner_extraction_chunks_total",
    "Extraction chunks processed",
    ["outcome"],  # outcome: success, failed
)

PROFILES_EXTRACTED = Counter(
    "datacleaner_profiles_extracted_total",
    "Profiles returned by extraction (before deduplication)",
)

DUPLICATES_REJECTED = Counter(
    "datacleaner_duplicates_rejected_total",
    "Incoming records rejected because their natural key already exists",
    ["source"],  # source: extraction, import
)

ROWS_REMOVED = Counter(
    "datacleaner_rows_removed_total",
    "Rows removed from the table",
    ["reason"],  # reason: relevance, filter, manual
)

ROWS_VERIFIED = Counter(
    "datacleaner_rows_verified_total",
    "Rows marked verified by a relevance pass",
)

PRICE_UPDATES_APPLIED = Counter(
    "datacleaner_price_updates_applied_total",
    "Rows updated by the price updater",
)

TABLE_ROWS = Gauge(
    "datacleaner_table_rows",
    "Rows currently resident in the table",
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_llm_request(
    model: str,
    operation: str,
    status: str,
    duration_seconds: float,
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> None:
    """
    Record LLM request metrics.

    Args:
        model: Model identifier
        operation: extract, filter, vision
        status: Request status
        duration_seconds: Request duration
        input_tokens: Prompt tokens reported by the provider
        output_tokens: Completion tokens reported by the provider
    """
    LLM_REQUESTS_TOTAL.labels(model=model, operation=operation, status=status).inc()
    LLM_REQUEST_DURATION.labels(model=model, operation=operation).observe(duration_seconds)

    if input_tokens > 0:
        LLM_TOKENS_PROCESSED.labels(model=model, direction="input").inc(input_tokens)
    if output_tokens > 0:
        LLM_TOKENS_PROCESSED.labels(model=model, direction="output").inc(output_tokens)


# =============================================================================
# Metric Endpoint Setup
# =============================================================================

def get_metrics_app():
    """
    Get ASGI app for /metrics endpoint.

    Returns:
        ASGI application that serves Prometheus metrics
    """
    from prometheus_client import make_asgi_app
    return make_asgi_app()
