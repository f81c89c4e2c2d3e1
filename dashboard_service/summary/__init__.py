"""Dashboard summary aggregation.

Modules:
    aggregator - Pure computations over daily metrics, targets, shifts and sync logs
    assembler - Concurrent store reads + payload assembly + response caching
    client - HTTP client for the summary endpoint (timeout + error mapping)
"""
