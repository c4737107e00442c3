"""
Shared infrastructure for the diffcheck job.

Provides:
- db_pool: PostgreSQL connection pooling
- logging: structured logging setup
- metrics: Prometheus metrics
- tracing: OpenTelemetry spans
- retry: backoff for transient database errors
- sql_safety: identifier validation and quoting
"""

__all__ = ["db_pool", "logging", "metrics", "tracing", "retry", "sql_safety"]
