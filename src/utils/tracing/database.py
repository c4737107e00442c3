"""
Client spans for SQL statements.
"""

from opentelemetry import trace

from .context import trace_operation


def trace_database_query(
    query_type: str,
    table: str,
    database: str = "postgresql",
    **extra_attrs,
):
    """
    Context manager wrapping one SQL statement in a client span.

    Example:
        >>> with trace_database_query("DELETE", "transaction_table", rows=12):
        ...     execute_values(cursor, sql, keys)
    """
    return trace_operation(
        f"db.{query_type.lower()}",
        kind=trace.SpanKind.CLIENT,
        **{
            "db.system": database,
            "db.operation": query_type,
            "db.sql.table": table,
            **extra_attrs,
        },
    )
