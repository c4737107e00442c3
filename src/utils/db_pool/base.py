"""
Thread-safe connection pool with health checks on acquire.

Connections are validated when they leave the pool and recycled once they
exceed their lifetime or sit idle for too long. A reconciliation run only
holds one connection at a time, but the scheduler may overlap a run with
a status query, so the pool stays thread-safe.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from queue import Empty, Full, Queue
from typing import Any

from prometheus_client import Counter, Gauge, Histogram

from utils.metrics import get_or_create_metric

logger = logging.getLogger(__name__)


POOL_CONNECTIONS = get_or_create_metric(
    lambda: Gauge(
        "diffcheck_db_pool_connections",
        "Connections held by the pool, by state",
        ["pool_name", "state"],
    ),
    "diffcheck_db_pool_connections",
)
POOL_ERRORS = get_or_create_metric(
    lambda: Counter(
        "diffcheck_db_pool_errors_total",
        "Connection pool errors",
        ["pool_name", "error_type"],
    ),
    "diffcheck_db_pool_errors_total",
)
POOL_ACQUIRE_SECONDS = get_or_create_metric(
    lambda: Histogram(
        "diffcheck_db_pool_acquire_seconds",
        "Time spent waiting for a pooled connection",
        ["pool_name"],
        buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
    ),
    "diffcheck_db_pool_acquire_seconds",
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class PooledConnection:
    """A driver connection plus the bookkeeping the pool needs."""

    connection: Any
    created_at: datetime = field(default_factory=_utcnow)
    last_used: datetime = field(default_factory=_utcnow)
    use_count: int = 0

    def mark_used(self) -> None:
        self.last_used = _utcnow()
        self.use_count += 1


class ConnectionPoolError(Exception):
    """Base exception for connection pool errors."""


class PoolExhaustedError(ConnectionPoolError):
    """No connection became available within the acquire timeout."""


class PoolClosedError(ConnectionPoolError):
    """The pool was used after ``close()``."""


class BaseConnectionPool:
    """
    Driver independent pool logic.

    Subclasses implement ``_create_connection``, ``_is_connection_healthy``
    and ``_close_connection``.
    """

    def __init__(
        self,
        min_size: int = 1,
        max_size: int = 5,
        max_idle_time: int = 300,
        max_lifetime: int = 3600,
        acquire_timeout: float = 30.0,
        pool_name: str = "default",
    ):
        """
        Args:
            min_size: Connections opened eagerly at start-up
            max_size: Hard cap on open connections
            max_idle_time: Seconds a connection may sit unused
            max_lifetime: Seconds before a connection is recycled
            acquire_timeout: Seconds ``acquire`` waits before giving up
            pool_name: Label used in metrics and logs
        """
        if min_size < 0 or max_size < 1 or min_size > max_size:
            raise ValueError(
                f"Invalid pool size: min_size={min_size}, max_size={max_size}"
            )

        self.min_size = min_size
        self.max_size = max_size
        self.max_idle_time = timedelta(seconds=max_idle_time)
        self.max_lifetime = timedelta(seconds=max_lifetime)
        self.acquire_timeout = acquire_timeout
        self.pool_name = pool_name

        self._idle: Queue[PooledConnection] = Queue(maxsize=max_size)
        self._all_connections: list[PooledConnection] = []
        self._lock = threading.RLock()
        self._closed = False

        self._fill_to_min_size()

        logger.info(
            f"Initialized {self.__class__.__name__} '{pool_name}' "
            f"(min={min_size}, max={max_size})"
        )

    def _create_connection(self) -> Any:
        raise NotImplementedError

    def _is_connection_healthy(self, conn: Any) -> bool:
        raise NotImplementedError

    def _close_connection(self, conn: Any) -> None:
        raise NotImplementedError

    def _open(self) -> PooledConnection:
        """Open a new connection and register it. Caller holds the lock."""
        try:
            pooled_conn = PooledConnection(connection=self._create_connection())
        except Exception:
            POOL_ERRORS.labels(pool_name=self.pool_name, error_type="creation").inc()
            raise
        self._all_connections.append(pooled_conn)
        return pooled_conn

    def _fill_to_min_size(self) -> None:
        with self._lock:
            while len(self._all_connections) < self.min_size:
                try:
                    self._idle.put_nowait(self._open())
                except Exception as e:
                    # The first acquire() will surface the error
                    logger.warning(f"Failed to open initial connection: {e}")
                    break
            self._update_metrics()

    def _check_connection_health(self, pooled_conn: PooledConnection) -> bool:
        now = _utcnow()

        if now - pooled_conn.created_at > self.max_lifetime:
            logger.debug("Connection exceeded max lifetime, recycling")
            return False

        if now - pooled_conn.last_used > self.max_idle_time:
            logger.debug("Connection exceeded max idle time, recycling")
            return False

        try:
            return self._is_connection_healthy(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            POOL_ERRORS.labels(pool_name=self.pool_name, error_type="health_check").inc()
            return False

    def _recycle_connection(self, pooled_conn: PooledConnection) -> None:
        try:
            self._close_connection(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
        finally:
            with self._lock:
                if pooled_conn in self._all_connections:
                    self._all_connections.remove(pooled_conn)
                self._update_metrics()

    def _update_metrics(self) -> None:
        with self._lock:
            total = len(self._all_connections)
            idle = self._idle.qsize()
        POOL_CONNECTIONS.labels(pool_name=self.pool_name, state="idle").set(idle)
        POOL_CONNECTIONS.labels(pool_name=self.pool_name, state="active").set(total - idle)

    def _checkout(self) -> PooledConnection:
        deadline = time.monotonic() + self.acquire_timeout

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                POOL_ERRORS.labels(pool_name=self.pool_name, error_type="timeout").inc()
                raise PoolExhaustedError(
                    f"No connection available in pool '{self.pool_name}' "
                    f"within {self.acquire_timeout}s"
                )

            pooled_conn = None
            try:
                pooled_conn = self._idle.get_nowait()
            except Empty:
                with self._lock:
                    if len(self._all_connections) < self.max_size:
                        pooled_conn = self._open()

            if pooled_conn is None:
                try:
                    pooled_conn = self._idle.get(timeout=min(remaining, 0.5))
                except Empty:
                    continue

            if self._check_connection_health(pooled_conn):
                return pooled_conn

            logger.info("Connection unhealthy, recycling")
            self._recycle_connection(pooled_conn)

    @contextmanager
    def acquire(self) -> Iterator[Any]:
        """
        Borrow a connection for the duration of the ``with`` block.

        Raises:
            PoolClosedError: If the pool is closed
            PoolExhaustedError: If no connection is available in time
        """
        if self._closed:
            raise PoolClosedError(f"Connection pool '{self.pool_name}' is closed")

        start = time.monotonic()
        pooled_conn = self._checkout()
        pooled_conn.mark_used()
        POOL_ACQUIRE_SECONDS.labels(pool_name=self.pool_name).observe(
            time.monotonic() - start
        )
        self._update_metrics()

        try:
            yield pooled_conn.connection
        finally:
            if self._closed:
                self._recycle_connection(pooled_conn)
            else:
                try:
                    self._idle.put_nowait(pooled_conn)
                except Full:
                    self._recycle_connection(pooled_conn)
                self._update_metrics()

    def close(self) -> None:
        """Close every connection; later ``acquire`` calls fail."""
        if self._closed:
            return

        self._closed = True
        with self._lock:
            for pooled_conn in self._all_connections:
                try:
                    self._close_connection(pooled_conn.connection)
                except Exception as e:
                    logger.warning(f"Error closing connection: {e}")
            self._all_connections.clear()
            while True:
                try:
                    self._idle.get_nowait()
                except Empty:
                    break
        self._update_metrics()
        logger.info(f"Connection pool '{self.pool_name}' closed")

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = len(self._all_connections)
            idle = self._idle.qsize()
        return {
            "pool_name": self.pool_name,
            "total_connections": total,
            "idle_connections": idle,
            "active_connections": total - idle,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "closed": self._closed,
        }
