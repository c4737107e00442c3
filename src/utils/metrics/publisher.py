"""
Prometheus HTTP endpoint and application info metrics.
"""

import errno
import logging
import time

from prometheus_client import REGISTRY, CollectorRegistry, Gauge, Info, start_http_server

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Serves ``/metrics`` from a background thread.

    Only the ``schedule`` command starts it; a one-shot ``run`` exits
    before anything could scrape it.
    """

    def __init__(
        self,
        port: int = 9108,
        registry: CollectorRegistry | None = None,
        addr: str = "0.0.0.0",
    ):
        self.port = port
        self.addr = addr
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """
        Start the HTTP server.

        Raises:
            RuntimeError: If the port is already bound by another process
        """
        if self._server_started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            start_http_server(self.port, addr=self.addr, registry=self.registry)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise RuntimeError(
                    f"Metrics server port {self.port} is already in use"
                ) from e
            raise

        self._server_started = True
        logger.info(f"Metrics server started on {self.addr}:{self.port}")

    def is_started(self) -> bool:
        return self._server_started


class ApplicationInfo:
    """Build information and uptime of the running job."""

    def __init__(
        self,
        app_name: str = "diffcheck",
        version: str = "unknown",
        registry: CollectorRegistry | None = None,
    ):
        self.registry = registry or REGISTRY

        self.info = get_or_create_metric(
            lambda: Info("diffcheck_application", "Application metadata", registry=self.registry),
            "diffcheck_application",
            self.registry,
        )
        self.info.info({"name": app_name, "version": version})

        self._start_time = time.time()
        self.uptime_seconds = get_or_create_metric(
            lambda: Gauge(
                "diffcheck_uptime_seconds",
                "Seconds since the process started",
                registry=self.registry,
            ),
            "diffcheck_uptime_seconds",
            self.registry,
        )
        self.uptime_seconds.set_function(self.get_uptime)

    def get_uptime(self) -> float:
        return time.time() - self._start_time
