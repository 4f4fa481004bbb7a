"""
Prometheus self-instrumentation.

Every completed discovery request is counted by status code and polled
URL. The counter lives on a registry owned by RequestMetrics so several
instances (and tests) never collide on a global registry.
"""

from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

logger = logging.getLogger(__name__)

METRICS_NAMESPACE = "prometheus_sd_http"


class RequestMetrics:
    """Counter of discovery requests, safe to share between loops."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.requests_total = Counter(
            "http_requests_total",
            "Number of http requests.",
            ["code", "api_url"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry,
        )

    def observe(self, code: int, api_url: str) -> None:
        """Record one completed request."""
        self.requests_total.labels(code=str(code), api_url=api_url).inc()

    def value(self, code: int, api_url: str) -> float:
        """Current count for a (code, api_url) pair, 0 if never seen."""
        sample = self.registry.get_sample_value(
            f"{METRICS_NAMESPACE}_http_requests_total",
            {"code": str(code), "api_url": api_url},
        )
        return sample or 0.0


class MetricsServer:
    """Serves the registry in the Prometheus text format."""

    def __init__(self, metrics: RequestMetrics, host: str, port: int, path: str = "/metrics"):
        self.metrics = metrics
        self.host = host
        self.port = port
        self.path = path
        self._runner: Optional[web.AppRunner] = None

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self.path, self._handle_metrics)
        return app

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(self.metrics.registry),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    async def start(self) -> bool:
        """
        Start serving.

        Returns:
            True if the server is listening, False if binding failed
        """
        self._runner = web.AppRunner(self.make_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            logger.error(f"Error occurred during serve metrics server: {e}")
            await self._runner.cleanup()
            self._runner = None
            return False

        logger.info(f"Metrics server started on {self.host}:{self.port}{self.path}")
        return True

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually listened on, useful when started with port 0."""
        if not self._runner or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
