"""Tests for request metrics and the metrics server."""

import socket

import aiohttp
import pytest
from prometheus_client.parser import text_string_to_metric_families

from http_sd.metrics import MetricsServer, RequestMetrics


class TestRequestMetrics:
    """Tests for the request counter."""

    def test_counts_per_code_and_url(self):
        metrics = RequestMetrics()

        metrics.observe(200, "http://a/")
        metrics.observe(200, "http://a/")
        metrics.observe(503, "http://a/")
        metrics.observe(200, "http://b/")

        assert metrics.value(200, "http://a/") == 2
        assert metrics.value(503, "http://a/") == 1
        assert metrics.value(200, "http://b/") == 1

    def test_unseen_pair_is_zero(self):
        assert RequestMetrics().value(404, "http://a/") == 0

    def test_instances_do_not_share_state(self):
        """Should keep each instance on its own registry."""
        first = RequestMetrics()
        second = RequestMetrics()

        first.observe(200, "http://a/")

        assert second.value(200, "http://a/") == 0


class TestMetricsServer:
    """Tests for serving metrics over HTTP."""

    @pytest.mark.asyncio
    async def test_serves_counter(self):
        metrics = RequestMetrics()
        metrics.observe(200, "http://a/targets")
        server = MetricsServer(metrics, host="127.0.0.1", port=0, path="/sd-metrics")

        assert await server.start() is True
        try:
            url = f"http://127.0.0.1:{server.bound_port}/sd-metrics"
            async with aiohttp.ClientSession() as session:
                async with session.get(url) as response:
                    body = await response.text()
                    assert response.status == 200
                    assert response.headers["Content-Type"].startswith("text/plain")
        finally:
            await server.stop()

        samples = {
            (s.name, tuple(sorted(s.labels.items()))): s.value
            for family in text_string_to_metric_families(body)
            for s in family.samples
        }
        key = (
            "prometheus_sd_http_http_requests_total",
            (("api_url", "http://a/targets"), ("code", "200")),
        )
        assert "# HELP prometheus_sd_http_http_requests_total Number of http requests." in body
        assert samples[key] == 1.0

    @pytest.mark.asyncio
    async def test_other_paths_not_found(self):
        server = MetricsServer(RequestMetrics(), host="127.0.0.1", port=0)
        await server.start()
        try:
            url = f"http://127.0.0.1:{server.bound_port}/other"
            async with aiohttp.ClientSession() as session:
                async with session.get(url) as response:
                    assert response.status == 404
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_bind_failure_returns_false(self, caplog):
        """Should log and report a port already in use."""
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen()
            port = sock.getsockname()[1]

            server = MetricsServer(RequestMetrics(), host="127.0.0.1", port=port)
            assert await server.start() is False

        assert server.bound_port is None
        assert "Error occurred during serve metrics server" in caplog.text
