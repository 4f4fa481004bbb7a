"""Shared fixtures: a scriptable discovery endpoint."""

import asyncio
import json

import pytest
from aiohttp import web


class MockDiscoveryServer:
    """Mock discovery endpoint serving scripted responses in order.

    The last scripted response is repeated once the script runs out.
    """

    def __init__(self):
        self.app = web.Application()
        self.app.router.add_get('/targets', self.targets)
        self.runner = None
        self.port = None

        self.responses = [(200, b"[]")]
        self.requests = 0

    def script(self, *responses):
        """Set responses as (status, body) where body is bytes or JSON-able."""
        self.responses = [
            (status, body if isinstance(body, bytes) else json.dumps(body).encode())
            for status, body in responses
        ]

    async def targets(self, request):
        index = min(self.requests, len(self.responses) - 1)
        self.requests += 1
        status, body = self.responses[index]
        return web.Response(status=status, body=body, content_type='application/json')

    @property
    def url(self):
        return f"http://127.0.0.1:{self.port}/targets"

    async def start(self):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, '127.0.0.1', 0)
        await site.start()
        self.port = self.runner.addresses[0][1]

    async def stop(self):
        if self.runner:
            await self.runner.cleanup()


@pytest.fixture
async def mock_server():
    """Start a discovery endpoint on an ephemeral port."""
    server = MockDiscoveryServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
async def second_server():
    server = MockDiscoveryServer()
    await server.start()
    yield server
    await server.stop()


# Nothing listens on port 1
UNREACHABLE_URL = "http://127.0.0.1:1/targets"


async def wait_until(predicate, timeout=5.0, interval=0.02):
    """Poll *predicate* until true; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(interval)
