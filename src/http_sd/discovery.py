"""
HTTP discovery loop.

Polls one endpoint on a fixed schedule, turns the JSON response into
target groups and hands every complete result to a consumer through a
queue. Failures are retried after the full refresh interval, forever.
Only the shutdown signal ends the loop, and it is checked once the
consumer has accepted a result.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import aiohttp
from pydantic import TypeAdapter, ValidationError

from . import __version__
from ._types import RawTargetGroup, TargetGroup
from .config import DiscoveryConfig, HTTPSDError
from .metrics import RequestMetrics
from .shutdown import ShutdownSignal
from .targetgroup import build_target_groups

logger = logging.getLogger(__name__)

_RESPONSE_ADAPTER = TypeAdapter(Optional[list[RawTargetGroup]])
_JSON_DECODER = json.JSONDecoder()


class DiscoveryError(HTTPSDError):
    """A poll did not produce target groups; retried by the loop."""
    pass


class FetchError(DiscoveryError):
    """The endpoint could not be reached or the body could not be read."""
    pass


class DecodeError(DiscoveryError):
    """The endpoint answered with something that is not a target list."""
    pass


def decode_target_groups(body: bytes) -> list[RawTargetGroup]:
    """
    Decode a discovery response body.

    Only the first JSON value is read; anything after it is ignored. A
    JSON ``null`` is an empty target list. Field names match regardless
    of case and ``null`` targets or label values become empty strings.

    Raises:
        DecodeError: If the body is not valid JSON or does not match the schema
    """
    text = body.decode("utf-8", errors="replace").lstrip()
    try:
        data, _ = _JSON_DECODER.raw_decode(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {e}") from e

    try:
        raw = _RESPONSE_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise DecodeError(f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e
    return raw or []


class Ticker:
    """
    Fixed-rate tick schedule starting one interval after creation.

    Ticks that pass while nobody is waiting collapse into a single
    pending tick, which the next wait consumes immediately.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._next = clock() + interval

    def next_delay(self) -> float:
        """Seconds until the pending tick fires; consumes that tick."""
        now = self._clock()
        delay = max(0.0, self._next - now)
        fired_at = now + delay

        self._next += self.interval
        if self._next <= fired_at:
            skipped = int((fired_at - self._next) // self.interval) + 1
            self._next += skipped * self.interval

        return delay


class HTTPDiscovery:
    """
    Discovery loop for one configured source.

    Args:
        config: Source configuration
        metrics: Request counter, shared between loops
        logger: Logger to report through (default: module logger)
        session: Client session to reuse; one is created per run otherwise
        request_timeout: Total timeout of one request in seconds
    """

    def __init__(
        self,
        config: DiscoveryConfig,
        metrics: Optional[RequestMetrics] = None,
        logger: Optional[logging.Logger] = None,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 30.0,
    ):
        self.config = config
        self.metrics = metrics
        self.logger = logger or logging.getLogger(__name__)
        self.request_timeout = request_timeout
        self._session = session

        self.stats = {
            "polls_succeeded": 0,
            "polls_failed": 0,
            "last_success_at": None,
            "last_error": None,
        }

    @property
    def api_url(self) -> str:
        return self.config.api_url

    @property
    def refresh_interval(self) -> int:
        return self.config.refresh_interval

    def _create_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            headers={"User-Agent": f"prometheus-http-sd/{__version__}"},
        )

    async def _fetch(self, session: aiohttp.ClientSession) -> bytes:
        """GET the endpoint, recording the response status."""
        url = self.api_url
        try:
            async with session.get(url) as response:
                if self.metrics is not None:
                    self.metrics.observe(response.status, url)
                if response.status >= 300:
                    self.logger.warning(f"{url} returned HTTP {response.status}, decoding anyway")
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"{e.__class__.__name__}: {e}") from e

    async def refresh(self, session: aiohttp.ClientSession) -> list[TargetGroup]:
        """
        Run one poll.

        Returns:
            Complete list of target groups from the response

        Raises:
            FetchError: On transport failure
            DecodeError: On a malformed response
        """
        body = await self._fetch(session)
        raw_groups = decode_target_groups(body)
        return build_target_groups(raw_groups)

    def _record_failure(self, error: DiscoveryError) -> None:
        self.stats["polls_failed"] += 1
        self.stats["last_error"] = str(error)

        if isinstance(error, DecodeError):
            self.logger.error(f"Error reading targets from {self.api_url}: {error}")
        else:
            self.logger.error(f"Error getting targets from {self.api_url}: {error}")

    async def run(self, shutdown: ShutdownSignal, queue: asyncio.Queue) -> None:
        """
        Poll until *shutdown* is seen after a delivery.

        Each successful poll puts the full target group list on *queue* and
        waits for the consumer to mark it done before going on, so a slow
        consumer slows polling down.
        """
        ticker = Ticker(self.refresh_interval)
        owns_session = self._session is None
        session = self._session or self._create_session()

        self.logger.info(
            f"Starting discovery for {self.api_url} "
            f"(refresh interval: {self.refresh_interval}s)"
        )

        try:
            while True:
                try:
                    groups = await self.refresh(session)
                except DiscoveryError as e:
                    self._record_failure(e)
                    await asyncio.sleep(self.refresh_interval)
                    continue

                self.stats["polls_succeeded"] += 1
                self.stats["last_success_at"] = datetime.now(timezone.utc).isoformat()
                self.logger.debug(f"{self.api_url} returned {len(groups)} target group(s)")

                await queue.put(groups)
                await queue.join()

                if await shutdown.wait_for(ticker.next_delay()):
                    self.logger.info(f"Discovery for {self.api_url} terminated")
                    return
        finally:
            if owns_session:
                await session.close()
