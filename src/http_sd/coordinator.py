"""
Multi-source coordination.

Starts one discovery loop and one consumer per configured source, each
pair connected by its own queue, and owns the shutdown signals of all of
them.

Shutdown is cooperative first: loops notice their signal once their
current delivery has been accepted. Loops that are still busy after the
grace period (in a request, a retry delay, or a hand-off nobody takes)
are cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .config import CoordinationPolicy, DiscoveryConfig, ServiceConfig
from .discovery import HTTPDiscovery
from .metrics import RequestMetrics
from .shutdown import ShutdownSignal

logger = logging.getLogger(__name__)


class Consumer(Protocol):
    """Downstream side of a discovery queue."""

    async def run(self, shutdown: ShutdownSignal, queue: asyncio.Queue) -> None:
        ...


ConsumerFactory = Callable[[DiscoveryConfig], Consumer]


@dataclass
class SourceRun:
    """Runtime state of one started source."""
    config: DiscoveryConfig
    signal: ShutdownSignal
    discovery: HTTPDiscovery
    queue: asyncio.Queue
    loop_task: asyncio.Task
    consumer_task: asyncio.Task

    @property
    def name(self) -> str:
        return self.loop_task.get_name()


class DiscoveryCoordinator:
    """
    Runs discovery loops for several sources.

    Args:
        sources: Per-source configuration, already validated
        consumer_factory: Builds the consumer for a source
        metrics: Request counter shared by all loops
        policy: Whether one loop stopping stops the others
        shutdown_grace: Seconds loops get to stop on their own
        request_timeout: Total timeout of one discovery request
        logger: Logger handed to every loop
    """

    def __init__(
        self,
        sources: list[DiscoveryConfig],
        consumer_factory: ConsumerFactory,
        metrics: Optional[RequestMetrics] = None,
        policy: CoordinationPolicy = CoordinationPolicy.INDEPENDENT,
        shutdown_grace: float = 5.0,
        request_timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.sources = list(sources)
        self.consumer_factory = consumer_factory
        self.metrics = metrics if metrics is not None else RequestMetrics()
        self.policy = CoordinationPolicy(policy)
        self.shutdown_grace = shutdown_grace
        self.request_timeout = request_timeout
        self.logger = logger or logging.getLogger(__name__)

        self._root: Optional[ShutdownSignal] = None
        self._signals: list[ShutdownSignal] = []
        self._runs: list[SourceRun] = []

    @classmethod
    def from_config(
        cls,
        config: ServiceConfig,
        consumer_factory: ConsumerFactory,
        metrics: Optional[RequestMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "DiscoveryCoordinator":
        """
        Build a coordinator from process configuration.

        Raises:
            ConfigurationError: If endpoints and output files do not pair up
        """
        return cls(
            sources=config.discovery_configs(),
            consumer_factory=consumer_factory,
            metrics=metrics,
            policy=config.coordination_policy,
            shutdown_grace=config.shutdown_grace,
            request_timeout=config.request_timeout,
            logger=logger,
        )

    @property
    def runs(self) -> list[SourceRun]:
        return list(self._runs)

    @property
    def running(self) -> list[str]:
        """URLs of sources whose loop is still running."""
        return [run.config.api_url for run in self._runs if not run.loop_task.done()]

    def _start_source(self, index: int, source: DiscoveryConfig) -> SourceRun:
        signal = self._root.child(source.api_url)
        self._signals.append(signal)

        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        discovery = HTTPDiscovery(
            source,
            metrics=self.metrics,
            logger=self.logger,
            request_timeout=self.request_timeout,
        )
        consumer = self.consumer_factory(source)

        name = f"discovery-{index}:{source.api_url}"
        loop_task = asyncio.create_task(discovery.run(signal, queue), name=name)
        consumer_task = asyncio.create_task(
            consumer.run(signal, queue), name=f"consumer-{index}:{source.output_file}"
        )

        run = SourceRun(
            config=source,
            signal=signal,
            discovery=discovery,
            queue=queue,
            loop_task=loop_task,
            consumer_task=consumer_task,
        )
        loop_task.add_done_callback(lambda task: self._on_loop_done(run))
        consumer_task.add_done_callback(lambda task: self._on_consumer_done(run))
        return run

    def _cascade(self, name: str) -> None:
        if self.policy == CoordinationPolicy.CASCADE and not self._root.is_set():
            self.logger.error(f"{name} terminated. Terminating all discoverers.")
            self.shutdown_all()

    def _on_loop_done(self, run: SourceRun) -> None:
        if run.loop_task.cancelled():
            return

        error = run.loop_task.exception()
        if error is not None:
            self.logger.error(f"{run.name} failed: {error}", exc_info=error)

        if not run.consumer_task.done():
            run.consumer_task.cancel()

        self._cascade(run.name)

    def _on_consumer_done(self, run: SourceRun) -> None:
        if run.consumer_task.cancelled():
            return

        error = run.consumer_task.exception()
        if error is None:
            return

        name = run.consumer_task.get_name()
        self.logger.error(
            f"{name} failed: {error}, stopping {run.config.api_url}",
            exc_info=error,
        )
        run.signal.set()
        # The loop would wait forever for a hand-off nobody takes
        if not run.loop_task.done():
            run.loop_task.cancel()

        self._cascade(name)

    def shutdown_all(self) -> None:
        """Set every shutdown signal this coordinator created."""
        for signal in self._signals:
            signal.set()

    def stop_source(self, api_url: str) -> bool:
        """
        Stop the loops polling *api_url*.

        Under the CASCADE policy this stops every other loop as well.

        Returns:
            True if a source with that URL was found
        """
        matched = [run for run in self._runs if run.config.api_url == api_url]
        for run in matched:
            run.signal.set()
        return bool(matched)

    async def run(self, shutdown: Optional[ShutdownSignal] = None) -> None:
        """
        Run every source until *shutdown* is set.

        Without a signal, runs until shutdown_all() is called.
        """
        self._root = shutdown or ShutdownSignal()
        self._signals.append(self._root)

        self.logger.info(
            f"Starting {len(self.sources)} discovery source(s) "
            f"(policy: {self.policy.value})"
        )
        for index, source in enumerate(self.sources):
            self._runs.append(self._start_source(index, source))

        try:
            await self._root.wait()
        finally:
            self.shutdown_all()
            await self._drain()

    async def _drain(self) -> None:
        loop_tasks = [run.loop_task for run in self._runs]
        if loop_tasks:
            _, pending = await asyncio.wait(loop_tasks, timeout=self.shutdown_grace)
            for task in pending:
                self.logger.warning(f"{task.get_name()} did not stop in time, cancelling")
                task.cancel()
            await asyncio.gather(*loop_tasks, return_exceptions=True)

        consumer_tasks = [run.consumer_task for run in self._runs]
        for task in consumer_tasks:
            if not task.done():
                task.cancel()
        # Failures are logged by the done callbacks
        await asyncio.gather(*consumer_tasks, return_exceptions=True)

        self.logger.info("All discovery sources stopped")
