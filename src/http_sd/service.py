"""
Process entry point.

Parses flags, builds the configuration, starts the metrics server and runs
the discovery coordinator until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .adapter import FileSDWriter
from .config import ConfigurationError, CoordinationPolicy, DiscoveryConfig, ServiceConfig
from .coordinator import DiscoveryCoordinator
from .metrics import MetricsServer, RequestMetrics
from .shutdown import ShutdownSignal

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="http-sd",
        description="Tool to generate file_sd target files from HTTP discovery endpoints.",
    )
    parser.add_argument(
        "--api.url", dest="api_urls", action="append", metavar="URL",
        help="The url the HTTP API sd is listening on for requests (repeatable)",
    )
    parser.add_argument(
        "--output.file", dest="output_files", action="append", metavar="FILE",
        help="Output file for file_sd compatible file (repeatable)",
    )
    parser.add_argument(
        "--refresh.interval", dest="refresh_interval", type=int,
        help="Refresh interval to re-read the instance list (seconds)",
    )
    parser.add_argument(
        "--metrics.addr", dest="metrics_addr",
        help="Address to bind metrics server to",
    )
    parser.add_argument(
        "--metrics.path", dest="metrics_path",
        help="Path to serve metrics server to",
    )
    parser.add_argument(
        "--coordination-policy", dest="coordination_policy",
        choices=[p.value for p in CoordinationPolicy],
        help="Whether one discovery loop stopping stops the others",
    )
    parser.add_argument(
        "--config", type=str,
        help="Path to YAML configuration file (uses env vars if not specified)",
    )
    parser.add_argument(
        "--log-level", dest="log_level", type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(args: argparse.Namespace) -> ServiceConfig:
    """
    Resolve configuration: defaults < env < YAML file < flags.

    Raises:
        ConfigurationError: If any layer is invalid
    """
    try:
        if args.config:
            config = ServiceConfig.from_yaml(Path(args.config))
        else:
            config = ServiceConfig()
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    return config.override(
        api_urls=args.api_urls,
        output_files=args.output_files,
        refresh_interval=args.refresh_interval,
        metrics_addr=args.metrics_addr,
        metrics_path=args.metrics_path,
        coordination_policy=args.coordination_policy,
        log_level=args.log_level,
    )


def writer_factory(source: DiscoveryConfig) -> FileSDWriter:
    return FileSDWriter(source.output_file, name="httpSD")


async def serve(config: ServiceConfig, shutdown: Optional[ShutdownSignal] = None) -> None:
    """Run the metrics server and all discovery sources until shutdown."""
    shutdown = shutdown or ShutdownSignal()

    # Validates source pairing before anything is started
    metrics = RequestMetrics()
    coordinator = DiscoveryCoordinator.from_config(config, writer_factory, metrics=metrics)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except (NotImplementedError, RuntimeError):
            # Not on the main thread or not supported by the platform
            pass

    metrics_server = MetricsServer(
        metrics,
        host=config.metrics_host,
        port=config.metrics_port,
        path=config.metrics_path,
    )
    await metrics_server.start()

    try:
        await coordinator.run(shutdown)
    finally:
        await metrics_server.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the http-sd console script."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, (args.log_level or "INFO").upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = load_config(args)
        logging.getLogger().setLevel(config.log_level)
        # Fail on mismatched sources before the event loop starts
        sources = config.discovery_configs()
    except ConfigurationError as e:
        logger.error(f"Config error: {e}")
        return 1

    logger.info(f"{len(sources)} discovery source(s) configured")

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
