#!/usr/bin/env python3
"""
Stream Lighter order books and account updates to stdout.

Each update is written as one JSON line. The process exits when
--duration-s elapses, on SIGINT/SIGTERM, or when the connection drops
(exit code 1, there is no automatic reconnect).

Usage:
    python -m scripts.run_stream --market-ids 0,3
    python -m scripts.run_stream --account-id 42  # token from LIGHTER_AUTH_TOKEN
    python -m scripts.run_stream --market-ids 3 --duration-s 60 --metrics-port 9090
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from typing import Any, TextIO

import orjson
from pydantic import BaseModel

from lighter_client.errors import LighterError
from lighter_client.logging_config import setup_logging
from lighter_client.metrics import MetricsExporter
from lighter_client.metrics_server import start_metrics_server, stop_metrics_server
from lighter_client.ws.client import LighterWebsocketClient
from lighter_client.ws.messages import AccountParams, OrderBookParams
from lighter_client.ws.service import BaseStreamService
from lighter_client.ws.types import ConnectionState, WSConfig

logger = logging.getLogger(__name__)

AUTH_TOKEN_ENV = "LIGHTER_AUTH_TOKEN"


@dataclass
class StreamRunConfig:
    """Options for one streaming run."""

    market_ids: list[int] = field(default_factory=list)
    account_id: int | None = None
    ws_url: str | None = None
    duration_s: float | None = None
    metrics_port: int = 0
    auth_token: str | None = None

    def __post_init__(self) -> None:
        if not self.market_ids and self.account_id is None:
            raise ValueError("nothing to stream: pass --market-ids and/or --account-id")
        if any(m < 0 for m in self.market_ids):
            raise ValueError(f"market ids must be >= 0, got {self.market_ids}")
        if self.account_id is not None and not self.auth_token:
            raise ValueError(f"--account-id requires {AUTH_TOKEN_ENV} to be set")
        if self.duration_s is not None and self.duration_s <= 0:
            raise ValueError(f"duration_s must be positive, got {self.duration_s}")


def parse_market_ids(value: str) -> list[int]:
    """Parse "0,3, 7" into [0, 3, 7]."""
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid market id list: {value!r}") from e


class StreamRunner:
    """Owns the stream services of one run and writes their updates."""

    def __init__(self, config: StreamRunConfig, out: TextIO) -> None:
        self._config = config
        self._out = out
        ws_config = WSConfig(url=config.ws_url) if config.ws_url else WSConfig.from_env()
        self._client = LighterWebsocketClient(ws_config)
        self._services: list[BaseStreamService] = []
        self._stop = asyncio.Event()
        self._lost = False

    @property
    def services(self) -> list[BaseStreamService]:
        return list(self._services)

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._stop.set()

    def health_info(self) -> dict[str, Any]:
        connected = all(s.metrics.state == ConnectionState.CONNECTED for s in self._services)
        return {
            "status": "ok" if connected and not self._lost else "degraded",
            "connections": len(self._services),
        }

    def _emit(self, kind: str, update: BaseModel) -> None:
        line = orjson.dumps({"kind": kind, **update.model_dump()})
        self._out.write(line.decode() + "\n")
        self._out.flush()

    async def _on_error(self, error: Exception) -> None:
        logger.error("Stream connection lost", extra={"error": str(error)})
        self._lost = True
        self._stop.set()

    async def start(self) -> None:
        if self._config.market_ids:
            public = self._client.public()
            self._services.append(public)
            await public.start(self._on_error)
            for market_id in self._config.market_ids:
                await public.subscribe_order_book(
                    OrderBookParams(market_id=market_id),
                    lambda book: self._emit("order_book", book),
                )

        if self._config.account_id is not None:
            token = self._config.auth_token or ""
            private = self._client.private(lambda: token)
            self._services.append(private)
            await private.start(self._on_error)
            await private.subscribe_account(
                AccountParams(account_id=self._config.account_id),
                lambda account: self._emit("account", account),
            )

    async def wait(self) -> bool:
        """Wait until stopped; True if the run ended because the connection dropped."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._config.duration_s)
        except TimeoutError:
            logger.info("Duration elapsed", extra={"duration_s": self._config.duration_s})
        return self._lost

    async def stop(self) -> None:
        for service in self._services:
            try:
                await service.close()
            except LighterError as e:
                logger.warning("Service close failed", extra={"service": service.label, "error": str(e)})


async def run_stream(config: StreamRunConfig, out: TextIO = sys.stdout) -> int:
    """
    Run one streaming session.

    Returns:
        Exit code (0 = clean stop, 1 = connection lost or failed to start).
    """
    runner = StreamRunner(config, out)

    exporter: MetricsExporter | None = None
    metrics_runner = None
    if config.metrics_port > 0:
        exporter = MetricsExporter()
        metrics_runner = await start_metrics_server(
            exporter.registry, port=config.metrics_port, health_fn=runner.health_info
        )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform or outside the main thread
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, runner.request_shutdown)

    sync_task: asyncio.Task[None] | None = None
    try:
        await runner.start()
        if exporter is not None:
            sync_task = asyncio.create_task(_sync_metrics(exporter, runner))
        lost = await runner.wait()
        return 1 if lost else 0
    except LighterError as e:
        logger.error("Stream failed", extra={"error": str(e)})
        return 1
    finally:
        if sync_task is not None:
            sync_task.cancel()
        await runner.stop()
        if exporter is not None:
            exporter.update(s.metrics for s in runner.services)
        if metrics_runner is not None:
            await stop_metrics_server(metrics_runner)
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)


async def _sync_metrics(exporter: MetricsExporter, runner: StreamRunner, interval_s: float = 1.0) -> None:
    while True:
        exporter.update(s.metrics for s in runner.services)
        await asyncio.sleep(interval_s)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stream Lighter order books and account updates as JSON lines.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--market-ids",
        type=parse_market_ids,
        default=[],
        help="Comma-separated market ids to stream order books for (e.g., 0,3)",
    )
    parser.add_argument(
        "--account-id",
        type=int,
        default=None,
        help=f"Account index to stream (token read from {AUTH_TOKEN_ENV})",
    )
    parser.add_argument(
        "--ws-url",
        type=str,
        default=None,
        help="Override WebSocket URL (default: LIGHTER_WS_URL or mainnet)",
    )
    parser.add_argument(
        "--duration-s",
        type=float,
        default=None,
        help="Run for N seconds then stop (default: until SIGINT/SIGTERM)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines on stderr",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=0,
        help="Prometheus /metrics port (0 to disable, default: 0)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.json_logs,
    )

    try:
        config = StreamRunConfig(
            market_ids=args.market_ids,
            account_id=args.account_id,
            ws_url=args.ws_url,
            duration_s=args.duration_s,
            metrics_port=args.metrics_port,
            auth_token=os.environ.get(AUTH_TOKEN_ENV),
        )
    except ValueError as e:
        logger.error("Invalid arguments: %s", e)
        return 2

    return asyncio.run(run_stream(config))


if __name__ == "__main__":
    sys.exit(main())
