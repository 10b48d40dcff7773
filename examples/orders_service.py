#!/usr/bin/env python3
"""
Event Emitter - End-to-End Showcase

Wires two components to a bus through @on_event, boots the container, publishes
a few messages and shuts down again.

By default an in-process bus is used so the script runs without a Redis server.
Pass --redis to use a live server (options from emitter.toml and
REDIS_EVENT_EMITTER_* environment variables).

Usage:
    python examples/orders_service.py
    python examples/orders_service.py --redis
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any

from redis_event_emitter import (
    ConfigLoader,
    Container,
    InMemoryPubSub,
    RedisEventEmitterModule,
    on_event,
)
from redis_event_emitter.adapters.telemetry.jsonl import JsonlTelemetry

logger = logging.getLogger("orders_service")


# =============================================================================
# Components
# =============================================================================


class OrderRepository:
    def __init__(self) -> None:
        self.orders: dict[int, dict[str, Any]] = {}


class OrderNotifier:
    def __init__(self, repository: OrderRepository) -> None:
        self._repository = repository

    @on_event("orders.created")
    def on_order_created(self, order: dict[str, Any]) -> None:
        self._repository.orders[order["id"]] = order
        logger.info(f"Order {order['id']} stored ({len(self._repository.orders)} total)")

    @on_event("orders.*")
    async def on_any_order(self, order: dict[str, Any], channel: str) -> None:
        await asyncio.sleep(0)
        logger.info(f"Audit: {channel} -> {order}")


# =============================================================================
# Main
# =============================================================================


async def main(use_redis: bool, telemetry_path: Path | None) -> None:
    container = Container(name="orders-service")
    container.register(OrderRepository)
    container.register(OrderNotifier, inject=[OrderRepository])

    telemetry = JsonlTelemetry("orders-service", telemetry_path) if telemetry_path else None
    if use_redis:
        config_file = "emitter.toml" if Path("emitter.toml").exists() else None
        options = ConfigLoader().load_options(config_file)
        module = RedisEventEmitterModule.for_root(container, options, telemetry=telemetry)
    else:
        module = RedisEventEmitterModule.for_root(
            container, bus=InMemoryPubSub(scope="shop"), telemetry=telemetry
        )

    await container.bootstrap()
    try:
        await module.bus.publish("orders.created", {"id": 42, "total": 99.5})
        await module.bus.publish("orders.cancelled", {"id": 41})
        await module.loader.wait_until_idle(timeout=5.0)
        # a live server delivers asynchronously
        if use_redis:
            await asyncio.sleep(0.5)
        print(f"Stored orders: {sorted(container.get(OrderRepository).orders)}")
        print(f"Loader stats: {module.loader.stats}")
    finally:
        await container.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--redis", action="store_true", help="Use a live Redis server")
    parser.add_argument("--telemetry", type=Path, default=None, help="JSONL telemetry sink")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )
    asyncio.run(main(args.redis, args.telemetry))
