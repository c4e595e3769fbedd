"""Interval pollers that feed market-data topic rooms.

Each poller fetches a snapshot and publishes it as a retained tick, so a
connection subscribing between ticks still receives the latest value.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from core.config import MarketDataSettings
from core.logging_config import get_logger
from domain.realtime.rooms import CRYPTO_UPDATES, FEAR_GREED_UPDATES, SOLANA_UPDATES
from infrastructure.external.api_clients.market_data import build_cmc_client, build_solscan_client
from infrastructure.realtime.room_bus import RoomBus


logger = get_logger(__name__)

Fetch = Callable[[], Awaitable[Any]]


class TopicPoller:
    def __init__(self, *, name: str, fetch: Fetch, bus: RoomBus, room: str, event: str, interval: float) -> None:
        self.name = name
        self._fetch = fetch
        self._bus = bus
        self._room = room
        self._event = event
        self._interval = max(1.0, float(interval))
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """拉取一次并推送；失败只记录日志，保持调度"""
        try:
            data = await self._fetch()
        except Exception as exc:
            logger.warning("topic_poll_failed", poller=self.name, room=self._room, error=str(exc))
            return False
        await self._bus.publish(self._room, self._event, data, retain=True)
        logger.debug("topic_poll_published", poller=self.name, room=self._room)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"poller:{self.name}")
        logger.info("topic_poller_started", poller=self.name, room=self._room, interval=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("topic_poller_stopped", poller=self.name)

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self._interval)


def build_market_pollers(config: MarketDataSettings, bus: RoomBus) -> tuple[List[TopicPoller], list]:
    """按配置组装行情轮询器；返回 (pollers, 需要在关闭时释放的 API 客户端)"""
    pollers: List[TopicPoller] = []
    clients: list = []
    if not config.enabled:
        return pollers, clients

    cmc = build_cmc_client(config)
    if cmc is not None:
        clients.append(cmc)
        pollers.append(TopicPoller(
            name="crypto", fetch=cmc.trending_coins, bus=bus,
            room=CRYPTO_UPDATES, event="cryptoUpdate", interval=config.crypto_interval_s,
        ))
        pollers.append(TopicPoller(
            name="fear_greed", fetch=cmc.fear_greed, bus=bus,
            room=FEAR_GREED_UPDATES, event="fearGreedUpdate", interval=config.fear_greed_interval_s,
        ))
    else:
        logger.warning("market_data_cmc_key_missing")

    solscan = build_solscan_client(config)
    if solscan is not None:
        clients.append(solscan)
        pollers.append(TopicPoller(
            name="solana", fetch=solscan.trending_tokens, bus=bus,
            room=SOLANA_UPDATES, event="solanaUpdate", interval=config.solana_interval_s,
        ))
    else:
        logger.warning("market_data_solscan_key_missing")
    return pollers, clients


__all__ = ["TopicPoller", "build_market_pollers"]
