#!/usr/bin/env python3
"""
mock_miners.py - Standalone simulated miner swarm.

Registers N accounts against a running roundmint server, joins the current
round, keeps heartbeating every few seconds and brute-forces a proof in a
worker thread the same way the browser worker does. Miners randomly drop
out to exercise stale eviction.

Usage:
    python scripts/mock_miners.py --miners 5 --url http://localhost:8080 --tick 5
"""

import argparse
import asyncio
import logging
import random
import signal
import uuid
from dataclasses import dataclass
from typing import List, Optional

import httpx

from roundmint import proof

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)-10s] %(levelname)-5s %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("swarm")


@dataclass
class SimMiner:
    identity: str
    mode: str = "basic"
    api_key: str = ""
    online: bool = True
    blocks_found: int = 0
    tokens: float = 0.0


class MinerSwarm:
    def __init__(self, n_miners: int, base_url: str, tick_interval: float,
                 dropout: float = 0.02):
        self.base_url = base_url.rstrip("/")
        self.tick_interval = tick_interval
        self.dropout = dropout
        self.miners: List[SimMiner] = [
            SimMiner(identity=f"sim-{uuid.uuid4().hex[:10]}")
            for _ in range(n_miners)
        ]
        self._stop = False

    async def _register(self, client: httpx.AsyncClient, m: SimMiner):
        r = await client.post("/api/auth/register", json={"identity": m.identity, "username": m.identity})
        r.raise_for_status()
        m.api_key = r.json()["api_key"]

    async def _join(self, client: httpx.AsyncClient, m: SimMiner) -> Optional[dict]:
        r = await client.post("/api/mining/join", json={"mode": m.mode},
                              headers={"X-API-Key": m.api_key})
        if r.status_code != 200:
            logger.info("%s could not join: %s", m.identity, r.json().get("detail"))
            return None
        return r.json()["block"]

    async def _search(self, block: dict, m: SimMiner):
        start = random.randint(0, 1_000_000)
        return await asyncio.to_thread(
            proof.search, block["blockNumber"], m.identity, block["difficulty"], start, 200_000,
        )

    async def _run_miner(self, client: httpx.AsyncClient, m: SimMiner):
        headers = {"X-API-Key": m.api_key}
        while not self._stop:
            if not m.online:
                await asyncio.sleep(self.tick_interval)
                continue
            block = await self._join(client, m)
            if block is None:
                await asyncio.sleep(self.tick_interval * 4)
                continue
            search = asyncio.create_task(self._search(block, m))
            while not search.done() and not self._stop:
                r = await client.post("/api/mining/tick", headers=headers)
                body = r.json()
                if not body.get("continue"):
                    logger.info("%s stopped: %s", m.identity, body.get("reason"))
                    break
                if random.random() < self.dropout:
                    m.online = False
                    logger.info("%s going silent", m.identity)
                    asyncio.get_running_loop().call_later(
                        random.randint(40, 90), self._bring_online, m,
                    )
                    break
                await asyncio.wait({search}, timeout=self.tick_interval)
            if not search.done():
                search.cancel()
                continue
            try:
                nonce, digest = search.result()
            except RuntimeError:
                continue
            r = await client.post(
                "/api/mining/submit",
                json={"hash": digest, "nonce": nonce, "blockNumber": block["blockNumber"]},
                headers=headers,
            )
            if r.status_code == 200:
                result = r.json()
                m.blocks_found += 1
                m.tokens += result["finderReward"]
                logger.info(
                    "Block %d found by %s: finder=%.2f pool=%d x %.2f",
                    result["blockNumber"], m.identity, result["finderReward"],
                    result["poolMinersCount"], result["poolShareEach"],
                )
            else:
                logger.info("%s submit rejected: %s", m.identity, r.json().get("detail"))

    def _bring_online(self, m: SimMiner):
        m.online = True
        logger.info("%s back online", m.identity)

    async def _print_status(self, client: httpx.AsyncClient):
        while not self._stop:
            await asyncio.sleep(30)
            r = await client.get("/api/supply")
            supply = r.json()
            online = sum(1 for m in self.miners if m.online)
            logger.info(
                "Swarm: %d/%d online | %d blocks | minted %.2f / %.0f (era %d)",
                online, len(self.miners), sum(m.blocks_found for m in self.miners),
                supply["mintedTotal"], supply["cap"], supply["era"],
            )

    async def run(self):
        async with httpx.AsyncClient(base_url=self.base_url, timeout=10.0) as client:
            for m in self.miners:
                await self._register(client, m)
            tasks = [asyncio.create_task(self._run_miner(client, m)) for m in self.miners]
            tasks.append(asyncio.create_task(self._print_status(client)))
            try:
                await asyncio.gather(*tasks)
            except asyncio.CancelledError:
                pass
            finally:
                for t in tasks:
                    t.cancel()

    def stop(self):
        self._stop = True


def main():
    parser = argparse.ArgumentParser(description="Simulated miner swarm")
    parser.add_argument("--miners", type=int, default=5, help="Number of simulated miners")
    parser.add_argument("--url", default="http://localhost:8080", help="Server base URL")
    parser.add_argument("--tick", type=float, default=5.0, help="Seconds between heartbeats")
    parser.add_argument("--dropout", type=float, default=0.02,
                        help="Chance per tick that a miner goes silent")
    args = parser.parse_args()

    swarm = MinerSwarm(args.miners, args.url, args.tick, args.dropout)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _signal_handler():
        logger.info("Shutting down swarm...")
        swarm.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    logger.info("Starting swarm: %d miners -> %s", args.miners, args.url)
    try:
        loop.run_until_complete(swarm.run())
    finally:
        loop.close()


if __name__ == "__main__":
    main()
