"""
server.py - Mining server entry point.

Single-process server combining:
 - SQLite persistent storage via StorageManager
 - Engine services (accounts, energy, participants, rounds, rewards, supply)
 - Background watchdog (stale participant eviction, locked round recovery)
 - REST API (FastAPI on uvicorn, port 8080)

Usage:
    python -m roundmint.server [--api-port 8080] [--db-path data/roundmint.db]
    roundmint-server [--api-port 8080] [--db-path data/roundmint.db]
"""

import argparse
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from roundmint import __version__
from roundmint.account import AccountService
from roundmint.auth import AuthService
from roundmint.config import ServerConfig, load_config
from roundmint.deps import internal_error
from roundmint.energy import EnergyAccount
from roundmint.mining import MiningService
from roundmint.participants import ParticipantRegistry
from roundmint.rewards import RewardDistributor
from roundmint.rounds import RoundLifecycleManager
from roundmint.routers import register_all_routers
from roundmint.storage import StorageManager
from roundmint.supply import SupplyLedger

logger = logging.getLogger("server")

# Locked rounds younger than this are assumed to be mid-settlement
LOCK_GRACE_SEC = 10.0


class MiningServer:
    """Wires storage and services together and serves the REST API."""

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()

        # Storage + services are initialized async on startup
        self.storage: Optional[StorageManager] = None
        self.energy: Optional[EnergyAccount] = None
        self.accounts: Optional[AccountService] = None
        self.auth: Optional[AuthService] = None
        self.supply: Optional[SupplyLedger] = None
        self.registry: Optional[ParticipantRegistry] = None
        self.rewards: Optional[RewardDistributor] = None
        self.rounds: Optional[RoundLifecycleManager] = None
        self.mining: Optional[MiningService] = None

        self._watchdog_task: Optional[asyncio.Task] = None
        self._uvicorn_server: Optional[uvicorn.Server] = None

        self.app = FastAPI(title="roundmint", version=__version__, lifespan=self._lifespan)
        self.app.state.server = self
        self.app.add_exception_handler(Exception, internal_error)
        register_all_routers(self.app)

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self._init_services()
        self._watchdog_task = asyncio.create_task(self._watchdog())
        try:
            yield
        finally:
            await self.shutdown()

    async def _init_services(self):
        """Initialize storage and wire up services (must be called in async context)."""
        db_path = self.config.db_path
        db_dir = os.path.dirname(db_path)
        if db_dir and db_path != ":memory:":
            os.makedirs(db_dir, exist_ok=True)

        engine = self.config.engine
        self.storage = StorageManager(db_path)
        await self.storage.initialize()

        self.energy = EnergyAccount(self.storage, regen_per_sec=engine.energy_regen_per_sec)
        self.accounts = AccountService(self.storage, self.energy, engine)
        self.auth = AuthService(
            self.accounts,
            admin_key=self.config.admin_key,
            attestation_secret=self.config.attestation_secret,
        )
        self.supply = SupplyLedger(self.storage, engine.supply_cap)
        await self.supply.setup_defaults()
        self.registry = ParticipantRegistry(self.storage, self.energy, engine)
        self.rewards = RewardDistributor(self.storage, self.supply, engine)
        self.rounds = RoundLifecycleManager(self.storage, self.rewards, engine)
        self.mining = MiningService(
            self.storage, self.rounds, self.registry, self.energy, self.supply, engine,
        )

        # A crash between claim and settlement leaves a locked round behind
        await self.rounds.recover_locked_rounds()
        active = await self.rounds.get_or_create_active_round()
        logger.info("Services initialized (db=%s, active round %d)", db_path, active["sequence"])

    # -------------------------------------------------------------------
    # Watchdog
    # -------------------------------------------------------------------

    async def _watchdog(self):
        """Periodically purge stale participants and settle abandoned claims."""
        while True:
            await asyncio.sleep(self.config.watchdog_interval)
            try:
                await self.registry.evict_stale()
                await self.rounds.recover_locked_rounds(older_than=LOCK_GRACE_SEC)
            except Exception:
                logger.exception("Error in round watchdog")

    # -------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------

    async def start(self):
        """Start the API server; storage and watchdog come up via the app lifespan."""
        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.api_port,
            log_level="info",
        )
        self._uvicorn_server = uvicorn.Server(config)
        logger.info("REST API starting on port %d", self.config.api_port)
        await self._uvicorn_server.serve()

    async def shutdown(self):
        if self._watchdog_task is not None:
            self._watchdog_task.cancel()
            try:
                await self._watchdog_task
            except asyncio.CancelledError:
                pass
            self._watchdog_task = None
        if self.storage:
            await self.storage.close()

    async def stop(self):
        """Ask uvicorn to exit; the lifespan closes storage."""
        if self._uvicorn_server is not None:
            self._uvicorn_server.should_exit = True


def main():
    """CLI entry point for the mining server."""
    parser = argparse.ArgumentParser(description="roundmint mining server")
    parser.add_argument("--host", default=None, help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--api-port", type=int, default=None, help="REST API port (default: 8080)")
    parser.add_argument("--db-path", default=None, help="SQLite database path (default: data/roundmint.db)")
    parser.add_argument("--admin-key", default=None, help="Admin API key")
    parser.add_argument("--attestation-secret", default=None, help="HS256 secret shared with the payment service")
    parser.add_argument("--supply-cap", type=float, default=None, help="Hard token supply cap")
    parser.add_argument("--heartbeat-timeout", type=float, default=None, help="Seconds before a silent participant is evicted")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)-10s] %(levelname)-5s %(message)s",
        datefmt="%H:%M:%S",
    )

    config = load_config(
        host=args.host,
        api_port=args.api_port,
        db_path=args.db_path,
        admin_key=args.admin_key,
        attestation_secret=args.attestation_secret,
        supply_cap=args.supply_cap,
        heartbeat_timeout=args.heartbeat_timeout,
    )
    server = MiningServer(config)

    logger.info("=" * 60)
    logger.info("  roundmint mining server %s", __version__)
    logger.info("  REST API:    http://localhost:%d", config.api_port)
    logger.info("  Database:    %s", config.db_path)
    logger.info("  Supply cap:  %.2f", config.engine.supply_cap)
    logger.info("=" * 60)

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
