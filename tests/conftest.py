"""Shared fixtures for the roundmint test suite.

Provides:
 - an in-memory StorageManager per test
 - a fully wired Engine (accounts, energy, registry, rounds, rewards, supply, mining)
"""

import pytest
import pytest_asyncio

from roundmint.config import EngineConfig
from roundmint.storage import StorageManager

from tests.helpers import build_engine


@pytest_asyncio.fixture
async def storage():
    sm = StorageManager(":memory:")
    await sm.initialize()
    yield sm
    await sm.close()


@pytest.fixture
def cfg():
    return EngineConfig()


@pytest_asyncio.fixture
async def engine(storage, cfg):
    return await build_engine(storage, cfg)
