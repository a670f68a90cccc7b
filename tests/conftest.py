"""
Pytest configuration for the MetaVault test suite.

Fixtures build in-memory assets, targets and vaults so that every test
starts from a fresh, isolated state:
- Unit tests: one component against simulated targets
- Integration tests: full MetaVault scenarios
"""

import os

# Set testing environment variables before importing anything else
os.environ["TESTING"] = "1"

from decimal import Decimal

import pytest
import pytest_asyncio

from metavault.allocation import AllocationLedger, AllocationManager, TargetAdapter
from metavault.core.config import AllocationConfig, VaultConfig
from metavault.core.events import EventPublisher, RecordingEventHandler
from metavault.simulation import AsyncTargetVault, InMemoryAsset, SyncTargetVault
from metavault.vault import MetaVault, TargetRegistry

VAULT = "metavault"
ALICE = "alice"
BOB = "bob"


def d(value: str | int) -> Decimal:
    """Shorthand for Decimal amounts in assertions."""
    return Decimal(str(value))


@pytest.fixture
def asset():
    """Fresh asset token."""
    return InMemoryAsset("USDC")


@pytest.fixture
def recorder():
    return RecordingEventHandler()


@pytest.fixture
def publisher(recorder):
    publisher = EventPublisher(max_history=100)
    publisher.subscribe_all(recorder)
    return publisher


@pytest.fixture
def adapter():
    return TargetAdapter()


@pytest.fixture
def ledger():
    return AllocationLedger()


@pytest.fixture
def manager(asset, ledger, adapter, publisher):
    """Allocation manager owned by the vault account, funded with 5000."""
    asset.mint(VAULT, d(5000))
    return AllocationManager(VAULT, asset, ledger, adapter, publisher)


@pytest.fixture
def sync_target(asset):
    return SyncTargetVault("sync-target", asset)


@pytest.fixture
def async_target(asset):
    return AsyncTargetVault("async-target", asset)


@pytest.fixture
def cheap_target(asset):
    """Asynchronous target with a 100 bps exit cost."""
    return AsyncTargetVault("target-a", asset, exit_cost_bps=d(100))


@pytest.fixture
def dear_target(asset):
    """Asynchronous target with a 200 bps exit cost."""
    return AsyncTargetVault("target-b", asset, exit_cost_bps=d(200))


@pytest.fixture
def registry(sync_target, async_target, cheap_target, dear_target):
    registry = TargetRegistry(max_targets=8)
    for target in (sync_target, async_target, cheap_target, dear_target):
        registry.approve(target)
    return registry


@pytest.fixture
def vault(asset, registry, publisher):
    """MetaVault with every fixture target approved."""
    return MetaVault(
        asset,
        registry=registry,
        vault_config=VaultConfig(address=VAULT),
        allocation_config=AllocationConfig(),
        events=publisher,
    )


@pytest_asyncio.fixture
async def funded_vault(vault, asset):
    """MetaVault holding a 5000 deposit from alice."""
    asset.mint(ALICE, d(5000))
    await vault.deposit(d(5000), ALICE, ALICE)
    return vault
