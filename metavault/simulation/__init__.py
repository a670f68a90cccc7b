"""In-memory asset token and target vaults for scenarios and tests."""

from .asset import InMemoryAsset
from .vaults import AsyncTargetVault, SyncTargetVault

__all__ = ["AsyncTargetVault", "InMemoryAsset", "SyncTargetVault"]
