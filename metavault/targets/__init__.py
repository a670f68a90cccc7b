"""
Target capability protocols.
"""

from .interfaces import (
    AssetToken,
    AsyncWithdrawCapable,
    Capability,
    CapabilityReporting,
    CostCapable,
    IdleAssetsCapable,
    PreviewCapable,
    TargetVault,
    capabilities_of,
)

__all__ = [
    "AssetToken",
    "AsyncWithdrawCapable",
    "Capability",
    "CapabilityReporting",
    "CostCapable",
    "IdleAssetsCapable",
    "PreviewCapable",
    "TargetVault",
    "capabilities_of",
]
