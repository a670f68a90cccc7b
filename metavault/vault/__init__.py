"""MetaVault orchestrator and target registry."""

from .meta_vault import MetaVault
from .registry import TargetRegistry

__all__ = ["MetaVault", "TargetRegistry"]
