"""
Target Registry.

Approval list of targets a MetaVault may allocate into. Only allocation is
gated: revoking a target never blocks withdrawing or claiming from it.
"""

from metavault.core.exceptions import ConfigurationError, IneligibleTargetError
from metavault.core.logging import get_logger
from metavault.targets.interfaces import TargetVault


class TargetRegistry:
    """
    Registry of approved targets keyed by address.

    Args:
        max_targets: Upper bound on simultaneously approved targets
    """

    def __init__(self, max_targets: int = 32):
        if max_targets <= 0:
            raise ConfigurationError("max_targets must be positive", config_key="max_targets")
        self.max_targets = max_targets
        self._targets: dict[str, TargetVault] = {}
        self._logger = get_logger(__name__)

    def approve(self, target: TargetVault) -> bool:
        """
        Approve a target.

        Returns:
            True if newly approved, False if it already was
        """
        if target.address in self._targets:
            return False
        if len(self._targets) >= self.max_targets:
            raise IneligibleTargetError(
                f"Registry is full ({self.max_targets} targets)", target=target.address
            )

        self._targets[target.address] = target
        self._logger.info("Target approved", target=target.address)
        return True

    def revoke(self, target: TargetVault) -> bool:
        if self._targets.pop(target.address, None) is None:
            return False
        self._logger.info("Target revoked", target=target.address)
        return True

    def is_eligible(self, target: TargetVault) -> bool:
        return self._targets.get(target.address) is target

    def require_eligible(self, target: TargetVault) -> None:
        if not self.is_eligible(target):
            raise IneligibleTargetError("Target is not approved", target=target.address)

    def get(self, address: str) -> TargetVault:
        """Resolve an approved target by address, used when restoring a ledger."""
        target = self._targets.get(address)
        if target is None:
            raise IneligibleTargetError("Unknown target address", target=address)
        return target

    def approved_targets(self) -> list[TargetVault]:
        return list(self._targets.values())

    def __len__(self) -> int:
        return len(self._targets)
