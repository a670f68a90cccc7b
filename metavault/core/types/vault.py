"""MetaVault user-facing type definitions."""

from decimal import Decimal

from pydantic import Field

from .allocation import ObligationKey
from .base import BaseValidatedModel


class UserWithdrawRequest(BaseValidatedModel):
    """A user withdrawal that could not be settled immediately.

    ``accumulated_requested_assets`` is the vault-wide running total of
    requested assets including this request; the request is claimable once
    the vault has processed at least that much.
    """

    key: ObligationKey
    owner: str
    receiver: str
    requested_assets: Decimal = Field(gt=Decimal("0"))
    accumulated_requested_assets: Decimal = Field(gt=Decimal("0"))
    is_claimed: bool = False
