"""In-memory asset token."""

from collections import defaultdict
from decimal import Decimal

from metavault.core.exceptions import InsufficientBalanceError, ValidationError
from metavault.core.logging import get_logger
from metavault.utils.decimal_utils import ZERO


class InMemoryAsset:
    """Fungible token ledger keyed by account identifier."""

    def __init__(self, symbol: str = "USDC"):
        self.symbol = symbol
        self._balances: dict[str, Decimal] = defaultdict(lambda: ZERO)
        self._total_supply = ZERO
        self._logger = get_logger(__name__).bind(asset=symbol)

    @property
    def total_supply(self) -> Decimal:
        return self._total_supply

    async def balance_of(self, account: str) -> Decimal:
        return self._balances.get(account, ZERO)

    async def transfer(self, sender: str, recipient: str, amount: Decimal) -> None:
        if amount < ZERO:
            raise ValidationError("Transfer amount must not be negative", field_value=amount)
        balance = self._balances.get(sender, ZERO)
        if amount > balance:
            raise InsufficientBalanceError(
                "Transfer exceeds balance", account=sender, balance=balance, amount=amount
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] += amount

    def mint(self, account: str, amount: Decimal) -> None:
        """Credit ``amount`` to ``account`` out of thin air."""
        if amount < ZERO:
            raise ValidationError("Mint amount must not be negative", field_value=amount)
        self._balances[account] += amount
        self._total_supply += amount
        self._logger.debug("Minted", account=account, amount=str(amount))
