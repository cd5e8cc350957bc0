"""
Pre-flight balance validation.

A check only, not a reservation: the exchange offers no way to lock
funds, so an execution can still fail on insufficient funds later.
"""

import logging
from decimal import Decimal

from triarb.config.constants import DEFAULT_BALANCE_FEE_BUFFER
from triarb.core.types import AccountBalance, Opportunity
from triarb.utils.money import HUNDRED, ZERO


logger = logging.getLogger(__name__)


class BalanceCheck:
    """Result of a balance check."""

    __slots__ = ("sufficient", "message", "required", "available")

    def __init__(
        self,
        sufficient: bool,
        message: str,
        required: Decimal = ZERO,
        available: Decimal = ZERO,
    ) -> None:
        self.sufficient = sufficient
        self.message = message
        self.required = required
        self.available = available

    def __bool__(self) -> bool:
        return self.sufficient

    def __repr__(self) -> str:
        return f"BalanceCheck(sufficient={self.sufficient}, message={self.message!r})"


class BalanceValidator:
    """
    Requires start amount plus a fee buffer in the starting currency.

    Features:
    - Fee buffer on top of the start amount
    - Optional cap on the share of the balance a single cycle may use
    """

    __slots__ = ("_fee_buffer", "_max_portfolio_pct")

    def __init__(
        self,
        fee_buffer: Decimal = DEFAULT_BALANCE_FEE_BUFFER,
        max_portfolio_pct: Decimal | None = None,
    ) -> None:
        """
        Initialize validator.

        Args:
            fee_buffer: Fraction added on top of the start amount.
            max_portfolio_pct: Largest start amount as a percent of the
                available balance; None for no cap.
        """
        self._fee_buffer = fee_buffer
        self._max_portfolio_pct = max_portfolio_pct

    @property
    def fee_buffer(self) -> Decimal:
        """Configured fee buffer fraction."""
        return self._fee_buffer

    @property
    def max_portfolio_pct(self) -> Decimal | None:
        """Configured portfolio cap in percent, if any."""
        return self._max_portfolio_pct

    def validate_for_execution(
        self,
        opportunity: Opportunity,
        balance: AccountBalance,
    ) -> BalanceCheck:
        """
        Check a fresh balance against an opportunity's start amount.

        Args:
            opportunity: Opportunity about to be executed.
            balance: Balance of the cycle's starting currency.

        Returns:
            BalanceCheck, truthy when sufficient.
        """
        currency = opportunity.start_currency
        required = opportunity.start_amount * (1 + self._fee_buffer)

        if balance.currency != currency:
            return BalanceCheck(
                False,
                f"Balance is for {balance.currency}, path starts in {currency}",
                required=required,
            )

        if balance.available < required:
            message = (
                f"Insufficient {currency}: need {required} "
                f"(incl. {self._fee_buffer:%} buffer), have {balance.available}"
            )
            logger.warning(message)
            return BalanceCheck(False, message, required=required, available=balance.available)

        if self._max_portfolio_pct is not None:
            cap = balance.available * self._max_portfolio_pct / HUNDRED
            if opportunity.start_amount > cap:
                message = (
                    f"Start amount {opportunity.start_amount} {currency} exceeds "
                    f"{self._max_portfolio_pct}% of available balance ({cap})"
                )
                logger.warning(message)
                return BalanceCheck(False, message, required=required, available=balance.available)

        return BalanceCheck(
            True,
            f"{currency} balance {balance.available} covers {required}",
            required=required,
            available=balance.available,
        )
