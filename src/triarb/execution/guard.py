"""
Per-account execution serialization.

The account balance is shared with no locking primitive on the exchange,
so only one execution may be in flight per account, followed by a
cooldown before the next one starts.
"""

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from triarb.config.constants import DEFAULT_EXECUTION_COOLDOWN_S
from triarb.core.errors import ExecutionInProgressError


logger = logging.getLogger(__name__)

REASON_BUSY = "EXCHANGE_BUSY"
REASON_COOLDOWN = "RATE_LIMIT_COOLDOWN"


class AccountExecutionGuard:
    """
    Refuses overlapping executions on the same account.

    Features:
    - In-flight refusal per account id
    - Cooldown after each finished execution
    - Independent accounts never block each other
    """

    def __init__(
        self,
        cooldown_s: float = DEFAULT_EXECUTION_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize guard.

        Args:
            cooldown_s: Minimum pause after an execution finishes.
            clock: Monotonic time source.
        """
        self._cooldown = cooldown_s
        self._clock = clock
        self._in_flight: set[str] = set()
        self._finished_at: dict[str, float] = {}

    @asynccontextmanager
    async def acquire(self, account_id: str) -> AsyncIterator[None]:
        """
        Hold the account for the duration of the block.

        Raises:
            ExecutionInProgressError: If the account is busy or cooling down.
        """
        # Check and claim happen without an await in between
        if account_id in self._in_flight:
            raise ExecutionInProgressError(account_id, REASON_BUSY)

        remaining = self.cooldown_remaining(account_id)
        if remaining > 0:
            raise ExecutionInProgressError(account_id, REASON_COOLDOWN, retry_after=remaining)

        self._in_flight.add(account_id)
        try:
            yield
        finally:
            self._in_flight.discard(account_id)
            self._finished_at[account_id] = self._clock()
            logger.debug(f"Account {account_id} released")

    def cooldown_remaining(self, account_id: str) -> float:
        """Seconds until the account may execute again."""
        finished = self._finished_at.get(account_id)
        if finished is None:
            return 0.0
        return max(0.0, self._cooldown - (self._clock() - finished))

    def is_busy(self, account_id: str) -> bool:
        """Check if an execution is in flight for the account."""
        return account_id in self._in_flight
