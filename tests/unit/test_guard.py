"""
Unit tests for per-account execution serialization.
"""

import pytest

from triarb.core.errors import ExecutionInProgressError
from triarb.execution.guard import REASON_BUSY, REASON_COOLDOWN, AccountExecutionGuard


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestAccountExecutionGuard:
    """Tests for AccountExecutionGuard."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def guard(self, clock: FakeClock) -> AccountExecutionGuard:
        return AccountExecutionGuard(cooldown_s=15.0, clock=clock)

    @pytest.mark.asyncio
    async def test_busy_refused(self, guard: AccountExecutionGuard) -> None:
        """Test that a second execution on the same account is refused."""
        async with guard.acquire("acct-1"):
            assert guard.is_busy("acct-1")
            with pytest.raises(ExecutionInProgressError) as exc_info:
                async with guard.acquire("acct-1"):
                    pass

        assert exc_info.value.reason == REASON_BUSY
        assert not guard.is_busy("acct-1")

    @pytest.mark.asyncio
    async def test_accounts_independent(self, guard: AccountExecutionGuard) -> None:
        """Test that other accounts are not blocked."""
        async with guard.acquire("acct-1"):
            async with guard.acquire("acct-2"):
                assert guard.is_busy("acct-2")

    @pytest.mark.asyncio
    async def test_cooldown(self, guard: AccountExecutionGuard, clock: FakeClock) -> None:
        """Test the pause enforced after an execution finishes."""
        async with guard.acquire("acct-1"):
            pass

        clock.now += 5.0
        assert guard.cooldown_remaining("acct-1") == pytest.approx(10.0)
        with pytest.raises(ExecutionInProgressError) as exc_info:
            async with guard.acquire("acct-1"):
                pass
        assert exc_info.value.reason == REASON_COOLDOWN
        assert exc_info.value.retry_after == pytest.approx(10.0)

        clock.now += 10.0
        async with guard.acquire("acct-1"):
            pass

    @pytest.mark.asyncio
    async def test_released_on_error(self, guard: AccountExecutionGuard) -> None:
        """Test that an exception inside the block still releases the account."""
        with pytest.raises(RuntimeError):
            async with guard.acquire("acct-1"):
                raise RuntimeError("boom")

        assert not guard.is_busy("acct-1")
        assert guard.cooldown_remaining("acct-1") == pytest.approx(15.0)
