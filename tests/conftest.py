"""
Pytest configuration and shared fixtures.

Provides reusable test fixtures for all test modules.
"""

from decimal import Decimal

import pytest

from triarb.config.settings import Settings
from triarb.core.types import OrderBookSnapshot, TriangularPath
from triarb.strategy.calculator import CalculatorConfig, OpportunityCalculator
from triarb.strategy.catalog import StaticPathCatalog
from tests.mocks.exchange import MockExchangeClient, make_book


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Dry-run settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        binance_api_key=None,
        binance_api_secret=None,
        dry_run=True,
        journal_file=None,
        use_uvloop=False,
        execution_cooldown_s=0.0,
        dry_run_latency_ms=0,
        start_amount=Decimal("1000"),
        distribution_interval_s=60.0,
    )


# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def catalog() -> StaticPathCatalog:
    """Built-in path catalog."""
    return StaticPathCatalog.default()


@pytest.fixture
def path_usdt_eth_btc(catalog: StaticPathCatalog) -> TriangularPath:
    """USDT -> ETH -> BTC -> USDT."""
    path = catalog.get_path("binance", "USDT_ETH_BTC_USDT")
    assert path is not None
    return path


@pytest.fixture
def path_four_leg(catalog: StaticPathCatalog) -> TriangularPath:
    """USDT -> BTC -> ETH -> BNB -> USDT."""
    path = catalog.get_path("binance", "USDT_BTC_ETH_BNB_USDT")
    assert path is not None
    return path


# =============================================================================
# Order Book Fixtures
# =============================================================================


@pytest.fixture
def profitable_books() -> dict[str, OrderBookSnapshot]:
    """
    Books where USDT -> ETH -> BTC -> USDT returns about 1.7%.

    1000 USDT buys 0.4995 ETH at 2000, sells for 0.02495 BTC at 0.05,
    sells for about 1016.94 USDT at 40800.
    """
    return {
        "ETHUSDT": make_book("ETHUSDT", "1999", "2000"),
        "ETHBTC": make_book("ETHBTC", "0.05", "0.0501"),
        "BTCUSDT": make_book("BTCUSDT", "40800", "40810"),
    }


@pytest.fixture
def four_leg_books(profitable_books: dict[str, OrderBookSnapshot]) -> dict[str, OrderBookSnapshot]:
    """
    Books where USDT -> BTC -> ETH -> BNB -> USDT returns about 2.3%.

    Shares BTCUSDT and ETHBTC with profitable_books.
    """
    return {
        "BTCUSDT": profitable_books["BTCUSDT"],
        "ETHBTC": profitable_books["ETHBTC"],
        "BNBETH": make_book("BNBETH", "0.1499", "0.15"),
        "BNBUSDT": make_book("BNBUSDT", "315", "315.5"),
    }


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def calculator() -> OpportunityCalculator:
    """Calculator with default configuration (0.1% fee, 0.8% threshold)."""
    return OpportunityCalculator(CalculatorConfig())


@pytest.fixture
def mock_client(
    profitable_books: dict[str, OrderBookSnapshot],
    four_leg_books: dict[str, OrderBookSnapshot],
) -> MockExchangeClient:
    """Mock exchange with every fixture book and 10000 USDT."""
    return MockExchangeClient(
        books={**profitable_books, **four_leg_books},
        balances={"USDT": Decimal("10000")},
    )
