"""
Trading constants and configuration values.

This module contains all hardcoded values used throughout the engine.
Values are organized by category for easy maintenance and auditing.
Money and ratio values are Decimal so they can flow into leg arithmetic
without float contamination.
"""

from decimal import Decimal
from typing import Final


# =============================================================================
# Binance API Endpoints
# =============================================================================

BINANCE_REST_URL: Final[str] = "https://api.binance.com"
BINANCE_REST_TESTNET_URL: Final[str] = "https://testnet.binance.vision"

ENDPOINT_EXCHANGE_INFO: Final[str] = "/api/v3/exchangeInfo"
ENDPOINT_ACCOUNT: Final[str] = "/api/v3/account"
ENDPOINT_ORDER: Final[str] = "/api/v3/order"
ENDPOINT_DEPTH: Final[str] = "/api/v3/depth"

# Signed request receive window (milliseconds)
RECV_WINDOW_MS: Final[int] = 5000

# Depth levels requested per order book (Binance accepts 5, 10, 20, 50, 100...)
DEFAULT_BOOK_DEPTH: Final[int] = 20


# =============================================================================
# Trading Fees
# =============================================================================

# Default taker fee per leg (0.1%)
DEFAULT_FEE_RATE: Final[Decimal] = Decimal("0.001")


# =============================================================================
# Opportunity Evaluation
# =============================================================================

# Start amount bounds, in the cycle's starting currency
DEFAULT_MIN_ORDER_SIZE: Final[Decimal] = Decimal("50")
DEFAULT_MAX_ORDER_SIZE: Final[Decimal] = Decimal("10000")

# Net profit must exceed this fraction of the start amount (0.8%)
DEFAULT_MIN_PROFIT_THRESHOLD: Final[Decimal] = Decimal("0.008")

# Total fees above this fraction of the start amount count as a risk factor (0.5%)
DEFAULT_HIGH_FEE_FRACTION: Final[Decimal] = Decimal("0.005")

# Output penalty (percent) for a leg whose size exceeds the top of book
DEFAULT_SLIPPAGE_BUFFER_PCT: Final[Decimal] = Decimal("0.2")

# Depth analysis thresholds
DEFAULT_DEPTH_MAX_LEVELS: Final[int] = 3
DEFAULT_DEPTH_MAX_IMPACT_PCT: Final[Decimal] = Decimal("1.0")

# Risk factor labels
RISK_FACTOR_SLIPPAGE: Final[str] = "slippage"
RISK_FACTOR_HIGH_FEES: Final[str] = "high_fees"
RISK_FACTOR_LIQUIDITY: Final[str] = "liquidity"


# =============================================================================
# Execution
# =============================================================================

# Required balance = start amount * (1 + buffer)
DEFAULT_BALANCE_FEE_BUFFER: Final[Decimal] = Decimal("0.05")

# Maximum quote move between evaluation and order placement (percent)
DEFAULT_MAX_SLIPPAGE_PCT: Final[Decimal] = Decimal("0.5")

DEFAULT_LEG_TIMEOUT_MS: Final[int] = 30_000
DEFAULT_POLL_INTERVAL_MS: Final[int] = 500

# Dry-run fills deviate from the live quote by at most this percent
DEFAULT_DRY_RUN_JITTER_PCT: Final[Decimal] = Decimal("0.05")
DEFAULT_DRY_RUN_LATENCY_MS: Final[int] = 100

# Minimum pause between two executions on the same account (seconds)
DEFAULT_EXECUTION_COOLDOWN_S: Final[float] = 15.0

EXECUTION_ID_PREFIX: Final[str] = "EXEC"


# =============================================================================
# Market Data Retry Strategy
# =============================================================================

RETRY_MAX_ATTEMPTS: Final[int] = 4
RETRY_INITIAL_DELAY: Final[float] = 0.25  # seconds
RETRY_MAX_DELAY: Final[float] = 4.0  # seconds
RETRY_MULTIPLIER: Final[float] = 2.0
RETRY_JITTER: Final[float] = 0.1  # seconds

# Concurrent order-book requests per batch
MAX_CONCURRENT_BOOK_REQUESTS: Final[int] = 8


# =============================================================================
# Price Distribution
# =============================================================================

DEFAULT_DISTRIBUTION_INTERVAL_S: Final[float] = 2.0
DEFAULT_SUBSCRIBER_IDLE_TIMEOUT_S: Final[float] = 60.0
DEFAULT_SUBSCRIBER_SEND_TIMEOUT_S: Final[float] = 2.0


# =============================================================================
# Scanning
# =============================================================================

DEFAULT_SCAN_INTERVAL_S: Final[float] = 5.0
DEFAULT_START_AMOUNT: Final[Decimal] = Decimal("100")


# =============================================================================
# Logging
# =============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
MAX_LOG_QUEUE_SIZE: Final[int] = 10_000
