"""
Async Binance REST API client.

Implements the ExchangeClient capability interface with:
- Connection pooling and keep-alive
- Fast JSON parsing with orjson
- Automatic request signing
- Lot-size and quote-precision rounding from exchange info
"""

import asyncio
import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, TypeVar

import aiohttp
import orjson
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from triarb.config.constants import (
    BINANCE_REST_TESTNET_URL,
    BINANCE_REST_URL,
    DEFAULT_BOOK_DEPTH,
    ENDPOINT_ACCOUNT,
    ENDPOINT_DEPTH,
    ENDPOINT_EXCHANGE_INFO,
    ENDPOINT_ORDER,
)
from triarb.core.errors import ExchangeError, TransientExchangeError
from triarb.core.types import (
    AccountBalance,
    OrderBookSnapshot,
    OrderStatus,
    OrderStatusReport,
    Side,
)
from triarb.exchange.models import (
    AccountInfo,
    DepthResponse,
    ExchangeInfo,
    OrderResponse,
    QueryOrderResponse,
    SymbolData,
    map_order_status,
)
from triarb.exchange.signer import RequestSigner
from triarb.utils.money import ZERO, format_amount, round_step
from triarb.utils.time import get_timestamp_us


logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 10.0
# Orders never queried to a final state are evicted oldest first
MAX_TRACKED_COMMISSIONS = 1000

ModelT = TypeVar("ModelT", bound=BaseModel)


class BinanceClientError(ExchangeError):
    """Base exception for Binance client errors."""


class BinanceNetworkError(BinanceClientError, TransientExchangeError):
    """Transport failure, timeout, throttling or server-side error."""


class BinanceAPIError(BinanceClientError):
    """Exception for Binance API errors."""


class BinanceResponseError(BinanceClientError, TransientExchangeError):
    """Accepted response whose payload does not match its model; outcome unknown."""


def parse_response(model: type[ModelT], data: Any) -> ModelT:
    """
    Validate a response payload against its model.

    Raises:
        BinanceResponseError: If the payload does not match the model.
    """
    try:
        return model.model_validate(data)
    except SchemaError as e:
        raise BinanceResponseError(
            f"Unexpected {model.__name__} payload: {e.error_count()} validation error(s)"
        ) from e


class BinanceClient:
    """
    Async Binance REST API client.

    Features:
    - Single session with connection pooling
    - orjson for fast JSON parsing
    - HMAC-SHA256 request signing
    - Cached symbol rules for order rounding
    - Commission capture from FULL order responses
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        use_testnet: bool = False,
        request_timeout_s: float = REQUEST_TIMEOUT_S,
    ) -> None:
        """
        Initialize the Binance client.

        Public market data works without credentials; account and order
        endpoints require both key and secret.

        Args:
            api_key: Binance API key.
            api_secret: Binance API secret.
            use_testnet: Whether to use testnet endpoints.
            request_timeout_s: Total timeout per HTTP request.
        """
        self._api_key = api_key
        self._signer = RequestSigner(api_secret) if api_secret else None
        self._base_url = BINANCE_REST_TESTNET_URL if use_testnet else BINANCE_REST_URL
        self._timeout = aiohttp.ClientTimeout(total=request_timeout_s)
        self._session: aiohttp.ClientSession | None = None

        self._symbols: dict[str, SymbolData] = {}
        self._symbols_lock = asyncio.Lock()
        # order id -> (commission, commission asset) from the placement response
        self._commissions: dict[str, tuple[Decimal, str]] = {}

        if api_key:
            digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:12]
            self._account_id = f"binance:{digest}"
        else:
            self._account_id = "binance:public"

    @property
    def account_id(self) -> str:
        """Stable identifier derived from the API key."""
        return self._account_id

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=100,
                limit_per_host=50,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )

            headers = {"Content-Type": "application/x-www-form-urlencoded"}
            if self._api_key:
                headers["X-MBX-APIKEY"] = self._api_key

            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=headers,
                timeout=self._timeout,
                json_serialize=lambda x: orjson.dumps(x).decode(),
            )

        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def _request_context(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Context manager translating transport failures."""
        session = await self._get_session()
        try:
            yield session
        except aiohttp.ClientError as e:
            raise BinanceNetworkError(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise BinanceNetworkError("Request timed out") from e

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        signed: bool = False,
    ) -> Any:
        """
        Make an API request.

        Args:
            method: HTTP method (GET, POST).
            endpoint: API endpoint.
            params: Request parameters.
            signed: Whether request requires signature.

        Returns:
            Parsed JSON response.

        Raises:
            BinanceAPIError: On API error response.
            BinanceNetworkError: On network errors, 429 or 5xx.
        """
        url = f"{self._base_url}{endpoint}"
        params = params or {}

        if signed:
            if self._signer is None or not self._api_key:
                raise BinanceClientError(f"{endpoint} requires API credentials")
            params = self._signer.create_signed_params(params)

        async with self._request_context() as session:
            if method == "GET":
                async with session.get(url, params=params) as response:
                    return await self._handle_response(response)
            elif method == "POST":
                async with session.post(url, data=params) as response:
                    return await self._handle_response(response)
            else:
                raise BinanceClientError(f"Unsupported method: {method}")

    async def _handle_response(self, response: aiohttp.ClientResponse) -> Any:
        """Parse and validate response."""
        text = await response.text()

        if response.status == 429 or response.status >= 500:
            raise BinanceNetworkError(
                f"HTTP {response.status}: {text[:200]}", code=response.status
            )

        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise BinanceClientError(f"Invalid JSON response: {e}") from e

        if response.status >= 400:
            code = data.get("code", response.status) if isinstance(data, dict) else response.status
            msg = data.get("msg", text) if isinstance(data, dict) else text
            raise BinanceAPIError(f"API error {code}: {msg}", code=code)

        return data

    # =========================================================================
    # Public Endpoints
    # =========================================================================

    async def get_exchange_info(self) -> ExchangeInfo:
        """
        Get exchange trading rules and symbol information.

        Note: This is a heavy request, use get_symbol() for cached rules.
        """
        data = await self._request("GET", ENDPOINT_EXCHANGE_INFO)
        return parse_response(ExchangeInfo, data)

    async def get_symbol(self, pair: str) -> SymbolData:
        """
        Get trading rules for a pair, loading exchange info once.

        Raises:
            BinanceClientError: If the pair is not listed.
        """
        if not self._symbols:
            async with self._symbols_lock:
                if not self._symbols:
                    info = await self.get_exchange_info()
                    self._symbols = {s.symbol: s for s in info.symbols}
                    logger.info(f"Loaded trading rules for {len(self._symbols)} symbols")

        symbol = self._symbols.get(pair)
        if symbol is None:
            raise BinanceClientError(f"Unknown symbol: {pair}")
        return symbol

    async def get_order_book(self, pair: str, depth: int = DEFAULT_BOOK_DEPTH) -> OrderBookSnapshot:
        """
        Get the current order book.

        Args:
            pair: Trading symbol, e.g. "ETHUSDT".
            depth: Number of levels per side.

        Returns:
            Snapshot with bids and asks best first.
        """
        data = await self._request("GET", ENDPOINT_DEPTH, {"symbol": pair, "limit": depth})
        depth_data = parse_response(DepthResponse, data)
        return OrderBookSnapshot(
            pair=pair,
            bids=depth_data.bid_levels(),
            asks=depth_data.ask_levels(),
            timestamp_us=get_timestamp_us(),
        )

    # =========================================================================
    # Account Endpoints (Signed)
    # =========================================================================

    async def get_account(self) -> AccountInfo:
        """Get account information including balances."""
        data = await self._request("GET", ENDPOINT_ACCOUNT, signed=True)
        return parse_response(AccountInfo, data)

    async def get_balance(self, currency: str) -> AccountBalance:
        """
        Get the balance for a specific asset.

        Args:
            currency: Asset symbol (e.g., "USDT").

        Returns:
            Available and total balance, zero when the asset is absent.
        """
        account = await self.get_account()
        entry = account.get_balance(currency)
        if entry is None:
            return AccountBalance(currency=currency, available=ZERO, total=ZERO)
        return AccountBalance(currency=currency, available=entry.free, total=entry.total)

    # =========================================================================
    # Order Endpoints (Signed)
    # =========================================================================

    async def place_market_order(self, pair: str, side: Side, amount: Decimal) -> str:
        """
        Place a market order.

        BUY spends amount of the quote asset (quoteOrderQty); SELL spends
        amount of the base asset (quantity, rounded down to the lot step).

        Args:
            pair: Trading symbol.
            side: Order side.
            amount: Amount of the currency being spent.

        Returns:
            Exchange order id.
        """
        symbol = await self.get_symbol(pair)
        params: dict[str, Any] = {
            "symbol": pair,
            "side": side.value,
            "type": "MARKET",
            "newOrderRespType": "FULL",
        }

        if side is Side.BUY:
            params["quoteOrderQty"] = format_amount(round_step(amount, symbol.quote_step))
        else:
            step = symbol.step_size
            quantity = round_step(amount, step) if step else amount
            params["quantity"] = format_amount(quantity)

        data = await self._request("POST", ENDPOINT_ORDER, params, signed=True)
        order = parse_response(OrderResponse, data)
        order_id = str(order.order_id)

        self._commissions[order_id] = (order.total_commission, order.commission_asset)
        if len(self._commissions) > MAX_TRACKED_COMMISSIONS:
            del self._commissions[next(iter(self._commissions))]
        logger.debug(
            f"Order {order_id} {side.value} {pair} status={order.status} "
            f"executed={order.executed_qty}"
        )
        return order_id

    async def get_order_status(self, pair: str, order_id: str) -> OrderStatusReport:
        """
        Query the state of an order.

        Args:
            pair: Trading symbol the order was placed on.
            order_id: Exchange order id.

        Returns:
            Status report with fill quantities and captured commission.
        """
        data = await self._request(
            "GET", ENDPOINT_ORDER, {"symbol": pair, "orderId": order_id}, signed=True
        )
        order = parse_response(QueryOrderResponse, data)
        fee, fee_currency = self._commissions.get(order_id, (ZERO, ""))
        status = map_order_status(order.status)

        if status is OrderStatus.FILLED or status.is_terminal_failure:
            self._commissions.pop(order_id, None)

        return OrderStatusReport(
            order_id=order_id,
            status=status,
            filled_qty=order.executed_qty,
            quote_qty=order.cummulative_quote_qty,
            avg_price=order.avg_price,
            fee=fee,
            fee_currency=fee_currency,
        )

    # =========================================================================
    # Context Manager
    # =========================================================================

    async def __aenter__(self) -> "BinanceClient":
        """Async context manager entry."""
        await self._get_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()
