"""Exchange connectivity modules."""

from triarb.exchange.client import (
    BinanceAPIError,
    BinanceClient,
    BinanceClientError,
    BinanceNetworkError,
    BinanceResponseError,
)
from triarb.exchange.signer import RequestSigner


__all__ = [
    "BinanceAPIError",
    "BinanceClient",
    "BinanceClientError",
    "BinanceNetworkError",
    "BinanceResponseError",
    "RequestSigner",
]
