"""Market data access and price distribution."""

from triarb.market.distribution import PriceDistributor, Subscriber, SubscriberRegistry
from triarb.market.gateway import MarketDataGateway, RetryPolicy, retry_read


__all__ = [
    "MarketDataGateway",
    "PriceDistributor",
    "RetryPolicy",
    "Subscriber",
    "SubscriberRegistry",
    "retry_read",
]
