"""Mock implementations for testing."""

from tests.mocks.exchange import MockExchangeClient, make_book
from tests.mocks.journal import FullDiskJournal
from tests.mocks.subscriber import MockSubscriber


__all__ = [
    "FullDiskJournal",
    "MockExchangeClient",
    "MockSubscriber",
    "make_book",
]
