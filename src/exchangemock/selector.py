"""
ExchangeMock Response Selector

Picks the response of an exchange's sequence for the current request.
"""

from typing import Tuple

from .models import MockResponse, NetworkExchange
from .tracker import RequestTracker


def response_index(count: int, total: int) -> int:
    """Index into a sequence of `total` responses for the `count`-th request (clamped)."""
    return min(count, total - 1)


def select_response(exchange: NetworkExchange, tracker: RequestTracker) -> Tuple[MockResponse, int]:
    """
    Select the response to serve and record the invocation.

    The first len(responses) requests walk the sequence in order; every
    later request gets the last response.

    Args:
        exchange: Declared exchange that matched the request
        tracker: Request tracker owned by the running server

    Returns:
        Tuple of (selected response, updated invocation count)
    """
    count = tracker.next_count(exchange.identity)
    index = response_index(count, len(exchange.responses))
    return exchange.responses[index], count + 1
