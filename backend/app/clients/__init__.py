"""Broker clients."""

from app.clients.capital_rest import CapitalRestClient, RateLimiter, parse_price_bar

__all__ = [
    "CapitalRestClient",
    "RateLimiter",
    "parse_price_bar",
]
