"""Data source clients."""

from chainwatch.clients.onchain_rest import OnChainClient, RateLimiter

__all__ = [
    "OnChainClient",
    "RateLimiter",
]
