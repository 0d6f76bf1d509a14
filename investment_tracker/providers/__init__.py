"""External market data providers."""

from .alpha_vantage import AlphaVantageClient, AlphaVantageError, AlphaVantageRateLimitError

__all__ = ["AlphaVantageClient", "AlphaVantageError", "AlphaVantageRateLimitError"]
