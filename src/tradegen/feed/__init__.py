"""Exchange price feed."""

from tradegen.feed.prices import PriceFeedClient, to_exchange_symbol

__all__ = ["PriceFeedClient", "to_exchange_symbol"]
