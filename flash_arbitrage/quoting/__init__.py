"""Cross-DEX quote aggregation."""

from .aggregator import QuoteAggregator

__all__ = ["QuoteAggregator"]
