"""Multi-hop route search and gas costing."""

from .explorer import RouteExplorer
from .gas import GasCostModel

__all__ = ["GasCostModel", "RouteExplorer"]
