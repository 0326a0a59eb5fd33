"""Connection layer: resilient JSON-RPC, reconnecting subscriptions, retry."""

from .retry import RetryPolicy, with_retry
from .rpc_client import HealthStatus, ResilientRpcClient
from .subscription import ReconnectingSubscription

__all__ = [
    "HealthStatus",
    "ReconnectingSubscription",
    "ResilientRpcClient",
    "RetryPolicy",
    "with_retry",
]
