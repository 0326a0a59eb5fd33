"""
Exception hierarchy for the flash arbitrage engine.

Transient failures (``NetworkError``) are the only ones the retry combinator
retries. Everything else is either a deterministic failure or a negative
result that the caller turns into a rejected opportunity.
"""

from typing import Optional, Dict, Any


class FlashArbitrageError(Exception):
    """Base exception for all flash arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(FlashArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class ValidationError(FlashArbitrageError):
    """Raised when validation of data or an opportunity fails."""

    pass


class NetworkError(FlashArbitrageError):
    """Raised on timeouts, dropped connections and rate limiting."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class RpcError(FlashArbitrageError):
    """Raised when a node answers with a deterministic JSON-RPC error."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.code = code
        self.endpoint = endpoint


class NonceOrGasConflict(FlashArbitrageError):
    """Raised when a node rejects a transaction for nonce or fee reasons."""

    pass


class ProtocolDecodeError(FlashArbitrageError):
    """Raised when calldata does not match the expected router dialect."""

    def __init__(
        self,
        message: str,
        selector: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.selector = selector


class SimulationFailure(FlashArbitrageError):
    """Raised when the simulation service reports a reverted bundle."""

    def __init__(
        self,
        message: str,
        gas_used: Optional[int] = None,
        simulation_url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.gas_used = gas_used
        self.simulation_url = simulation_url


class InsufficientProfit(FlashArbitrageError):
    """Raised when the re-derived profit does not clear the threshold."""

    def __init__(
        self,
        message: str,
        expected: Optional[int] = None,
        threshold: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.expected = expected
        self.threshold = threshold


class CircuitOpenError(FlashArbitrageError):
    """Raised instead of invoking an operation whose breaker is open."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation
        self.retry_after = retry_after


class RateLimitExceeded(FlashArbitrageError):
    """Raised when an operation has used up its window budget."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation


class ConstructionError(FlashArbitrageError):
    """Raised when a bundle cannot be assembled from a route."""

    def __init__(
        self,
        message: str,
        dex: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.dex = dex
