"""Exception taxonomy shared by the gateways, executor, and orchestrator."""

from __future__ import annotations


class AutopilotError(Exception):
    """Base class for autopilot failures."""


class UpstreamError(AutopilotError):
    """A gateway could not be reached or returned a malformed payload."""

    def __init__(self, message: str, *, source: str = "gateway") -> None:
        super().__init__(message)
        self.source = source


class OrderValidationError(AutopilotError):
    """A candidate order is structurally invalid for the current portfolio."""


class ExecutionFailure(AutopilotError):
    """The order gateway rejected or could not prepare an order."""


class TokenNotFoundError(ExecutionFailure):
    """A token symbol could not be resolved to a mint."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Token not found: {symbol}")
        self.symbol = symbol


__all__ = [
    "AutopilotError",
    "UpstreamError",
    "OrderValidationError",
    "ExecutionFailure",
    "TokenNotFoundError",
]
