"""Strategy interface."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from ..datalake.schemas import MonitorSnapshot, StrategyOrder


class Strategy(Protocol):
    """Protocol implemented by all concrete strategies.

    ``generate`` must be pure: it reads the snapshot and its typed parameter
    model and returns candidate orders without touching shared state.
    """

    name: str

    def generate(self, snapshot: MonitorSnapshot, parameters: Any) -> Sequence[StrategyOrder]:
        """Produce candidate orders for one monitor snapshot."""


__all__ = ["Strategy"]
