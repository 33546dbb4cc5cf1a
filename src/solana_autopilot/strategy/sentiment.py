"""Sentiment-driven trading placeholder."""

from __future__ import annotations

from typing import List

from ..config.settings import SentimentParameters
from ..datalake.schemas import MonitorSnapshot, StrategyOrder
from .base import Strategy


class SentimentStrategy(Strategy):
    """Never trades: there is no sentiment data source to read from."""

    name = "sentiment"

    def generate(self, snapshot: MonitorSnapshot, parameters: SentimentParameters) -> List[StrategyOrder]:
        return []


__all__ = ["SentimentStrategy"]
