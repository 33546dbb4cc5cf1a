"""Retry policy shared by the HTTP and RPC gateway adapters."""

from __future__ import annotations

from typing import Type

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential


def build_retrying(attempts: int, *exceptions: Type[BaseException]) -> Retrying:
    """Exponential backoff capped at ten seconds, giving up after ``attempts`` calls.

    The last exception is re-raised unchanged so callers can map it to their own
    error types.
    """

    return Retrying(
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(attempts),
        retry=retry_if_exception_type(exceptions),
        reraise=True,
    )


__all__ = ["build_retrying"]
