"""Shared constants for Solana tokens used by the autopilot."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


LAMPORTS_PER_SOL = 1_000_000_000

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCER1ZXS9dZxXn6vufGAaHo9dZYkTf5ZNVY"

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

# Symbol -> (mint, decimals) for tokens that never need a registry lookup.
WELL_KNOWN_TOKENS: dict[str, tuple[str, int]] = {
    "SOL": (SOL_MINT, 9),
    "USDC": (USDC_MINT, 6),
    "USDT": (USDT_MINT, 6),
}

STABLECOIN_SYMBOLS = frozenset({"USDC", "USDT"})

__all__ = [
    "utc_now",
    "LAMPORTS_PER_SOL",
    "SOL_MINT",
    "USDC_MINT",
    "USDT_MINT",
    "TOKEN_PROGRAM_ID",
    "WELL_KNOWN_TOKENS",
    "STABLECOIN_SYMBOLS",
]
