"""Wallet address helpers."""

from __future__ import annotations

from solders.pubkey import Pubkey


def normalize_wallet_address(value: str) -> str:
    """Return the canonical base58 form of ``value``; raises ``ValueError`` if it is not a public key."""

    candidate = (value or "").strip()
    if not candidate:
        raise ValueError("Wallet address is required")
    try:
        return str(Pubkey.from_string(candidate))
    except ValueError as exc:
        raise ValueError(f"Invalid wallet address: {candidate}") from exc


__all__ = ["normalize_wallet_address"]
