"""
Small Solana helpers shared by services and controllers.

Address validation, lamport conversion, explorer links and the table of
well-known swap outputs.
"""

from __future__ import annotations

import math
import re

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9

# salidas conocidas del menú de swap
SWAP_TOKENS: dict[str, dict[str, str]] = {
    "usdc": {"mint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "symbol": "USDC", "label": "💵 USDC"},
    "usdt": {"mint": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", "symbol": "USDT", "label": "💵 USDT"},
    "sol": {"mint": SOL_MINT, "symbol": "SOL", "label": "◎ SOL"},
    "btc": {"mint": "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh", "symbol": "BTC", "label": "₿ BTC"},
    "eth": {"mint": "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs", "symbol": "ETH", "label": "Ξ ETH"},
}

_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_address(value: str | None) -> bool:
    """True if ``value`` looks like a base58 public key / mint."""
    return bool(value) and bool(_ADDRESS_RE.match(value.strip()))


def to_lamports(sol: float) -> int:
    return int(math.floor(sol * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int | float) -> float:
    return float(lamports) / LAMPORTS_PER_SOL


def to_raw(amount_ui: float, decimals: int) -> int:
    return int(math.floor(amount_ui * (10 ** decimals)))


def explorer_tx_url(signature: str) -> str:
    return f"https://solscan.io/tx/{signature}"


def explorer_account_url(address: str) -> str:
    return f"https://solscan.io/account/{address}"


def short(address: str, n: int = 8) -> str:
    return f"{address[:n]}..." if address and len(address) > n else (address or "")


# decimales de los mints conocidos (evita una consulta RPC)
KNOWN_DECIMALS: dict[str, int] = {
    SOL_MINT: SOL_DECIMALS,
    SWAP_TOKENS["usdc"]["mint"]: 6,
    SWAP_TOKENS["usdt"]["mint"]: 6,
    SWAP_TOKENS["btc"]["mint"]: 8,
    SWAP_TOKENS["eth"]["mint"]: 8,
}

# reservas que se dejan en la wallet para comisiones
BUY_RESERVE_SOL = 0.01
SEND_FEE_BUFFER_SOL = 0.001
SWAP_RESERVE_SOL = 0.002
