"""
Market and security data for a mint.

``TokenInfo`` is built from the most liquid Solana pair reported by
DexScreener; ``SecurityReport`` from the RugCheck summary.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class TokenInfo(BaseModel):
    mint: str
    pair_address: str = ""
    name: str = ""
    symbol: str = ""
    price_native: float = 0.0
    price_usd: float = 0.0
    liquidity_usd: float = 0.0
    volume_24h: float = 0.0
    price_change_1h: float = 0.0
    price_change_24h: float = 0.0
    market_cap: float = 0.0
    dex_id: str = ""
    url: str = ""

    @classmethod
    def from_dexscreener(cls, mint: str, raw: dict) -> "TokenInfo":
        base = raw.get("baseToken") or {}
        return cls(
            mint=mint,
            pair_address=raw.get("pairAddress", ""),
            name=base.get("name", ""),
            symbol=base.get("symbol", ""),
            price_native=float(raw.get("priceNative") or 0),
            price_usd=float(raw.get("priceUsd") or 0),
            liquidity_usd=float((raw.get("liquidity") or {}).get("usd") or 0),
            volume_24h=float((raw.get("volume") or {}).get("h24") or 0),
            price_change_1h=float((raw.get("priceChange") or {}).get("h1") or 0),
            price_change_24h=float((raw.get("priceChange") or {}).get("h24") or 0),
            market_cap=float(raw.get("marketCap") or raw.get("fdv") or 0),
            dex_id=raw.get("dexId", ""),
            url=raw.get("url", ""),
        )


class SecurityReport(BaseModel):
    score: int = 50
    grade: str = "UNKNOWN"
    risks: List[str] = Field(default_factory=list)
    known: bool = True

    @classmethod
    def unknown(cls) -> "SecurityReport":
        return cls(score=50, grade="UNKNOWN", risks=[], known=False)

    @staticmethod
    def grade_for(score: int) -> str:
        if score >= 80:
            return "SAFE"
        if score >= 60:
            return "MODERATE"
        return "RISKY"
