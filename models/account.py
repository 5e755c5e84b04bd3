"""
Per-user state: settings, open positions, closed history and stats.

Accounts are created lazily the first time a user talks to the bot and are
never deleted. The whole structure is serialisable with ``model_dump`` so it
can be written to the snapshot store as JSON.
"""

from __future__ import annotations

import time
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_QUICK_BUY = [0.1, 0.5, 1.0, 5.0]
DEFAULT_QUICK_SELL = [25.0, 50.0, 75.0, 100.0]
MAX_COPY_WALLETS = 3


class Settings(BaseModel):
    slippage_bps: int = 100
    priority_fee_sol: float = 0.0005
    min_liquidity_usd: float = 5000.0
    min_score: int = 60
    quick_buy_amounts: List[float] = Field(default_factory=lambda: list(DEFAULT_QUICK_BUY))
    quick_sell_percents: List[float] = Field(default_factory=lambda: list(DEFAULT_QUICK_SELL))
    tp_percent: Optional[float] = None
    sl_percent: Optional[float] = None
    copy_wallets: List[str] = Field(default_factory=list)
    referral_code: str = ""
    referred_by: Optional[str] = None
    referral_count: int = 0


class Stats(BaseModel):
    total_trades: int = 0
    total_volume: float = 0.0
    total_pnl: float = 0.0
    wins: int = 0

    @property
    def win_rate(self) -> float:
        if not self.total_trades:
            return 0.0
        return self.wins / self.total_trades * 100.0


class Position(BaseModel):
    """Open holding of one mint. ``amount`` is in base units, ``sol_spent`` is cost."""

    mint: str
    symbol: str = ""
    name: str = ""
    entry_price: float = 0.0
    entry_price_native: float = 0.0
    amount: int = 0
    decimals: int = 0
    sol_spent: float = 0.0
    tp_percent: Optional[float] = None
    sl_percent: Optional[float] = None
    entry_time: float = Field(default_factory=time.time)

    @property
    def amount_ui(self) -> float:
        return self.amount / (10 ** self.decimals) if self.decimals else float(self.amount)


class HistoryRecord(Position):
    exit_time: float = Field(default_factory=time.time)
    pnl: float = 0.0


class Account(BaseModel):
    id: int
    chat_id: Optional[int] = None
    wallet_address: Optional[str] = None
    onboarded: bool = False
    settings: Settings = Field(default_factory=Settings)
    positions: Dict[str, Position] = Field(default_factory=dict)
    history: List[HistoryRecord] = Field(default_factory=list)
    stats: Stats = Field(default_factory=Stats)
    created_at: float = Field(default_factory=time.time)


def referral_code_for(user_id: int) -> str:
    """``RB`` + base36 of ``user_id % 100000``, upper case, padded to 5."""
    n = int(user_id) % 100000
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = digits[r] + out
        if n == 0:
            break
    return "RB" + out.rjust(5, "0")
