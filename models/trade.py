"""
Trade intents, quotes, receipts and ledger fills.

An intent is everything the pipeline needs besides the signer. A receipt is
what the user sees once the transaction is confirmed.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from enums.fill_side import FillSide


class BuyIntent(BaseModel):
    mint: str
    amount_sol: float
    slippage_bps: int = 100
    priority_fee_sol: float = 0.0005
    tp_percent: Optional[float] = None
    sl_percent: Optional[float] = None


class SellIntent(BaseModel):
    mint: str
    percent: float
    slippage_bps: int = 100
    priority_fee_sol: float = 0.0005


class SwapIntent(BaseModel):
    input_mint: str
    output_mint: str
    output_symbol: str = ""
    # None => porcentaje del saldo
    amount_ui: Optional[float] = None
    percent: Optional[float] = None
    slippage_bps: int = 100
    priority_fee_sol: float = 0.0005


class SendIntent(BaseModel):
    destination: str
    amount_sol: float


class SendTokenIntent(BaseModel):
    mint: str
    destination: str
    amount_ui: float


class RouteQuote(BaseModel):
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    price_impact_pct: float = 0.0
    raw: Dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    signature: str
    explorer_url: str
    out_amount: float = 0.0
    realized_pnl: Optional[float] = None
    alerts_created: int = 0
    warnings: List[str] = Field(default_factory=list)


class Fill(BaseModel):
    """Confirmed change to apply to the ledger."""

    side: FillSide
    mint: str
    symbol: str = ""
    name: str = ""
    decimals: int = 0
    # buy: unidades base recibidas / sell: fracción vendida en (0, 1]
    amount: int = 0
    fraction: float = 0.0
    sol_amount: float = 0.0
    price_usd: float = 0.0
    price_native: float = 0.0
    tp_percent: Optional[float] = None
    sl_percent: Optional[float] = None


class FillResult(BaseModel):
    realized_pnl: Optional[float] = None
    closed: bool = False
    purged_alerts: int = 0
