"""
Price alert. Targets are denominated in SOL (native price).
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from enums.alert_type import AlertDirection, AlertKind


class Alert(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    account_id: int
    chat_id: Optional[int] = None
    mint: str
    symbol: str = ""
    target_price: float
    direction: AlertDirection
    kind: AlertKind = AlertKind.MANUAL
    created_price: float = 0.0

    def triggered(self, price: float) -> bool:
        if self.direction == AlertDirection.ABOVE:
            return price >= self.target_price
        return price <= self.target_price


def direction_for(target: float, reference: float) -> AlertDirection:
    return AlertDirection.ABOVE if target > reference else AlertDirection.BELOW


def tp_sl_alerts(account_id: int, chat_id: Optional[int], mint: str, symbol: str,
                 entry_native: float, tp_percent: Optional[float],
                 sl_percent: Optional[float]) -> List[Alert]:
    """TP/SL alerts for a fresh buy. Nothing is created without an entry price."""
    if entry_native <= 0:
        return []
    alerts: List[Alert] = []
    if tp_percent:
        alerts.append(Alert(
            account_id=account_id, chat_id=chat_id, mint=mint, symbol=symbol,
            target_price=entry_native * (1 + tp_percent / 100.0),
            direction=AlertDirection.ABOVE, kind=AlertKind.TAKE_PROFIT,
            created_price=entry_native,
        ))
    if sl_percent:
        alerts.append(Alert(
            account_id=account_id, chat_id=chat_id, mint=mint, symbol=symbol,
            target_price=entry_native * (1 - sl_percent / 100.0),
            direction=AlertDirection.BELOW, kind=AlertKind.STOP_LOSS,
            created_price=entry_native,
        ))
    return alerts
