from __future__ import annotations

from enum import Enum


class FillSide(str, Enum):
    """Direction of a confirmed fill applied to the ledger."""

    BUY = "buy"
    SELL = "sell"
