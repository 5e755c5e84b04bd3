from __future__ import annotations

from enum import Enum


class AlertDirection(str, Enum):
    ABOVE = "above"
    BELOW = "below"


class AlertKind(str, Enum):
    TAKE_PROFIT = "tp"
    STOP_LOSS = "sl"
    MANUAL = "manual"
