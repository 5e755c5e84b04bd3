from __future__ import annotations

import math
from typing import Optional


def esc(s: str) -> str:
    # escapado mínimo para Markdown
    return (s or "").replace("\\", "\\\\").replace("_", "\\_").replace("*", "\\*").replace("`", "\\`").replace("[", "\\[").replace("]", "\\]")


def fmt(n: Optional[float]) -> str:
    if not n:
        return "0"
    if n >= 1e9:
        return f"{n / 1e9:.2f}B"
    if n >= 1e6:
        return f"{n / 1e6:.2f}M"
    if n >= 1e3:
        return f"{n / 1e3:.2f}K"
    return f"{n:.4f}"


def pct(n: float) -> str:
    return f"{'+' if n >= 0 else ''}{n:.2f}%"


def signed_sol(n: float) -> str:
    return f"🟢 +{n:.4f} SOL" if n >= 0 else f"🔴 {n:.4f} SOL"


def parse_positive(text: str | None) -> Optional[float]:
    """Float > 0 o None si el texto no vale."""
    try:
        value = float((text or "").strip().replace(",", "."))
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def parse_percent(text: str | None) -> Optional[float]:
    """Porcentaje en (0, 100]."""
    value = parse_positive(text)
    if value is None or value > 100:
        return None
    return value


def parse_optional_percent(text: str | None) -> tuple[bool, Optional[float]]:
    """
    Para TP/SL: '0' desactiva. Devuelve (ok, valor); valor None = desactivado.
    """
    try:
        value = float((text or "").strip().replace(",", "."))
    except ValueError:
        return False, None
    if not math.isfinite(value) or value < 0:
        return False, None
    return True, (value if value > 0 else None)
