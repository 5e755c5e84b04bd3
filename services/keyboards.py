"""
Inline keyboards.

Controllers describe keyboards as rows of ``(text, callback_data)`` pairs so
they stay independent of the transport; ``to_markup`` turns them into
python-telegram-bot markup.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from utils.solana_utils import SWAP_TOKENS

Row = List[Tuple[str, str]]
Keyboard = List[Row]


def to_markup(keyboard: Optional[Keyboard]) -> Optional[InlineKeyboardMarkup]:
    if not keyboard:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(text, callback_data=data) for text, data in row] for row in keyboard
    ])


def _chunks(buttons: Sequence[Tuple[str, str]], size: int) -> Keyboard:
    return [list(buttons[i:i + size]) for i in range(0, len(buttons), size)]


def _num(v: float) -> str:
    return f"{v:g}"


def main_menu() -> Keyboard:
    return [
        [("💼 Wallet", "wallet"), ("📊 Posiciones", "positions")],
        [("🔍 Escanear token", "scan"), ("🔄 Swap", "swapmenu")],
        [("💹 PnL", "pnl"), ("📜 Historial", "history")],
        [("🔔 Alertas", "alerts"), ("👥 Copy trade", "copy")],
        [("⚙️ Ajustes", "settings"), ("🎁 Referidos", "referral")],
        [("❓ Ayuda", "help")],
    ]


def back(target: str = "menu") -> Keyboard:
    return [[("⬅️ Volver", target)]]


def cancel() -> Keyboard:
    return [[("✖️ Cancelar", "cancel")]]


def onboarding() -> Keyboard:
    return [[("✅ Acepto, crear wallet", "onboard:ok")], [("❌ No acepto", "onboard:no")]]


def wallet() -> Keyboard:
    return [
        [("💰 Saldo", "balance"), ("📥 Recibir", "receive")],
        [("📤 Enviar SOL", "sendsol"), ("🔄 Swap", "swapmenu")],
        [("⬅️ Volver", "menu")],
    ]


def token_buy(mint: str, amounts: Iterable[float]) -> Keyboard:
    quick = [(f"🟢 {_num(a)} SOL", f"buy:{mint}:{_num(a)}") for a in amounts]
    rows = _chunks(quick, 2)
    rows.append([("✏️ Cantidad", f"buyc:{mint}"), ("📊 % saldo", f"buyp:{mint}")])
    rows.append([("🎯 Con TP/SL", f"buyt:{mint}")])
    rows.append([("⬅️ Volver", "menu")])
    return rows


def token_sell(mint: str, percents: Iterable[float]) -> Keyboard:
    quick = [(f"🔴 {_num(p)}%", f"sell:{mint}:{_num(p)}") for p in percents]
    rows = _chunks(quick, 2)
    rows.append([("✏️ % personalizado", f"sellc:{mint}"), ("📤 Enviar", f"sendt:{mint}")])
    rows.append([("⬅️ Posiciones", "positions")])
    return rows


def positions(mints: Sequence[Tuple[str, str]]) -> Keyboard:
    rows: Keyboard = [[(f"💎 {symbol}", f"sellm:{mint}")] for mint, symbol in mints]
    rows.append([("⬅️ Volver", "menu")])
    return rows


def swap_from(tokens: Sequence[Tuple[str, str]]) -> Keyboard:
    rows: Keyboard = [[("◎ SOL", "swapf:sol")]]
    rows += [[(f"🪙 {symbol}", f"swapf:{mint}")] for mint, symbol in tokens]
    rows.append([("✖️ Cancelar", "cancel")])
    return rows


def swap_to(exclude: str) -> Keyboard:
    buttons = [(t["label"], f"swapt:{key}") for key, t in SWAP_TOKENS.items() if t["mint"] != exclude]
    rows = _chunks(buttons, 2)
    rows.append([("✏️ Otro mint", "swapt:custom")])
    rows.append([("✖️ Cancelar", "cancel")])
    return rows


def swap_amount() -> Keyboard:
    return [
        [("25%", "swapa:25"), ("50%", "swapa:50")],
        [("75%", "swapa:75"), ("100%", "swapa:100")],
        [("✏️ Cantidad", "swapa:custom")],
        [("✖️ Cancelar", "cancel")],
    ]


def alerts(items: Sequence[Tuple[str, str]]) -> Keyboard:
    rows: Keyboard = [[(f"🗑 {label}", f"alertdel:{alert_id}")] for alert_id, label in items]
    rows.append([("➕ Nueva alerta", "alertnew")])
    rows.append([("⬅️ Volver", "menu")])
    return rows


def copy_wallets(wallets: Sequence[str]) -> Keyboard:
    rows: Keyboard = [[(f"🗑 {w[:8]}...", f"copydel:{i}")] for i, w in enumerate(wallets)]
    rows.append([("➕ Añadir wallet", "copyadd")])
    rows.append([("⬅️ Volver", "menu")])
    return rows


def settings(s) -> Keyboard:
    tp = f"{_num(s.tp_percent)}%" if s.tp_percent else "off"
    sl = f"{_num(s.sl_percent)}%" if s.sl_percent else "off"
    return [
        [(f"📉 Slippage: {s.slippage_bps / 100:g}%", "set:slippage")],
        [(f"⚡ Priority fee: {_num(s.priority_fee_sol)} SOL", "set:priority")],
        [(f"🎯 Min score: {s.min_score}", "set:minscore")],
        [(f"💧 Min liquidez: ${_num(s.min_liquidity_usd)}", "set:minliq")],
        [(f"📈 TP: {tp} | 📉 SL: {sl}", "set:tpsl")],
        [("🟢 Compras rápidas", "set:quickbuy"), ("🔴 Ventas rápidas", "set:quicksell")],
        [("⬅️ Volver", "menu")],
    ]
