"""
Read-only views: menus, wallet, portfolio, positions, stats, history,
alerts, copy wallets, settings, referral and help.

Every view returns ``(text, keyboard)``; lookups that fail degrade to a
neutral value so a view never raises.
"""

from __future__ import annotations

import time
from typing import List, Optional, Tuple

from models.account import MAX_COPY_WALLETS, Account
from repositories.alert_repository import AlertRepository
from services import keyboards
from services.keyboards import Keyboard
from services.market_service import MarketService
from services.solana_service import SolanaService
from utils.errors import RpcError
from utils.formatting import esc, fmt, pct, signed_sol
from utils.log_config import logger_manager
from utils.solana_utils import explorer_account_url, short

logger = logger_manager.setup_logger(__name__)

View = Tuple[str, Keyboard]

HISTORY_LIMIT = 15


class MenuController:
    def __init__(self, solana: SolanaService, market: MarketService, alerts: AlertRepository,
                 bot_username: str = "") -> None:
        self.solana = solana
        self.market = market
        self.alerts = alerts
        self.bot_username = bot_username

    async def _balance(self, address: Optional[str]) -> Optional[float]:
        if not address:
            return None
        try:
            return await self.solana.get_balance_sol(address)
        except RpcError as e:
            logger.warning(f"saldo no disponible para {short(address)}: {e}")
            return None

    @staticmethod
    def _sol(balance: Optional[float]) -> str:
        return f"{balance:.4f} SOL" if balance is not None else "N/D"

    # ---------- menús ----------
    async def main(self, account: Account) -> View:
        balance = await self._balance(account.wallet_address)
        return (
            f"🚀 *Solana Trade Bot*\n\n"
            f"💳 `{account.wallet_address}`\n"
            f"💰 *{self._sol(balance)}*\n\n"
            f"Pega la dirección de un token o usa el menú.",
            keyboards.main_menu(),
        )

    def wallet(self, account: Account) -> View:
        return "💼 *Wallet*\n¿Qué quieres hacer?", keyboards.wallet()

    def receive(self, account: Account) -> View:
        return (
            f"📥 *Tu dirección de depósito*\n\n`{account.wallet_address}`\n\n"
            f"Envía SOL o tokens SPL a esta dirección.",
            keyboards.back("wallet"),
        )

    async def portfolio(self, account: Account) -> View:
        balance = await self._balance(account.wallet_address)
        try:
            tokens = await self.solana.get_token_balances(account.wallet_address)
        except RpcError as e:
            logger.warning(f"tokens no disponibles: {e}")
            tokens = []

        lines: List[str] = []
        for t in tokens[:15]:
            pos = account.positions.get(t["mint"])
            change = ""
            if pos and pos.entry_price_native > 0:
                price = await self.market.get_price_native(t["mint"])
                if price:
                    delta = (price - pos.entry_price_native) / pos.entry_price_native * 100
                    change = f" {'🟢' if delta >= 0 else '🔴'} {pct(delta)}"
            symbol = esc(pos.symbol) if pos and pos.symbol else short(t["mint"], 6)
            lines.append(f"• *{symbol}*: {t['ui_amount']:.4f}{change}")

        text = (
            f"💼 *Portfolio*\n"
            f"💳 `{short(account.wallet_address or '', 16)}`\n\n"
            f"◎ *SOL:* {self._sol(balance)}\n"
            f"━━━━━━━━━━━━━━\n"
            f"🪙 *Tokens:*\n"
            + ("\n".join(lines) if lines else "_Sin tokens_")
            + f"\n\n[🔗 Solscan]({explorer_account_url(account.wallet_address or '')})"
        )
        rows: Keyboard = [
            [(f"💸 Vender {p.symbol or short(m, 6)}", f"sellm:{m}"), ("📤 Enviar", f"sendt:{m}")]
            for m, p in list(account.positions.items())[:8]
        ]
        rows.append([("🔄 Swap", "swapmenu"), ("📤 Enviar SOL", "sendsol")])
        rows.append([("⬅️ Volver", "wallet")])
        return text, rows

    def swap_menu(self, account: Account) -> View:
        tokens = [(m, p.symbol or short(m, 6)) for m, p in list(account.positions.items())[:5]]
        return "💱 *Swap*\n\n¿Qué quieres cambiar?", keyboards.swap_from(tokens)

    # ---------- posiciones ----------
    async def positions(self, account: Account) -> View:
        positions = list(account.positions.values())
        if not positions:
            return "📊 Sin posiciones abiertas", keyboards.back()
        lines: List[str] = []
        for p in positions:
            price = await self.market.get_price_native(p.mint)
            change = ((price or 0) - p.entry_price_native) / p.entry_price_native * 100 \
                if p.entry_price_native > 0 and price else 0.0
            tpsl = ""
            if p.tp_percent or p.sl_percent:
                tpsl = f" [TP:{p.tp_percent or '—'}% SL:{p.sl_percent or '—'}%]"
            lines.append(f"*{esc(p.symbol or short(p.mint))}*: {pct(change)} | {p.sol_spent:.3f} SOL{tpsl}")
        return (
            f"📊 *Posiciones abiertas ({len(positions)})*\n\n" + "\n".join(lines),
            keyboards.positions([(p.mint, p.symbol or short(p.mint, 6)) for p in positions]),
        )

    def sell_menu(self, account: Account, mint: str) -> View:
        pos = account.positions.get(mint)
        symbol = esc(pos.symbol) if pos and pos.symbol else short(mint)
        detail = f"\nCantidad: {fmt(pos.amount_ui)} | Coste: {pos.sol_spent:.4f} SOL" if pos else ""
        return (
            f"💸 *Vender {symbol}*{detail}\nElige porcentaje:",
            keyboards.token_sell(mint, account.settings.quick_sell_percents),
        )

    def pnl(self, account: Account) -> View:
        s = account.stats
        return (
            f"📈 *Estadísticas*\n\n"
            f"📊 Trades: {s.total_trades}\n"
            f"💱 Volumen: {s.total_volume:.3f} SOL\n"
            f"{'🟢' if s.total_pnl >= 0 else '🔴'} PnL total: {s.total_pnl:+.4f} SOL\n"
            f"🏆 Win rate: {s.win_rate:.1f}%\n"
            f"🥇 Ganadas: {s.wins} | Perdidas: {s.total_trades - s.wins}",
            keyboards.back(),
        )

    def history(self, account: Account) -> View:
        if not account.history:
            return "📋 Sin historial todavía", keyboards.back()
        lines = []
        for i, h in enumerate(account.history[:HISTORY_LIMIT], start=1):
            day = time.strftime("%Y-%m-%d", time.localtime(h.exit_time))
            lines.append(f"{i}. *{esc(h.symbol or short(h.mint))}* {signed_sol(h.pnl)}\n   {day}")
        return "📋 *Historial*\n\n" + "\n\n".join(lines), keyboards.back()

    # ---------- alertas / copy ----------
    def alerts_view(self, account: Account, note: str = "") -> View:
        mine = self.alerts.list_for(account.id)
        items = [
            (a.id, f"{a.symbol or short(a.mint, 6)} {'📈' if a.direction.value == 'above' else '📉'} {a.target_price:.8g}")
            for a in mine
        ]
        suffix = f"\n\n{note}" if note else "\n\nPulsa una alerta para borrarla."
        return f"🔔 *Alertas de precio ({len(mine)})*{suffix}", keyboards.alerts(items)

    def copy_view(self, account: Account, note: str = "") -> View:
        wallets = account.settings.copy_wallets
        suffix = f"\n\n{note}" if note else "\n\nRecibirás un aviso cuando estas wallets operen."
        return f"👥 *Copy trading ({len(wallets)}/{MAX_COPY_WALLETS})*{suffix}", keyboards.copy_wallets(wallets)

    def settings(self, account: Account, note: str = "") -> View:
        header = f"{note}\n\n" if note else ""
        return f"{header}⚙️ *Ajustes*\nPulsa para cambiar:", keyboards.settings(account.settings)

    def referral(self, account: Account) -> View:
        code = account.settings.referral_code
        link = f"https://t.me/{self.bot_username}?start={code}" if self.bot_username else "N/D"
        return (
            f"🎁 *Referidos*\n\n"
            f"Tu código: `{code}`\n"
            f"Tu enlace: {link}\n\n"
            f"👥 Usuarios referidos: *{account.settings.referral_count}*",
            keyboards.back(),
        )

    @staticmethod
    def help() -> View:
        return (
            "❓ *Ayuda*\n\n"
            "*Trading:*\n"
            "• Pega la dirección de un token para escanearlo y comprar\n"
            "• Cantidades rápidas, personalizadas o % del saldo\n"
            "• Compra con TP/SL: se crean alertas automáticas\n\n"
            "*Wallet:*\n"
            "• Enviar SOL y tokens SPL\n"
            "• Swap entre cualquier par vía Jupiter\n\n"
            "*Alertas y copy trade:*\n"
            "• Alertas de precio (en SOL) sobre cualquier token\n"
            "• Sigue hasta 3 wallets\n\n"
            "*Seguridad:*\n"
            "• La clave privada solo se usa en memoria y se borra el mensaje\n"
            "• /cancel aborta cualquier acción\n\n"
            "⚠️ Nunca compartas tu clave privada con nadie.",
            keyboards.back(),
        )

    @staticmethod
    def disclaimer() -> View:
        return (
            "⚠️ *Lee esto antes de continuar*\n\n"
            "El bot generará una wallet de Solana para ti.\n\n"
            "🔑 La clave privada se muestra *una sola vez y no se guarda*. Si la pierdes, los fondos son irrecuperables.\n"
            "💸 El bot ejecuta *operaciones reales con dinero real*. Puedes perder fondos.\n"
            "🔒 Para firmar pegas tu clave en el chat; se usa solo en memoria y se descarta.\n\n"
            "¿Lo entiendes?",
            keyboards.onboarding(),
        )
