"""
Conversation state machine.

Every inbound event (text or button) goes through ``handle_input``:

1. ``/cancel`` or the ``cancel`` button always clears the pending step.
2. Commands (``/start``, ``/menu``, ``/help``) and buttons drive menus and
   open flows.
3. With a pending step, the text is validated by that step's handler. An
   invalid value either re-prompts (state kept) or aborts (state cleared),
   depending on the step. A valid value advances along ``NEXT_STEP`` or
   finishes the flow.
4. Without a pending step, text shaped like a mint triggers a scan; anything
   else is ignored.

Secret steps are terminal: the pending state is cleared before the secret is
even decoded, the user's message is deleted, and the trade runs under the
account lock so only one trade per account is in flight.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Tuple

from controllers.menu_controller import MenuController
from controllers.trade_controller import TradeController
from enums.conversation_step import ConversationStep as Step
from models.account import MAX_COPY_WALLETS, Account
from models.alert import Alert, direction_for
from models.pending_state import PendingState
from models.trade import BuyIntent, Receipt, SellIntent, SendIntent, SendTokenIntent, SwapIntent
from repositories.account_repository import AccountRepository
from repositories.alert_repository import AlertRepository
from repositories.pending_repository import PendingRepository
from services import keyboards
from services.keyboards import Keyboard
from services.market_service import MarketService
from services.secret_service import ScopedSecret, Signer, acquire_signer, generate_wallet
from services.security_service import SecurityService
from services.solana_service import SolanaService
from services.telegram_service import TelegramService
from utils.errors import BotError, ConfirmTimeout, SecretError, TradeInProgress
from utils.formatting import esc, fmt, parse_optional_percent, parse_percent, parse_positive, pct, signed_sol
from utils.log_config import logger_manager
from utils.solana_utils import (
    BUY_RESERVE_SOL,
    SEND_FEE_BUFFER_SOL,
    SOL_MINT,
    SWAP_RESERVE_SOL,
    SWAP_TOKENS,
    explorer_tx_url,
    is_address,
    short,
)

logger = logger_manager.setup_logger(__name__)


class Advance(NamedTuple):
    """Move to ``step`` (or the chained one) with ``data`` merged into the pending state."""

    data: Dict[str, Any]
    step: Optional[Step] = None


class _Invalid(Exception):
    """Input rejected by a step validator."""


# encadenamientos explícitos de pasos
NEXT_STEP: Dict[Step, Step] = {
    Step.BUY_CUSTOM_AMOUNT: Step.SECRET_FOR_BUY,
    Step.BUY_PERCENT_OF_BALANCE: Step.SECRET_FOR_BUY,
    Step.TP_AMOUNT: Step.TP_VALUE,
    Step.TP_VALUE: Step.SL_VALUE,
    Step.SL_VALUE: Step.SECRET_FOR_BUY,
    Step.SELL_CUSTOM_PERCENT: Step.SECRET_FOR_SELL,
    Step.SEND_DESTINATION: Step.SEND_AMOUNT,
    Step.SEND_AMOUNT: Step.SECRET_FOR_SEND,
    Step.SWAP_CUSTOM_OUTPUT: Step.SWAP_AMOUNT_SELECTION,
    Step.SWAP_CUSTOM_AMOUNT: Step.SECRET_FOR_SWAP,
    Step.SEND_TOKEN_DESTINATION: Step.SEND_TOKEN_AMOUNT,
    Step.SEND_TOKEN_AMOUNT: Step.SECRET_FOR_SEND_TOKEN,
    Step.ALERT_ASSET: Step.ALERT_TARGET_PRICE,
}

# ajustes encadenados: tras fijar TP se pide SL
SETTING_CHAIN: Dict[str, str] = {"tp": "sl"}

# pasos que ante un valor inválido vuelven a preguntar en vez de abortar
REPROMPT_ON_INVALID = {
    Step.TP_AMOUNT,
    Step.TP_VALUE,
    Step.SL_VALUE,
    Step.SEND_DESTINATION,
    Step.SWAP_CUSTOM_OUTPUT,
    Step.SEND_TOKEN_DESTINATION,
    Step.ALERT_ASSET,
}

KEY_PROMPT = (
    "🔑 *Pega tu clave privada para firmar*\n\n"
    "Se usa solo en memoria y nunca se guarda. El mensaje se borrará. /cancel para abortar."
)


class SettingRule(NamedTuple):
    field: str
    label: str
    prompt: str
    parse: Callable[[str], Any]


def _number(text: str) -> float:
    try:
        value = float((text or "").strip().replace(",", "."))
    except ValueError:
        raise _Invalid("❌ Valor inválido") from None
    if not math.isfinite(value):
        raise _Invalid("❌ Valor inválido")
    return value


def _parse_slippage(text: str) -> int:
    value = _number(text)
    if not 0.1 <= value <= 50:
        raise _Invalid("❌ Slippage entre 0.1 y 50 %")
    return int(round(value * 100))


def _parse_non_negative(text: str) -> float:
    value = _number(text)
    if value < 0:
        raise _Invalid("❌ Debe ser ≥ 0")
    return value


def _parse_score(text: str) -> int:
    value = _number(text)
    if not 0 <= value <= 100:
        raise _Invalid("❌ Score entre 0 y 100")
    return int(value)


def _parse_tp_sl(text: str) -> Optional[float]:
    value = _number(text)
    return value if value > 0 else None


def _parse_sl(text: str) -> Optional[float]:
    value = _parse_tp_sl(text)
    if value is not None and value >= 100:
        raise _Invalid("❌ SL entre 0 y 99 %")
    return value


def _parse_list(text: str, item: Callable[[str], Optional[float]]) -> List[float]:
    parts = [p for p in (text or "").replace(";", " ").replace(",", " ").split() if p]
    values = [item(p) for p in parts]
    if not 1 <= len(values) <= 6 or any(v is None for v in values):
        raise _Invalid("❌ Lista inválida (1 a 6 valores separados por espacios)")
    return [float(v) for v in values]


SETTINGS: Dict[str, SettingRule] = {
    "slippage": SettingRule("slippage_bps", "Slippage", "📉 Slippage % (actual: {slippage}%)\nEjemplo: 1.5", _parse_slippage),
    "priority": SettingRule("priority_fee_sol", "Priority fee", "⚡ Priority fee en SOL (actual: {priority})\nEjemplo: 0.001", _parse_non_negative),
    "minscore": SettingRule("min_score", "Score mínimo", "🎯 Score mínimo 0–100 (actual: {minscore})", _parse_score),
    "minliq": SettingRule("min_liquidity_usd", "Liquidez mínima", "💧 Liquidez mínima en USD (actual: {minliq})\nEjemplo: 10000", _parse_non_negative),
    "tp": SettingRule("tp_percent", "Take profit", "🎯 TP % por defecto (100 = 2x, 0 para desactivar):", _parse_tp_sl),
    "sl": SettingRule("sl_percent", "Stop loss", "🛑 SL % por defecto (0 para desactivar):", _parse_sl),
    "quickbuy": SettingRule("quick_buy_amounts", "Compras rápidas", "🟢 Cantidades SOL separadas por espacios\nEjemplo: 0.1 0.5 1 5",
                            lambda t: _parse_list(t, parse_positive)),
    "quicksell": SettingRule("quick_sell_percents", "Ventas rápidas", "🔴 Porcentajes separados por espacios\nEjemplo: 25 50 75 100",
                             lambda t: _parse_list(t, parse_percent)),
}


class ConversationController:
    def __init__(
        self,
        accounts: AccountRepository,
        pending: PendingRepository,
        alerts: AlertRepository,
        trades: TradeController,
        menus: MenuController,
        telegram: TelegramService,
        solana: SolanaService,
        market: MarketService,
        security: SecurityService,
        persist: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        self.accounts = accounts
        self.pending = pending
        self.alerts = alerts
        self.trades = trades
        self.menus = menus
        self.telegram = telegram
        self.solana = solana
        self.market = market
        self.security = security
        self._persist = persist

        self._text_steps: Dict[Step, Callable[[Account, int, str, Dict[str, Any]], Awaitable[Optional[Advance]]]] = {
            Step.SCAN_ADDRESS: self._step_scan_address,
            Step.BUY_CUSTOM_AMOUNT: self._step_buy_amount,
            Step.BUY_PERCENT_OF_BALANCE: self._step_buy_percent,
            Step.TP_AMOUNT: self._step_tp_amount,
            Step.TP_VALUE: self._step_tp_value,
            Step.SL_VALUE: self._step_sl_value,
            Step.SELL_CUSTOM_PERCENT: self._step_sell_percent,
            Step.SEND_DESTINATION: self._step_destination,
            Step.SEND_AMOUNT: self._step_send_amount,
            Step.SWAP_CUSTOM_OUTPUT: self._step_swap_custom_output,
            Step.SWAP_CUSTOM_AMOUNT: self._step_swap_custom_amount,
            Step.SEND_TOKEN_DESTINATION: self._step_destination,
            Step.SEND_TOKEN_AMOUNT: self._step_send_token_amount,
            Step.ALERT_ASSET: self._step_alert_asset,
            Step.ALERT_TARGET_PRICE: self._step_alert_price,
            Step.COPY_WALLET_ADDRESS: self._step_copy_wallet,
            Step.SETTING_VALUE: self._step_setting,
        }
        self._executors: Dict[Step, Tuple[Callable[..., Awaitable[Receipt]], Callable[[Account, Dict[str, Any]], Any], str]] = {
            Step.SECRET_FOR_BUY: (self.trades.execute_buy, self._buy_intent, "⏳ Comprando... (10–30s)"),
            Step.SECRET_FOR_SELL: (self.trades.execute_sell, self._sell_intent, "⏳ Vendiendo... (10–30s)"),
            Step.SECRET_FOR_SWAP: (self.trades.execute_swap, self._swap_intent, "⏳ Haciendo swap... (10–30s)"),
            Step.SECRET_FOR_SEND: (self.trades.execute_send, self._send_intent, "⏳ Enviando SOL..."),
            Step.SECRET_FOR_SEND_TOKEN: (self.trades.execute_send_token, self._send_token_intent, "⏳ Enviando token..."),
        }

    # ------------------------------------------------------------------
    # entrada
    # ------------------------------------------------------------------
    async def handle_input(self, account_id: int, chat_id: int, text: Optional[str] = None,
                           callback: Optional[str] = None, message_id: Optional[int] = None) -> None:
        account = self.accounts.update(account_id, lambda acc: self._touch(acc, chat_id))
        text = (text or "").strip()

        if callback == "cancel" or text.split(" ")[0] == "/cancel":
            await self.cancel(account_id, chat_id)
            return

        if callback is not None:
            await self._on_callback(account, chat_id, callback, message_id)
            return

        if text.startswith("/"):
            await self._on_command(account, chat_id, text)
            return

        state = self.pending.get(account_id)
        if state is not None:
            await self._on_step(account, chat_id, text, message_id, state)
            return

        if is_address(text):
            if not account.onboarded:
                await self._send_view(chat_id, self.menus.disclaimer())
                return
            await self.scan(account, chat_id, text)

    @staticmethod
    def _touch(account: Account, chat_id: int) -> Account:
        account.chat_id = chat_id
        return account

    async def cancel(self, account_id: int, chat_id: int) -> None:
        self.pending.clear(account_id)
        await self.telegram.send(chat_id, "❌ Cancelado", keyboards.main_menu())

    # ------------------------------------------------------------------
    # comandos
    # ------------------------------------------------------------------
    async def _on_command(self, account: Account, chat_id: int, text: str) -> None:
        parts = text.split()
        command = parts[0].split("@")[0].lower()
        if command == "/start":
            self.pending.clear(account.id)
            await self.start(account, chat_id, parts[1] if len(parts) > 1 else None)
        elif command == "/menu":
            self.pending.clear(account.id)
            if not account.onboarded:
                await self._send_view(chat_id, self.menus.disclaimer())
                return
            await self._send_view(chat_id, await self.menus.main(account))
        elif command == "/help":
            await self._send_view(chat_id, self.menus.help())

    async def start(self, account: Account, chat_id: int, referral_code: Optional[str] = None) -> None:
        if not account.onboarded:
            if referral_code:
                self._remember_referral(account, referral_code)
            await self._send_view(chat_id, self.menus.disclaimer())
            return
        await self._send_view(chat_id, await self.menus.main(account))

    def _remember_referral(self, account: Account, code: str) -> None:
        code = code.strip().upper()
        if account.settings.referred_by or code == account.settings.referral_code:
            return
        if self.accounts.find_by_referral_code(code) is None:
            logger.info(f"código de referido desconocido: {code}")
            return
        account.settings.referred_by = code

    async def onboard(self, account: Account, chat_id: int) -> None:
        if account.onboarded:
            # nunca regenerar: dejaría fondos en una wallet huérfana
            await self._send_view(chat_id, await self.menus.main(account))
            return
        address, secret = generate_wallet()

        def _register(acc: Account) -> None:
            acc.wallet_address = address
            acc.onboarded = True

        self.accounts.update(account.id, _register)
        if account.settings.referred_by:
            referrer = self.accounts.find_by_referral_code(account.settings.referred_by)
            if referrer is not None and referrer.id != account.id:
                self.accounts.update(referrer.id, self._credit_referral)
        await self._save()
        logger.info(f"🆕 wallet registrada para {account.id}: {short(address)}")

        await self.telegram.send(
            chat_id,
            f"✅ *¡Wallet creada!*\n\n"
            f"📬 Dirección:\n`{address}`\n\n"
            f"🔑 *Clave privada (se muestra una sola vez, guárdala ya):*\n`{secret}`\n\n"
            f"⚠️ Guárdala offline. No se almacena en ningún sitio.\n\n"
            f"Envía SOL a tu wallet y pega la dirección de un token para empezar.",
            keyboards.main_menu(),
        )
        del secret

    @staticmethod
    def _credit_referral(acc: Account) -> None:
        acc.settings.referral_count += 1

    # ------------------------------------------------------------------
    # botones
    # ------------------------------------------------------------------
    async def _on_callback(self, account: Account, chat_id: int, data: str, message_id: Optional[int]) -> None:
        action, _, arg = data.partition(":")

        if action == "onboard":
            if arg == "ok":
                await self.onboard(account, chat_id)
            else:
                await self.telegram.send(chat_id, "❌ Envía /start para intentarlo de nuevo.")
            return

        if not account.onboarded:
            await self._send_view(chat_id, self.menus.disclaimer())
            return

        # los pasos de selección del swap consumen sus propios botones
        state = self.pending.get(account.id)
        if action == "swapt":
            if state is not None and state.step == Step.SWAP_OUTPUT_SELECTION:
                await self._select_swap_output(account, chat_id, arg, state)
            return
        if action == "swapa":
            if state is not None and state.step == Step.SWAP_AMOUNT_SELECTION:
                await self._select_swap_amount(account, chat_id, arg, state)
            return

        # cualquier otro botón abandona el flujo en curso
        self.pending.clear(account.id)

        views: Dict[str, Callable[[], Any]] = {
            "menu": lambda: self.menus.main(account),
            "wallet": lambda: self.menus.wallet(account),
            "balance": lambda: self.menus.portfolio(account),
            "receive": lambda: self.menus.receive(account),
            "swapmenu": lambda: self.menus.swap_menu(account),
            "positions": lambda: self.menus.positions(account),
            "pnl": lambda: self.menus.pnl(account),
            "history": lambda: self.menus.history(account),
            "alerts": lambda: self.menus.alerts_view(account),
            "copy": lambda: self.menus.copy_view(account),
            "settings": lambda: self.menus.settings(account),
            "referral": lambda: self.menus.referral(account),
            "help": lambda: self.menus.help(),
        }
        if action in views:
            view = views[action]()
            if asyncio.iscoroutine(view):
                view = await view
            await self._show(chat_id, message_id, view)
            return

        if action == "scan":
            await self._enter(account, chat_id, Step.SCAN_ADDRESS)
        elif action == "buy":
            mint, _, amount_txt = arg.rpartition(":")
            amount = parse_positive(amount_txt)
            if not is_address(mint) or amount is None:
                return
            await self._enter(account, chat_id, Step.SECRET_FOR_BUY, self._buy_data(account, mint, amount))
        elif action == "buyc" and is_address(arg):
            await self._enter(account, chat_id, Step.BUY_CUSTOM_AMOUNT, {"mint": arg})
        elif action == "buyp" and is_address(arg):
            await self._enter(account, chat_id, Step.BUY_PERCENT_OF_BALANCE, {"mint": arg})
        elif action == "buyt" and is_address(arg):
            await self._enter(account, chat_id, Step.TP_AMOUNT, {"mint": arg})
        elif action == "sellm" and is_address(arg):
            await self._show(chat_id, message_id, self.menus.sell_menu(account, arg))
        elif action == "sell":
            mint, _, pct_txt = arg.rpartition(":")
            percent = parse_percent(pct_txt)
            if not is_address(mint) or percent is None:
                return
            await self._enter(account, chat_id, Step.SECRET_FOR_SELL, {"mint": mint, "percent": percent})
        elif action == "sellc" and is_address(arg):
            await self._enter(account, chat_id, Step.SELL_CUSTOM_PERCENT, {"mint": arg})
        elif action == "sendsol":
            await self._enter(account, chat_id, Step.SEND_DESTINATION)
        elif action == "sendt" and is_address(arg):
            await self._enter(account, chat_id, Step.SEND_TOKEN_DESTINATION,
                              {"mint": arg, "symbol": self._symbol(account, arg)})
        elif action == "swapf":
            from_mint = SOL_MINT if arg == "sol" else arg
            if not is_address(from_mint):
                return
            await self._enter(account, chat_id, Step.SWAP_OUTPUT_SELECTION,
                              {"from_mint": from_mint, "from_symbol": self._symbol(account, from_mint)})
        elif action == "alertnew":
            await self._enter(account, chat_id, Step.ALERT_ASSET)
        elif action == "alertdel":
            removed = self.alerts.remove(account.id, arg)
            if removed:
                await self._save()
            await self._show(chat_id, message_id,
                             self.menus.alerts_view(account, "Alerta eliminada." if removed else "La alerta ya no existe."))
        elif action == "copyadd":
            if len(account.settings.copy_wallets) >= MAX_COPY_WALLETS:
                await self.telegram.send(chat_id, f"❌ Máximo {MAX_COPY_WALLETS} wallets", keyboards.back("copy"))
                return
            await self._enter(account, chat_id, Step.COPY_WALLET_ADDRESS)
        elif action == "copydel":
            removed = self.accounts.update(account.id, lambda acc: self._remove_copy_wallet(acc, arg))
            if removed:
                await self._save()
            await self._show(chat_id, message_id, self.menus.copy_view(account, "Wallet eliminada." if removed else ""))
        elif action == "set":
            key = "tp" if arg == "tpsl" else arg
            if key in SETTINGS:
                await self._enter(account, chat_id, Step.SETTING_VALUE, {"key": key})
        else:
            logger.debug(f"callback desconocido: {data}")

    @staticmethod
    def _remove_copy_wallet(account: Account, index: str) -> bool:
        try:
            i = int(index)
        except ValueError:
            return False
        wallets = account.settings.copy_wallets
        if not 0 <= i < len(wallets):
            return False
        wallets.pop(i)
        return True

    # ------------------------------------------------------------------
    # pasos de texto
    # ------------------------------------------------------------------
    async def _on_step(self, account: Account, chat_id: int, text: str, message_id: Optional[int],
                       state: PendingState) -> None:
        step = state.step
        if step.is_secret:
            await self._on_secret(account, chat_id, text, message_id, state)
            return

        handler = self._text_steps.get(step)
        if handler is None:
            # pasos que solo aceptan botones
            await self.telegram.send(chat_id, "👆 Usa los botones o /cancel", keyboards.cancel())
            return

        chained = step in NEXT_STEP
        if not chained:
            # paso final: se libera antes de actuar
            self.pending.clear(account.id)
        try:
            result = await handler(account, chat_id, text, dict(state.data))
        except _Invalid as e:
            if step in REPROMPT_ON_INVALID:
                await self.telegram.send(chat_id, f"{e}. Inténtalo de nuevo o /cancel", keyboards.cancel())
            else:
                self.pending.clear(account.id)
                await self.telegram.send(chat_id, str(e), keyboards.main_menu())
            return
        except BotError as e:
            self.pending.clear(account.id)
            await self.telegram.send(chat_id, e.user_message, keyboards.main_menu())
            return

        if result is None:
            self.pending.clear(account.id)
            return
        next_step = result.step or NEXT_STEP[step]
        await self._enter(account, chat_id, next_step, {**state.data, **result.data})

    async def _step_scan_address(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> None:
        if not is_address(text):
            raise _Invalid("❌ Dirección inválida")
        await self.scan(account, chat_id, text)

    async def _step_buy_amount(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        amount = parse_positive(text)
        if amount is None:
            raise _Invalid("❌ Cantidad inválida")
        return Advance(self._buy_data(account, data["mint"], amount))

    async def _step_buy_percent(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        percent = parse_percent(text)
        if percent is None:
            raise _Invalid("❌ Introduce un valor entre 1 y 100")
        balance = await self.solana.get_balance_sol(account.wallet_address)
        amount = round(balance * percent / 100 - BUY_RESERVE_SOL, 4)
        if amount <= 0:
            raise _Invalid(f"❌ Saldo insuficiente ({balance:.4f} SOL)")
        return Advance(self._buy_data(account, data["mint"], amount))

    async def _step_tp_amount(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        amount = parse_positive(text)
        if amount is None:
            raise _Invalid("❌ Cantidad inválida")
        return Advance({"amount": amount})

    async def _step_tp_value(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        ok, value = parse_optional_percent(text)
        if not ok:
            raise _Invalid("❌ Porcentaje inválido")
        return Advance({"tp": value})

    async def _step_sl_value(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        ok, value = parse_optional_percent(text)
        if not ok or (value is not None and value >= 100):
            raise _Invalid("❌ Porcentaje inválido (0 a 99)")
        return Advance({"sl": value})

    async def _step_sell_percent(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        percent = parse_percent(text)
        if percent is None:
            raise _Invalid("❌ Introduce un valor entre 1 y 100")
        return Advance({"percent": percent})

    async def _step_destination(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        if not is_address(text):
            raise _Invalid("❌ Dirección inválida")
        if text == account.wallet_address:
            raise _Invalid("❌ Es tu propia wallet")
        return Advance({"destination": text})

    async def _step_send_amount(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        amount = parse_positive(text)
        if amount is None:
            raise _Invalid("❌ Cantidad inválida")
        balance = await self.solana.get_balance_sol(account.wallet_address)
        if balance < amount + SEND_FEE_BUFFER_SOL:
            raise _Invalid(f"❌ Saldo insuficiente ({balance:.4f} SOL)")
        return Advance({"amount": amount})

    async def _step_swap_custom_output(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        if not is_address(text) or text == data.get("from_mint"):
            raise _Invalid("❌ Mint inválido")
        info = await self.market.get_token_info(text)
        symbol = info.symbol if info and info.symbol else short(text)
        return Advance({"to_mint": text, "to_symbol": symbol})

    async def _step_swap_custom_amount(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        amount = parse_positive(text)
        if amount is None:
            raise _Invalid("❌ Cantidad inválida. /cancel para abortar")
        return Advance({"amount": amount, "percent": None})

    async def _step_send_token_amount(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        amount = parse_positive(text)
        if amount is None:
            raise _Invalid("❌ Cantidad inválida")
        return Advance({"amount": amount})

    async def _step_alert_asset(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Advance:
        if not is_address(text):
            raise _Invalid("❌ Mint inválido")
        info = await self.market.get_token_info(text)
        if info is None or info.price_native <= 0:
            raise _Invalid("❌ Token no encontrado")
        return Advance({"mint": text, "symbol": info.symbol, "current": info.price_native})

    async def _step_alert_price(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> None:
        target = parse_positive(text)
        if target is None:
            raise _Invalid("❌ Precio inválido")
        alert = self.alerts.add(Alert(
            account_id=account.id,
            chat_id=chat_id,
            mint=data["mint"],
            symbol=data.get("symbol", ""),
            target_price=target,
            direction=direction_for(target, float(data["current"])),
            created_price=float(data["current"]),
        ))
        await self._save()
        await self.telegram.send(
            chat_id,
            f"🔔 ¡Alerta creada!\n{esc(alert.symbol)} {alert.direction.value} `{target:.10g}` SOL",
            keyboards.main_menu(),
        )

    async def _step_copy_wallet(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> None:
        if not is_address(text):
            raise _Invalid("❌ Dirección inválida")
        wallets = account.settings.copy_wallets
        if text in wallets:
            raise _Invalid("⚠️ Ya sigues esta wallet")
        if len(wallets) >= MAX_COPY_WALLETS:
            raise _Invalid(f"❌ Máximo {MAX_COPY_WALLETS} wallets")
        self.accounts.update(account.id, lambda acc: acc.settings.copy_wallets.append(text))
        await self._save()
        await self.telegram.send(chat_id, f"✅ Siguiendo `{short(text)}`", keyboards.main_menu())

    async def _step_setting(self, account: Account, chat_id: int, text: str, data: Dict[str, Any]) -> Optional[Advance]:
        key = data.get("key", "")
        rule = SETTINGS.get(key)
        if rule is None:
            return None
        value = rule.parse(text)
        self.accounts.update(account.id, lambda acc: setattr(acc.settings, rule.field, value))
        await self._save()
        if key in SETTING_CHAIN:
            shown = f"{value:g}%" if isinstance(value, float) else "OFF"
            await self.telegram.send(chat_id, f"✅ {rule.label}: {shown}")
            return Advance({"key": SETTING_CHAIN[key]}, step=Step.SETTING_VALUE)
        await self._send_view(chat_id, self.menus.settings(account, f"✅ {rule.label} actualizado"))
        return None

    # ------------------------------------------------------------------
    # selección de swap (botones)
    # ------------------------------------------------------------------
    async def _select_swap_output(self, account: Account, chat_id: int, key: str, state: PendingState) -> None:
        if key == "custom":
            await self._enter(account, chat_id, Step.SWAP_CUSTOM_OUTPUT, state.data)
            return
        token = SWAP_TOKENS.get(key)
        if token is None or token["mint"] == state.data.get("from_mint"):
            return
        await self._enter(account, chat_id, Step.SWAP_AMOUNT_SELECTION,
                          {**state.data, "to_mint": token["mint"], "to_symbol": token["symbol"]})

    async def _select_swap_amount(self, account: Account, chat_id: int, key: str, state: PendingState) -> None:
        if key == "custom":
            await self._enter(account, chat_id, Step.SWAP_CUSTOM_AMOUNT, state.data)
            return
        percent = parse_percent(key)
        if percent is None:
            return
        data = dict(state.data)
        if data["from_mint"] == SOL_MINT:
            try:
                balance = await self.solana.get_balance_sol(account.wallet_address)
            except BotError as e:
                self.pending.clear(account.id)
                await self.telegram.send(chat_id, e.user_message, keyboards.main_menu())
                return
            amount = round(balance * percent / 100 - SWAP_RESERVE_SOL, 6)
            if amount <= 0:
                self.pending.clear(account.id)
                await self.telegram.send(chat_id, "❌ Saldo insuficiente", keyboards.back("wallet"))
                return
            data.update(amount=amount, percent=None)
        else:
            data.update(amount=None, percent=percent)
        await self._enter(account, chat_id, Step.SECRET_FOR_SWAP, data)

    # ------------------------------------------------------------------
    # secreto + ejecución
    # ------------------------------------------------------------------
    async def _on_secret(self, account: Account, chat_id: int, text: str, message_id: Optional[int],
                         state: PendingState) -> None:
        # el estado se limpia antes de tocar el secreto
        self.pending.clear(account.id)
        await self.telegram.delete_message(chat_id, message_id)

        execute, build_intent, progress = self._executors[state.step]
        lock = self.accounts.lock(account.id)
        if lock.locked():
            await self.telegram.send(chat_id, TradeInProgress.user_message, keyboards.main_menu())
            return

        async with lock:
            signer: Optional[Signer] = None
            with ScopedSecret(text) as secret:
                try:
                    signer = acquire_signer(account.wallet_address, secret)
                except SecretError as e:
                    await self.telegram.send(chat_id, e.user_message, keyboards.main_menu())
                    return
            try:
                intent = build_intent(account, state.data)
                await self.telegram.send(chat_id, progress)
                receipt = await execute(account.id, chat_id, signer, intent)
            except ConfirmTimeout as e:
                logger.warning(f"⌛ timeout de confirmación {e.signature}")
                await self.telegram.send(
                    chat_id, f"{e.user_message}\n🔗 [Solscan]({explorer_tx_url(e.signature)})", keyboards.main_menu())
                return
            except BotError as e:
                logger.warning(f"operación {state.step.value} abortada: {e}")
                await self.telegram.send(chat_id, e.user_message, keyboards.main_menu())
                return
            finally:
                signer.wipe()

        await self.telegram.send(chat_id, self._receipt_text(state.step, state.data, receipt), keyboards.main_menu())

    def _buy_data(self, account: Account, mint: str, amount: float) -> Dict[str, Any]:
        s = account.settings
        return {"mint": mint, "amount": amount, "tp": s.tp_percent, "sl": s.sl_percent}

    @staticmethod
    def _buy_intent(account: Account, data: Dict[str, Any]) -> BuyIntent:
        s = account.settings
        return BuyIntent(mint=data["mint"], amount_sol=data["amount"], slippage_bps=s.slippage_bps,
                         priority_fee_sol=s.priority_fee_sol, tp_percent=data.get("tp"), sl_percent=data.get("sl"))

    @staticmethod
    def _sell_intent(account: Account, data: Dict[str, Any]) -> SellIntent:
        s = account.settings
        return SellIntent(mint=data["mint"], percent=data["percent"], slippage_bps=s.slippage_bps,
                          priority_fee_sol=s.priority_fee_sol)

    @staticmethod
    def _swap_intent(account: Account, data: Dict[str, Any]) -> SwapIntent:
        s = account.settings
        return SwapIntent(input_mint=data["from_mint"], output_mint=data["to_mint"],
                          output_symbol=data.get("to_symbol", ""), amount_ui=data.get("amount"),
                          percent=data.get("percent"), slippage_bps=s.slippage_bps,
                          priority_fee_sol=s.priority_fee_sol)

    @staticmethod
    def _send_intent(account: Account, data: Dict[str, Any]) -> SendIntent:
        return SendIntent(destination=data["destination"], amount_sol=data["amount"])

    @staticmethod
    def _send_token_intent(account: Account, data: Dict[str, Any]) -> SendTokenIntent:
        return SendTokenIntent(mint=data["mint"], destination=data["destination"], amount_ui=data["amount"])

    @staticmethod
    def _receipt_text(step: Step, data: Dict[str, Any], receipt: Receipt) -> str:
        link = f"🔗 [Solscan]({receipt.explorer_url})"
        if step == Step.SECRET_FOR_BUY:
            tp, sl = data.get("tp"), data.get("sl")
            lines = [f"✅ *COMPRA CONFIRMADA*\n", f"💸 Gastado: {data['amount']:g} SOL",
                     f"🎯 Recibido: {fmt(receipt.out_amount)} tokens"]
            if receipt.alerts_created:
                lines.append(f"🎯 TP: {tp or '—'}% | 🛑 SL: {sl or '—'}% (alertas creadas)")
        elif step == Step.SECRET_FOR_SELL:
            lines = [f"✅ *VENTA CONFIRMADA ({data['percent']:g}%)*\n", f"💰 Recibido: {receipt.out_amount:.4f} SOL"]
            if receipt.realized_pnl is not None:
                lines.append(signed_sol(receipt.realized_pnl))
        elif step == Step.SECRET_FOR_SWAP:
            lines = ["✅ *SWAP CONFIRMADO*\n", f"Recibido: {fmt(receipt.out_amount)} {esc(data.get('to_symbol', ''))}"]
        elif step == Step.SECRET_FOR_SEND:
            lines = [f"✅ *Enviados {data['amount']:g} SOL*\n", f"A: `{data['destination']}`"]
        else:
            lines = [f"✅ *Enviados {data['amount']:g} {esc(data.get('symbol', ''))}*\n", f"A: `{data['destination']}`"]
        lines += [f"⚠️ {w}" for w in receipt.warnings]
        lines.append(link)
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # escaneo
    # ------------------------------------------------------------------
    async def scan(self, account: Account, chat_id: int, mint: str) -> None:
        status_id = await self.telegram.send(chat_id, "🔍 Escaneando token...")
        info, report = await asyncio.gather(self.market.get_token_info(mint), self.security.scan(mint))
        if info is None:
            text = "❌ Token no encontrado en DexScreener"
            if status_id is not None:
                await self.telegram.edit(chat_id, status_id, text, keyboards.back())
            else:
                await self.telegram.send(chat_id, text, keyboards.back())
            return

        s = account.settings
        warnings = []
        if info.liquidity_usd < s.min_liquidity_usd:
            warnings.append(f"⚠️ Por debajo de tu liquidez mínima (${fmt(s.min_liquidity_usd)})")
        if not report.known:
            warnings.append("⚠️ Escaneo de seguridad no disponible")
        elif report.score < s.min_score:
            warnings.append(f"⚠️ Por debajo de tu score mínimo ({s.min_score})")
        risks = "\n".join(f"• {esc(r)}" for r in report.risks) or "• Ninguno detectado"

        text = (
            f"💎 *{esc(info.name)} ({esc(info.symbol)})*\n"
            f"`{mint}`\n\n"
            f"💰 Precio: `${info.price_usd:.8f}` | `{info.price_native:.10f}` SOL\n"
            f"💧 Liquidez: `${fmt(info.liquidity_usd)}`\n"
            f"📊 Volumen 24h: `${fmt(info.volume_24h)}`\n"
            f"📈 1h: `{pct(info.price_change_1h)}` | 24h: `{pct(info.price_change_24h)}`\n"
            f"🏦 MCap: `${fmt(info.market_cap)}`\n"
            f"🔗 DEX: {esc(info.dex_id)}\n\n"
            f"🛡 *Seguridad: {report.grade} ({report.score}/100)*\n{risks}"
            + ("\n\n" + "\n".join(warnings) if warnings else "")
            + "\n\n📥 *Elige opción de compra:*"
        )
        kb = keyboards.token_buy(mint, s.quick_buy_amounts)
        if status_id is not None:
            await self.telegram.edit(chat_id, status_id, text, kb)
        else:
            await self.telegram.send(chat_id, text, kb)

    # ------------------------------------------------------------------
    # prompts
    # ------------------------------------------------------------------
    async def _enter(self, account: Account, chat_id: int, step: Step, data: Optional[Dict[str, Any]] = None) -> None:
        state = self.pending.set(account.id, step, data)
        text, kb = self._prompt(account, state)
        await self.telegram.send(chat_id, text, kb)

    def _prompt(self, account: Account, state: PendingState) -> Tuple[str, Keyboard]:
        d = state.data
        step = state.step
        if step.is_secret:
            return KEY_PROMPT, keyboards.cancel()
        if step == Step.SWAP_OUTPUT_SELECTION:
            return f"💱 *Swap {esc(d['from_symbol'])} → ?*\n\nElige el destino:", keyboards.swap_to(d["from_mint"])
        if step == Step.SWAP_AMOUNT_SELECTION:
            return (f"💱 *Swap {esc(d['from_symbol'])} → {esc(d['to_symbol'])}*\n\n¿Cuánto? (% de tu saldo de "
                    f"{esc(d['from_symbol'])})"), keyboards.swap_amount()
        if step == Step.SETTING_VALUE:
            s = account.settings
            current = {"slippage": f"{s.slippage_bps / 100:g}", "priority": f"{s.priority_fee_sol:g}",
                       "minscore": s.min_score, "minliq": f"{s.min_liquidity_usd:g}"}
            return SETTINGS[d["key"]].prompt.format(**current), keyboards.cancel()
        prompts = {
            Step.SCAN_ADDRESS: "🔍 Pega la dirección (mint) del token:",
            Step.BUY_CUSTOM_AMOUNT: "✏️ Cantidad de SOL:\nEjemplo: 0.25",
            Step.BUY_PERCENT_OF_BALANCE: "📊 % de tu saldo SOL a usar (1–100):",
            Step.TP_AMOUNT: "🎯 *Compra con TP/SL*\n\nCantidad de SOL a comprar:",
            Step.TP_VALUE: "🎯 TP % (100 = 2x) o 0 para omitir:",
            Step.SL_VALUE: "🛑 SL % (ej. 30) o 0 para omitir:",
            Step.SELL_CUSTOM_PERCENT: "✏️ % a vender (1–100):",
            Step.SEND_DESTINATION: "📤 *Enviar SOL*\n\nDirección de destino:",
            Step.SEND_AMOUNT: "💸 ¿Cuánto SOL enviar?\nEjemplo: 0.5",
            Step.SWAP_CUSTOM_OUTPUT: "💱 Mint del token de destino:",
            Step.SWAP_CUSTOM_AMOUNT: f"✏️ Cantidad exacta de {esc(d.get('from_symbol', ''))}:",
            Step.SEND_TOKEN_DESTINATION: f"📤 *Enviar {esc(d.get('symbol', 'token'))}*\n\nDirección de destino:",
            Step.SEND_TOKEN_AMOUNT: f"💸 ¿Cuánto *{esc(d.get('symbol', 'token'))}* enviar?",
            Step.ALERT_ASSET: "🔔 Mint del token para la alerta:",
            Step.ALERT_TARGET_PRICE: f"Precio actual: `{d.get('current', 0):.10f}` SOL\n\nPrecio objetivo en SOL:",
            Step.COPY_WALLET_ADDRESS: "👥 Dirección de la wallet a seguir:",
        }
        return prompts[step], keyboards.cancel()

    # ------------------------------------------------------------------
    # utilidades
    # ------------------------------------------------------------------
    @staticmethod
    def _symbol(account: Account, mint: str) -> str:
        if mint == SOL_MINT:
            return "SOL"
        pos = account.positions.get(mint)
        return pos.symbol if pos and pos.symbol else short(mint)

    async def _show(self, chat_id: int, message_id: Optional[int], view: Tuple[str, Keyboard]) -> None:
        text, kb = view
        if message_id is None:
            await self.telegram.send(chat_id, text, kb)
        else:
            await self.telegram.edit(chat_id, message_id, text, kb)

    async def _send_view(self, chat_id: int, view: Tuple[str, Keyboard]) -> None:
        await self.telegram.send(chat_id, view[0], view[1])

    async def _save(self) -> None:
        if self._persist is None:
            return
        try:
            await self._persist()
        except Exception as e:
            logger.error(f"No se pudo persistir: {e}")
