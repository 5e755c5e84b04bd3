"""
Trade execution pipeline.

quote -> build -> sign -> broadcast -> confirm. Transfers replace the first
two steps with a locally built system/SPL transfer. Nothing touches the
ledger or the alert store until the transaction is confirmed; any failure
before that raises an ``ExecutionError`` and leaves state untouched.

Callers hold the account lock for the whole call.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional

from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from controllers.ledger_controller import LedgerController
from enums.fill_side import FillSide
from models.alert import tp_sl_alerts
from models.trade import (
    BuyIntent,
    Fill,
    Receipt,
    RouteQuote,
    SellIntent,
    SendIntent,
    SendTokenIntent,
    SwapIntent,
)
from repositories.alert_repository import AlertRepository
from services.jupiter_service import JupiterService
from services.market_service import MarketService
from services.secret_service import Signer
from services.solana_service import SolanaService
from utils.errors import BuildFailed, InsufficientBalance, NoRoute, RpcError
from utils.log_config import logger_manager, log_function
from utils.solana_utils import (
    KNOWN_DECIMALS,
    SEND_FEE_BUFFER_SOL,
    SOL_DECIMALS,
    SOL_MINT,
    SWAP_RESERVE_SOL,
    explorer_tx_url,
    lamports_to_sol,
    to_lamports,
    to_raw,
)

logger = logger_manager.setup_logger(__name__)

Persist = Callable[[], Awaitable[None]]


class TradeController:
    def __init__(
        self,
        solana: SolanaService,
        jupiter: JupiterService,
        market: MarketService,
        ledger: LedgerController,
        alerts: AlertRepository,
        persist: Optional[Persist] = None,
    ) -> None:
        self.solana = solana
        self.jupiter = jupiter
        self.market = market
        self.ledger = ledger
        self.alerts = alerts
        self._persist = persist

    # ---------- pasos comunes ----------
    async def _swap(self, signer: Signer, input_mint: str, output_mint: str, amount: int,
                    slippage_bps: int, priority_fee_sol: float) -> tuple[str, RouteQuote]:
        quote = await self.jupiter.get_quote(input_mint, output_mint, amount, slippage_bps)
        if quote is None or quote.out_amount <= 0:
            raise NoRoute(f"{input_mint[:8]}→{output_mint[:8]} amount={amount}")

        raw = await self.jupiter.build_swap(quote, signer.public_address, to_lamports(priority_fee_sol))
        if raw is None:
            raise BuildFailed("jupiter no devolvió transacción")
        try:
            signed = signer.sign_versioned(raw)
        except Exception as e:
            raise BuildFailed(f"transacción no firmable: {e}") from e

        signature = await self.solana.send_raw_transaction(bytes(signed))
        logger.info(f"📤 swap enviado {signature[:12]}... ({input_mint[:6]}→{output_mint[:6]})")
        await self.solana.confirm(signature)
        return signature, quote

    async def _send_instructions(self, signer: Signer, instructions: List) -> str:
        blockhash = await self.solana.get_latest_blockhash()
        try:
            tx = signer.sign_instructions(instructions, blockhash)
        except Exception as e:
            raise BuildFailed(f"transferencia no firmable: {e}") from e
        signature = await self.solana.send_raw_transaction(bytes(tx))
        logger.info(f"📤 transferencia enviada {signature[:12]}...")
        await self.solana.confirm(signature)
        return signature

    async def _after_confirm(self) -> None:
        if self._persist is None:
            return
        try:
            await self._persist()
        except Exception as e:
            logger.error(f"No se pudo persistir tras la operación: {e}")

    async def _decimals(self, owner: str, mint: str) -> Optional[int]:
        if mint in KNOWN_DECIMALS:
            return KNOWN_DECIMALS[mint]
        try:
            bal = await self.solana.get_token_balance(owner, mint)
        except RpcError as e:
            logger.warning(f"sin decimales para {mint[:8]}...: {e}")
            return None
        return bal["decimals"] if bal else None

    async def _require_sol(self, owner: str, needed: float) -> float:
        balance = await self.solana.get_balance_sol(owner)
        if balance < needed:
            raise InsufficientBalance(f"saldo {balance:.4f} < {needed:.4f} SOL")
        return balance

    # ---------- compra ----------
    @log_function
    async def execute_buy(self, account_id: int, chat_id: Optional[int], signer: Signer,
                          intent: BuyIntent) -> Receipt:
        owner = signer.public_address
        await self._require_sol(owner, intent.amount_sol + intent.priority_fee_sol)

        signature, quote = await self._swap(signer, SOL_MINT, intent.mint, to_lamports(intent.amount_sol),
                                            intent.slippage_bps, intent.priority_fee_sol)
        warnings: List[str] = []

        info = await self.market.get_token_info(intent.mint)
        if info is None:
            warnings.append("Sin datos de mercado: precio de entrada desconocido, no se crean alertas TP/SL.")
        decimals = await self._decimals(owner, intent.mint)
        if decimals is None:
            warnings.append("No se pudieron leer los decimales del token.")

        fill = Fill(
            side=FillSide.BUY,
            mint=intent.mint,
            symbol=info.symbol if info else "",
            name=info.name if info else "",
            decimals=decimals or 0,
            amount=quote.out_amount,
            sol_amount=intent.amount_sol,
            price_usd=info.price_usd if info else 0.0,
            price_native=info.price_native if info else 0.0,
            tp_percent=intent.tp_percent,
            sl_percent=intent.sl_percent,
        )
        self.ledger.apply_fill(account_id, fill)

        created = tp_sl_alerts(account_id, chat_id, intent.mint, fill.symbol, fill.price_native,
                               intent.tp_percent, intent.sl_percent)
        for alert in created:
            self.alerts.add(alert)

        await self._after_confirm()
        out_ui = quote.out_amount / (10 ** decimals) if decimals else float(quote.out_amount)
        return Receipt(signature=signature, explorer_url=explorer_tx_url(signature), out_amount=out_ui,
                       alerts_created=len(created), warnings=warnings)

    # ---------- venta ----------
    @log_function
    async def execute_sell(self, account_id: int, chat_id: Optional[int], signer: Signer,
                           intent: SellIntent) -> Receipt:
        owner = signer.public_address
        bal = await self.solana.get_token_balance(owner, intent.mint)
        if not bal or bal["amount"] <= 0:
            raise InsufficientBalance("sin saldo del token")
        fraction = min(intent.percent, 100.0) / 100.0
        raw_amount = int(bal["amount"] * fraction)
        if raw_amount <= 0:
            raise InsufficientBalance("cantidad a vender es 0")

        signature, quote = await self._swap(signer, intent.mint, SOL_MINT, raw_amount,
                                            intent.slippage_bps, intent.priority_fee_sol)
        received = lamports_to_sol(quote.out_amount)
        warnings: List[str] = []

        price = await self.market.get_price_native(intent.mint)
        if price is None:
            warnings.append("Sin precio de mercado: PnL calculado con lo recibido.")

        result = self.ledger.apply_fill(account_id, Fill(
            side=FillSide.SELL,
            mint=intent.mint,
            decimals=bal["decimals"],
            fraction=fraction,
            sol_amount=received,
            price_native=price or 0.0,
        ))

        await self._after_confirm()
        return Receipt(signature=signature, explorer_url=explorer_tx_url(signature), out_amount=received,
                       realized_pnl=result.realized_pnl, warnings=warnings)

    # ---------- swap ----------
    @log_function
    async def execute_swap(self, account_id: int, chat_id: Optional[int], signer: Signer,
                           intent: SwapIntent) -> Receipt:
        owner = signer.public_address
        if intent.input_mint == SOL_MINT:
            balance = await self.solana.get_balance_sol(owner)
            if intent.percent is not None:
                amount_sol = balance * intent.percent / 100.0 - SWAP_RESERVE_SOL
            else:
                amount_sol = intent.amount_ui or 0.0
            if amount_sol <= 0 or amount_sol + intent.priority_fee_sol > balance:
                raise InsufficientBalance(f"saldo {balance:.4f} SOL")
            amount = to_raw(amount_sol, SOL_DECIMALS)
        else:
            bal = await self.solana.get_token_balance(owner, intent.input_mint)
            if not bal or bal["amount"] <= 0:
                raise InsufficientBalance("sin saldo del token")
            if intent.percent is not None:
                amount = int(bal["amount"] * intent.percent / 100.0)
            else:
                amount = to_raw(intent.amount_ui or 0.0, bal["decimals"])
            if amount <= 0 or amount > bal["amount"]:
                raise InsufficientBalance("cantidad fuera de saldo")

        signature, quote = await self._swap(signer, intent.input_mint, intent.output_mint, amount,
                                            intent.slippage_bps, intent.priority_fee_sol)
        warnings: List[str] = []
        decimals = await self._decimals(owner, intent.output_mint)
        if decimals is None:
            warnings.append("Cantidad recibida en unidades base (decimales desconocidos).")
        out_ui = quote.out_amount / (10 ** decimals) if decimals else float(quote.out_amount)

        await self._after_confirm()
        return Receipt(signature=signature, explorer_url=explorer_tx_url(signature), out_amount=out_ui,
                       warnings=warnings)

    # ---------- envíos ----------
    @log_function
    async def execute_send(self, account_id: int, chat_id: Optional[int], signer: Signer,
                           intent: SendIntent) -> Receipt:
        await self._require_sol(signer.public_address, intent.amount_sol + SEND_FEE_BUFFER_SOL)
        try:
            ix = transfer(TransferParams(
                from_pubkey=signer.pubkey,
                to_pubkey=Pubkey.from_string(intent.destination),
                lamports=to_lamports(intent.amount_sol),
            ))
        except ValueError as e:
            raise BuildFailed(f"destino inválido: {e}") from e
        signature = await self._send_instructions(signer, [ix])
        await self._after_confirm()
        return Receipt(signature=signature, explorer_url=explorer_tx_url(signature), out_amount=intent.amount_sol)

    @log_function
    async def execute_send_token(self, account_id: int, chat_id: Optional[int], signer: Signer,
                                 intent: SendTokenIntent) -> Receipt:
        owner = signer.pubkey
        bal = await self.solana.get_token_balance(str(owner), intent.mint)
        if not bal:
            raise InsufficientBalance("sin saldo del token")
        amount = to_raw(intent.amount_ui, bal["decimals"])
        if amount <= 0 or amount > bal["amount"]:
            raise InsufficientBalance(f"saldo {bal['ui_amount']}")
        await self._require_sol(str(owner), SEND_FEE_BUFFER_SOL)

        try:
            mint = Pubkey.from_string(intent.mint)
            dest_owner = Pubkey.from_string(intent.destination)
        except ValueError as e:
            raise BuildFailed(f"dirección inválida: {e}") from e
        source_ata = Pubkey.from_string(bal["account"]) if bal.get("account") else get_associated_token_address(owner, mint)
        dest_ata = get_associated_token_address(dest_owner, mint)

        instructions = []
        if not await self.solana.account_exists(str(dest_ata)):
            instructions.append(create_associated_token_account(payer=owner, owner=dest_owner, mint=mint))
        instructions.append(transfer_checked(TransferCheckedParams(
            program_id=TOKEN_PROGRAM_ID,
            source=source_ata,
            mint=mint,
            dest=dest_ata,
            owner=owner,
            amount=amount,
            decimals=bal["decimals"],
        )))

        signature = await self._send_instructions(signer, instructions)
        await self._after_confirm()
        return Receipt(signature=signature, explorer_url=explorer_tx_url(signature), out_amount=intent.amount_ui)
