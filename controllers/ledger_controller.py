"""
Position & PnL ledger.

Applies confirmed fills to an account. Buys merge into the open position
(amount and cost add up; entry prices keep the first buy's values). Sells
realise PnL against the native entry price and scale the remainder; a full
sell closes the position into history and drops its alerts.
"""

from __future__ import annotations

from enums.fill_side import FillSide
from models.account import Account, HistoryRecord, Position
from models.trade import Fill, FillResult
from repositories.account_repository import AccountRepository
from repositories.alert_repository import AlertRepository
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

# una venta >= 99.9999% se trata como cierre total
_FULL_FRACTION = 0.999999


def realized_pnl(position: Position, fraction: float, current_native: float, received_sol: float) -> float:
    """PnL in SOL for selling ``fraction`` of ``position``.

    Uses the native price move when both prices are known; without a current
    price it falls back to SOL received minus the proportional cost.
    """
    cost = position.sol_spent * fraction
    if position.entry_price_native <= 0:
        return 0.0
    if current_native <= 0:
        return received_sol - cost
    return (current_native - position.entry_price_native) / position.entry_price_native * cost


class LedgerController:
    def __init__(self, accounts: AccountRepository, alerts: AlertRepository) -> None:
        self.accounts = accounts
        self.alerts = alerts

    @log_function
    def apply_fill(self, account_id: int, fill: Fill) -> FillResult:
        if fill.side == FillSide.BUY:
            return self.accounts.update(account_id, lambda acc: self._apply_buy(acc, fill))
        result = self.accounts.update(account_id, lambda acc: self._apply_sell(acc, fill))
        if result.closed:
            result.purged_alerts = self.alerts.purge(account_id, fill.mint)
        return result

    @staticmethod
    def _apply_buy(account: Account, fill: Fill) -> FillResult:
        pos = account.positions.get(fill.mint)
        if pos is None:
            account.positions[fill.mint] = Position(
                mint=fill.mint,
                symbol=fill.symbol,
                name=fill.name,
                decimals=fill.decimals,
                entry_price=fill.price_usd,
                entry_price_native=fill.price_native,
                amount=fill.amount,
                sol_spent=fill.sol_amount,
                tp_percent=fill.tp_percent,
                sl_percent=fill.sl_percent,
            )
        else:
            pos.amount += fill.amount
            pos.sol_spent += fill.sol_amount
            if pos.entry_price_native <= 0 and fill.price_native > 0:
                # la primera compra no tenía precio; se adopta el de esta
                pos.entry_price = fill.price_usd
                pos.entry_price_native = fill.price_native
            if fill.tp_percent is not None:
                pos.tp_percent = fill.tp_percent
            if fill.sl_percent is not None:
                pos.sl_percent = fill.sl_percent
        account.stats.total_trades += 1
        account.stats.total_volume += fill.sol_amount
        return FillResult()

    @staticmethod
    def _apply_sell(account: Account, fill: Fill) -> FillResult:
        fraction = min(max(fill.fraction, 0.0), 1.0)
        account.stats.total_trades += 1
        account.stats.total_volume += fill.sol_amount

        pos = account.positions.get(fill.mint)
        if pos is None:
            # tokens que no compró el bot: se registra el trade sin PnL
            return FillResult()

        pnl = realized_pnl(pos, fraction, fill.price_native, fill.sol_amount)
        account.stats.total_pnl += pnl
        if pnl > 0:
            account.stats.wins += 1

        if fraction >= _FULL_FRACTION:
            account.history.insert(0, HistoryRecord(**pos.model_dump(), pnl=pnl))
            del account.positions[fill.mint]
            logger.info(f"📕 posición cerrada {pos.symbol or fill.mint[:8]} pnl={pnl:+.4f} SOL")
            return FillResult(realized_pnl=pnl, closed=True)

        remaining = 1.0 - fraction
        pos.amount = int(pos.amount * remaining)
        pos.sol_spent *= remaining
        return FillResult(realized_pnl=pnl)
