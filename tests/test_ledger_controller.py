import pytest

from controllers.ledger_controller import realized_pnl
from enums.fill_side import FillSide
from models.account import Position
from models.alert import Alert
from enums.alert_type import AlertDirection, AlertKind
from models.trade import Fill

from tests.conftest import MINT_X


def _buy(amount=100, sol=1.0, native=2.0, tp=None, sl=None):
    return Fill(side=FillSide.BUY, mint=MINT_X, symbol="TKX", decimals=0, amount=amount,
                sol_amount=sol, price_native=native, price_usd=native * 150, tp_percent=tp, sl_percent=sl)


def _sell(fraction, received, native):
    return Fill(side=FillSide.SELL, mint=MINT_X, fraction=fraction, sol_amount=received, price_native=native)


def test_half_sell_realizes_price_move_on_half_the_cost(accounts, ledger):
    ledger.apply_fill(1, _buy(amount=100, sol=1.0, native=2.0))

    result = ledger.apply_fill(1, _sell(0.5, received=0.75, native=3.0))

    acc = accounts.get(1)
    pos = acc.positions[MINT_X]
    assert result.realized_pnl == pytest.approx(0.25)
    assert not result.closed
    assert pos.amount == 50
    assert pos.sol_spent == pytest.approx(0.5)
    assert acc.stats.total_pnl == pytest.approx(0.25)
    assert acc.stats.wins == 1
    assert acc.stats.total_trades == 2


def test_second_buy_merges_amount_and_cost_keeping_entry(accounts, ledger):
    ledger.apply_fill(1, _buy(amount=100, sol=1.0, native=2.0))
    ledger.apply_fill(1, _buy(amount=40, sol=0.5, native=4.0))

    pos = accounts.get(1).positions[MINT_X]
    assert pos.amount == 140
    assert pos.sol_spent == pytest.approx(1.5)
    assert pos.entry_price_native == 2.0
    assert accounts.get(1).stats.total_volume == pytest.approx(1.5)


def test_buy_without_price_adopts_next_known_price(accounts, ledger):
    ledger.apply_fill(1, _buy(native=0.0))
    ledger.apply_fill(1, _buy(native=3.0))

    assert accounts.get(1).positions[MINT_X].entry_price_native == 3.0


def test_full_sell_closes_into_history_and_purges_alerts(accounts, alerts, ledger):
    ledger.apply_fill(1, _buy(amount=100, sol=1.0, native=2.0))
    alerts.add(Alert(account_id=1, chat_id=1, mint=MINT_X, target_price=2.2, direction=AlertDirection.ABOVE,
                     kind=AlertKind.TAKE_PROFIT))
    alerts.add(Alert(account_id=1, chat_id=1, mint=MINT_X, target_price=1.7, direction=AlertDirection.BELOW,
                     kind=AlertKind.STOP_LOSS))
    alerts.add(Alert(account_id=1, chat_id=1, mint=MINT_X, target_price=3.0, direction=AlertDirection.ABOVE))
    alerts.add(Alert(account_id=2, chat_id=2, mint=MINT_X, target_price=2.2, direction=AlertDirection.ABOVE))

    result = ledger.apply_fill(1, _sell(1.0, received=0.8, native=1.6))

    acc = accounts.get(1)
    assert result.closed
    assert result.purged_alerts == 3
    assert alerts.list_for(1) == []
    assert MINT_X not in acc.positions
    assert acc.history[0].mint == MINT_X
    assert acc.history[0].pnl == pytest.approx(-0.2)
    assert acc.stats.wins == 0
    # la alerta de otra cuenta sigue viva
    assert len(alerts) == 1


def test_sell_without_position_only_counts_the_trade(accounts, ledger):
    result = ledger.apply_fill(1, _sell(0.5, received=0.3, native=1.0))

    acc = accounts.get(1)
    assert result.realized_pnl is None
    assert acc.stats.total_trades == 1
    assert acc.stats.total_pnl == 0


def test_realized_pnl_falls_back_to_received_minus_cost():
    pos = Position(mint=MINT_X, amount=100, sol_spent=1.0, entry_price_native=2.0)
    assert realized_pnl(pos, 0.5, current_native=0.0, received_sol=0.7) == pytest.approx(0.2)


def test_realized_pnl_is_zero_without_entry_price():
    pos = Position(mint=MINT_X, amount=100, sol_spent=1.0, entry_price_native=0.0)
    assert realized_pnl(pos, 1.0, current_native=5.0, received_sol=3.0) == 0.0
