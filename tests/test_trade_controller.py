import pytest

from enums.alert_type import AlertDirection, AlertKind
from models.trade import BuyIntent, SellIntent, SendIntent, SwapIntent
from services.secret_service import Signer
from utils.errors import BroadcastFailed, ConfirmTimeout, InsufficientBalance, NoRoute
from utils.solana_utils import SOL_MINT, SWAP_TOKENS

from tests.conftest import DEST, MINT_X


@pytest.fixture
def signer(keypair):
    return Signer(keypair)


@pytest.fixture
def funded(solana, keypair):
    address = str(keypair.pubkey())
    solana.sol_balances[address] = 5.0
    solana.token_balances[(address, MINT_X)] = {
        "mint": MINT_X, "account": DEST, "amount": 1_000_000, "decimals": 6, "ui_amount": 1.0,
    }
    return address


async def test_buy_with_take_profit_creates_position_and_one_alert(trades, accounts, alerts, funded, signer, persist):
    intent = BuyIntent(mint=MINT_X, amount_sol=1.0, tp_percent=10, sl_percent=None)

    receipt = await trades.execute_buy(1, 1, signer, intent)

    pos = accounts.get(1).positions[MINT_X]
    assert pos.entry_price_native == 2.0
    assert pos.amount == 1_000_000
    assert pos.sol_spent == 1.0
    created = alerts.list_for(1)
    assert len(created) == 1
    assert created[0].direction == AlertDirection.ABOVE
    assert created[0].kind == AlertKind.TAKE_PROFIT
    assert created[0].target_price == pytest.approx(2.2)
    assert receipt.alerts_created == 1
    assert receipt.out_amount == pytest.approx(1.0)
    assert persist.calls == 1


async def test_buy_without_market_data_skips_alerts_with_warning(trades, market, accounts, alerts, funded, signer):
    market.infos.clear()

    receipt = await trades.execute_buy(1, 1, signer, BuyIntent(mint=MINT_X, amount_sol=0.5, tp_percent=50))

    assert accounts.get(1).positions[MINT_X].entry_price_native == 0.0
    assert len(alerts) == 0
    assert receipt.warnings


async def test_buy_rejected_when_balance_does_not_cover_amount_and_fee(trades, solana, funded, signer, accounts):
    with pytest.raises(InsufficientBalance):
        await trades.execute_buy(1, 1, signer, BuyIntent(mint=MINT_X, amount_sol=5.0))
    assert "send_raw_transaction" not in solana.calls
    assert accounts.get(1).positions == {}


async def test_no_route_leaves_ledger_untouched(trades, jupiter, solana, funded, signer, accounts, alerts):
    jupiter.no_route = True

    with pytest.raises(NoRoute):
        await trades.execute_buy(1, 1, signer, BuyIntent(mint=MINT_X, amount_sol=1.0, tp_percent=10))

    assert "send_raw_transaction" not in solana.calls
    assert accounts.get(1).positions == {}
    assert len(alerts) == 0


async def test_confirm_timeout_carries_signature_and_mutates_nothing(trades, solana, funded, signer, accounts):
    solana.confirm_error = ConfirmTimeout("5igsig")

    with pytest.raises(ConfirmTimeout) as exc:
        await trades.execute_buy(1, 1, signer, BuyIntent(mint=MINT_X, amount_sol=1.0))

    assert exc.value.signature == "5igsig"
    assert accounts.get(1).positions == {}
    assert accounts.get(1).stats.total_trades == 0


async def test_failed_on_chain_transaction_raises_broadcast_failed(trades, solana, funded, signer, accounts):
    solana.confirm_error = BroadcastFailed("InstructionError")

    with pytest.raises(BroadcastFailed):
        await trades.execute_sell(1, 1, signer, SellIntent(mint=MINT_X, percent=50))
    assert accounts.get(1).stats.total_trades == 0


async def test_sell_half_uses_half_of_the_onchain_balance(trades, jupiter, accounts, funded, signer):
    await trades.execute_buy(1, 1, signer, BuyIntent(mint=MINT_X, amount_sol=1.0))
    jupiter.out_amount = 750_000_000  # 0.75 SOL

    receipt = await trades.execute_sell(1, 1, signer, SellIntent(mint=MINT_X, percent=50))

    assert jupiter.quotes[-1][:3] == (MINT_X, SOL_MINT, 500_000)
    assert receipt.out_amount == pytest.approx(0.75)
    assert accounts.get(1).positions[MINT_X].amount == 500_000


async def test_sell_without_tokens_is_rejected(trades, solana, signer):
    with pytest.raises(InsufficientBalance):
        await trades.execute_sell(1, 1, signer, SellIntent(mint=MINT_X, percent=100))


async def test_swap_does_not_touch_the_ledger(trades, jupiter, accounts, funded, signer):
    usdc = SWAP_TOKENS["usdc"]["mint"]
    intent = SwapIntent(input_mint=SOL_MINT, output_mint=usdc, output_symbol="USDC", amount_ui=1.0)

    receipt = await trades.execute_swap(1, 1, signer, intent)

    assert jupiter.quotes[-1][2] == 1_000_000_000
    assert receipt.out_amount == pytest.approx(1.0)
    assert accounts.get(1).positions == {}
    assert accounts.get(1).stats.total_trades == 0


async def test_send_requires_fee_buffer(trades, solana, funded, signer):
    with pytest.raises(InsufficientBalance):
        await trades.execute_send(1, 1, signer, SendIntent(destination=DEST, amount_sol=5.0))

    receipt = await trades.execute_send(1, 1, signer, SendIntent(destination=DEST, amount_sol=1.0))
    assert receipt.signature
    assert len(solana.sent) == 1
