import pytest
from solders.keypair import Keypair

from enums.alert_type import AlertDirection
from enums.conversation_step import ConversationStep as Step
from models.account import referral_code_for
from utils.errors import SecretMismatch, TradeInProgress

from tests.conftest import COPY_WALLET, DEST, MINT_X


async def _say(conversation, text, account_id=1, message_id=None):
    await conversation.handle_input(account_id, account_id, text=text, message_id=message_id)


async def _tap(conversation, data, account_id=1):
    await conversation.handle_input(account_id, account_id, callback=data, message_id=None)


# ---------- cancelación ----------
async def test_cancel_clears_any_pending_step(conversation, pending, onboarded):
    await _tap(conversation, f"buyt:{MINT_X}")
    await _say(conversation, "1")
    assert pending.get(1).step == Step.TP_VALUE

    await _say(conversation, "/cancel")

    assert pending.get(1) is None


async def test_cancel_button_clears_secret_step(conversation, pending, onboarded):
    pending.set(1, Step.SECRET_FOR_SEND, {"destination": DEST, "amount": 1.0})

    await _tap(conversation, "cancel")

    assert pending.get(1) is None


# ---------- flujo TP/SL ----------
async def test_tp_sl_chain_collects_values_and_asks_for_key(conversation, pending, onboarded):
    await _tap(conversation, f"buyt:{MINT_X}")
    assert pending.get(1).step == Step.TP_AMOUNT

    await _say(conversation, "1")
    await _say(conversation, "10")
    await _say(conversation, "0")

    state = pending.get(1)
    assert state.step == Step.SECRET_FOR_BUY
    assert state.data == {"mint": MINT_X, "amount": 1.0, "tp": 10.0, "sl": None}


async def test_tp_chain_reprompts_on_bad_value(conversation, pending, telegram, onboarded):
    await _tap(conversation, f"buyt:{MINT_X}")
    await _say(conversation, "mucho")

    assert pending.get(1).step == Step.TP_AMOUNT
    assert "Inténtalo de nuevo" in telegram.last


async def test_full_buy_through_secret(conversation, pending, accounts, alerts, telegram, keypair, solana, onboarded):
    await _tap(conversation, f"buyt:{MINT_X}")
    await _say(conversation, "1")
    await _say(conversation, "10")
    await _say(conversation, "0")

    await _say(conversation, str(keypair), message_id=555)

    assert pending.get(1) is None
    assert (1, 555) in telegram.deleted
    assert MINT_X in accounts.get(1).positions
    created = alerts.list_for(1)
    assert len(created) == 1
    assert created[0].target_price == pytest.approx(2.2)
    assert "COMPRA CONFIRMADA" in telegram.last
    assert str(keypair) not in "".join(telegram.texts)


# ---------- secreto ----------
async def test_wrong_secret_clears_state_and_sends_nothing(conversation, pending, telegram, solana, jupiter, onboarded):
    pending.set(1, Step.SECRET_FOR_SELL, {"mint": MINT_X, "percent": 50})

    await _say(conversation, str(Keypair()), message_id=9)

    assert pending.get(1) is None
    assert (1, 9) in telegram.deleted
    assert telegram.last == SecretMismatch.user_message
    assert solana.sent == []
    assert "get_token_balance" not in solana.calls
    assert jupiter.quotes == []


async def test_second_trade_while_one_is_in_flight_is_rejected(conversation, accounts, pending, telegram, keypair, solana, onboarded):
    pending.set(1, Step.SECRET_FOR_SEND, {"destination": DEST, "amount": 1.0})
    lock = accounts.lock(1)
    await lock.acquire()
    try:
        await _say(conversation, str(keypair))
    finally:
        lock.release()

    assert pending.get(1) is None
    assert telegram.last == TradeInProgress.user_message
    assert solana.sent == []


# ---------- validación: reintento vs aborto ----------
async def test_bad_destination_reprompts_then_bad_amount_aborts(conversation, pending, onboarded):
    await _tap(conversation, "sendsol")
    await _say(conversation, "no-es-una-direccion")
    assert pending.get(1).step == Step.SEND_DESTINATION

    await _say(conversation, DEST)
    assert pending.get(1).step == Step.SEND_AMOUNT

    await _say(conversation, "abc")
    assert pending.get(1) is None


async def test_send_amount_must_leave_fee_buffer(conversation, pending, telegram, onboarded):
    await _tap(conversation, "sendsol")
    await _say(conversation, DEST)
    await _say(conversation, "10")

    assert pending.get(1) is None
    assert "Saldo insuficiente" in telegram.last


async def test_buy_percent_keeps_reserve(conversation, pending, onboarded):
    await _tap(conversation, f"buyp:{MINT_X}")
    await _say(conversation, "50")

    state = pending.get(1)
    assert state.step == Step.SECRET_FOR_BUY
    assert state.data["amount"] == pytest.approx(4.99)


async def test_sol_swap_by_percent_reserves_fees(conversation, pending, onboarded):
    await _tap(conversation, "swapf:sol")
    assert pending.get(1).step == Step.SWAP_OUTPUT_SELECTION
    await _tap(conversation, "swapt:usdc")
    assert pending.get(1).step == Step.SWAP_AMOUNT_SELECTION
    await _tap(conversation, "swapa:50")

    state = pending.get(1)
    assert state.step == Step.SECRET_FOR_SWAP
    assert state.data["amount"] == pytest.approx(4.998)
    assert state.data["percent"] is None


@pytest.mark.parametrize("text", ["inf", "1e400", "nan"])
async def test_non_finite_swap_amount_aborts(conversation, pending, telegram, jupiter, onboarded, text):
    await _tap(conversation, "swapf:sol")
    await _tap(conversation, "swapt:usdc")
    await _tap(conversation, "swapa:custom")
    assert pending.get(1).step == Step.SWAP_CUSTOM_AMOUNT

    await _say(conversation, text)

    assert pending.get(1) is None
    assert "inválida" in telegram.last
    assert jupiter.quotes == []


async def test_text_in_button_only_step_keeps_state(conversation, pending, telegram, onboarded):
    await _tap(conversation, "swapf:sol")
    await _say(conversation, "usdc")

    assert pending.get(1).step == Step.SWAP_OUTPUT_SELECTION
    assert "botones" in telegram.last


# ---------- escaneo ----------
async def test_pasted_mint_triggers_scan(conversation, telegram, onboarded):
    await _say(conversation, MINT_X)

    scan = telegram.edited[-1][2]
    assert "TKX" in scan
    assert "SAFE" in scan


async def test_unknown_token_scan_reports_not_found(conversation, market, telegram, onboarded):
    market.infos.clear()
    await _say(conversation, DEST)

    assert "no encontrado" in telegram.edited[-1][2]


async def test_low_score_is_flagged(conversation, security, telegram, onboarded):
    security.report = security.report.model_copy(update={"score": 30, "grade": "RISKY"})
    await _say(conversation, MINT_X)

    assert "score mínimo" in telegram.edited[-1][2]


async def test_free_text_is_ignored(conversation, telegram, onboarded):
    await _say(conversation, "hola bot")

    assert telegram.sent == []


# ---------- onboarding / referidos ----------
async def test_start_shows_disclaimer_until_accepted(conversation, accounts, telegram, persist):
    await _say(conversation, "/start", account_id=5)
    assert telegram.sent[-1][2][0][0][1] == "onboard:ok"

    await _tap(conversation, "onboard:ok", account_id=5)

    acc = accounts.get(5)
    assert acc.onboarded
    assert acc.wallet_address in telegram.last
    assert persist.calls == 1


async def test_onboarding_never_regenerates_wallet(conversation, accounts, onboarded):
    before = onboarded.wallet_address

    await _tap(conversation, "onboard:ok")

    assert accounts.get(1).wallet_address == before


async def test_referral_is_credited_once_at_onboarding(conversation, accounts, onboarded):
    code = referral_code_for(1)

    await _say(conversation, f"/start {code}", account_id=7)
    await _tap(conversation, "onboard:ok", account_id=7)
    await _tap(conversation, "onboard:ok", account_id=7)

    assert accounts.get(7).settings.referred_by == code
    assert accounts.get(1).settings.referral_count == 1


async def test_menus_require_onboarding(conversation, telegram):
    await _tap(conversation, "wallet", account_id=8)

    assert "Lee esto" in telegram.last


# ---------- ajustes / copy / alertas ----------
async def test_slippage_setting_is_stored_in_bps(conversation, accounts, pending, onboarded):
    await _tap(conversation, "set:slippage")
    await _say(conversation, "1.5")

    assert accounts.get(1).settings.slippage_bps == 150
    assert pending.get(1) is None


async def test_out_of_range_setting_aborts(conversation, accounts, pending, onboarded):
    await _tap(conversation, "set:slippage")
    await _say(conversation, "99")

    assert accounts.get(1).settings.slippage_bps == 100
    assert pending.get(1) is None


async def test_take_profit_setting_chains_into_stop_loss(conversation, accounts, pending, onboarded):
    await _tap(conversation, "set:tpsl")
    await _say(conversation, "50")

    assert accounts.get(1).settings.tp_percent == 50
    assert pending.get(1).data == {"key": "sl"}

    await _say(conversation, "0")
    assert accounts.get(1).settings.sl_percent is None
    assert pending.get(1) is None


async def test_stop_loss_setting_rejects_100_or_more(conversation, accounts, pending, telegram, onboarded):
    await _tap(conversation, "set:tpsl")
    await _say(conversation, "50")
    await _say(conversation, "150")

    assert accounts.get(1).settings.tp_percent == 50
    assert accounts.get(1).settings.sl_percent is None
    assert pending.get(1) is None
    assert "SL entre 0 y 99" in telegram.last


async def test_quick_buy_amounts_setting(conversation, accounts, onboarded):
    await _tap(conversation, "set:quickbuy")
    await _say(conversation, "0.2, 1, 3")

    assert accounts.get(1).settings.quick_buy_amounts == [0.2, 1.0, 3.0]


async def test_copy_wallet_is_added_once(conversation, accounts, onboarded):
    await _tap(conversation, "copyadd")
    await _say(conversation, COPY_WALLET)
    await _tap(conversation, "copyadd")
    await _say(conversation, COPY_WALLET)

    assert accounts.get(1).settings.copy_wallets == [COPY_WALLET]


async def test_copy_wallet_limit(conversation, accounts, pending, telegram, onboarded):
    accounts.update(1, lambda acc: acc.settings.copy_wallets.extend(["a", "b", "c"]))

    await _tap(conversation, "copyadd")

    assert pending.get(1) is None
    assert "Máximo 3" in telegram.last


async def test_manual_alert_direction_from_current_price(conversation, alerts, onboarded):
    await _tap(conversation, "alertnew")
    await _say(conversation, MINT_X)
    await _say(conversation, "1.5")

    alert = alerts.list_for(1)[0]
    assert alert.direction == AlertDirection.BELOW
    assert alert.target_price == 1.5

    await _tap(conversation, f"alertdel:{alert.id}")
    assert alerts.list_for(1) == []


async def test_infinite_alert_target_is_rejected(conversation, alerts, pending, telegram, onboarded):
    await _tap(conversation, "alertnew")
    await _say(conversation, MINT_X)
    await _say(conversation, "inf")

    assert alerts.list_for(1) == []
    assert pending.get(1) is None
    assert "Precio inválido" in telegram.last


@pytest.mark.parametrize("text", ["inf", "1e400"])
async def test_non_finite_setting_is_rejected(conversation, accounts, pending, onboarded, text):
    await _tap(conversation, "set:priority")
    await _say(conversation, text)

    assert accounts.get(1).settings.priority_fee_sol == 0.0005
    assert pending.get(1) is None
