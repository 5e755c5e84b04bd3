"""
Enumeration of the steps of the conversation state machine.

Each value is the pending step an account is waiting on. ``IDLE`` is never
stored: an account with no pending record is idle.
"""

from __future__ import annotations

from enum import Enum


class ConversationStep(str, Enum):
    """Pending input an account is expected to send next."""

    IDLE = "idle"

    SCAN_ADDRESS = "awaiting_scan_address"
    BUY_CUSTOM_AMOUNT = "awaiting_buy_custom_amount"
    BUY_PERCENT_OF_BALANCE = "awaiting_buy_percent_of_balance"
    TP_AMOUNT = "awaiting_tp_amount"
    TP_VALUE = "awaiting_tp_value"
    SL_VALUE = "awaiting_sl_value"
    SELL_CUSTOM_PERCENT = "awaiting_sell_custom_percent"
    SEND_DESTINATION = "awaiting_send_destination"
    SEND_AMOUNT = "awaiting_send_amount"
    SWAP_OUTPUT_SELECTION = "awaiting_swap_output_selection"
    SWAP_CUSTOM_OUTPUT = "awaiting_swap_custom_output"
    SWAP_AMOUNT_SELECTION = "awaiting_swap_amount_selection"
    SWAP_CUSTOM_AMOUNT = "awaiting_swap_custom_amount"
    SEND_TOKEN_DESTINATION = "awaiting_send_token_destination"
    SEND_TOKEN_AMOUNT = "awaiting_send_token_amount"
    ALERT_ASSET = "awaiting_alert_asset"
    ALERT_TARGET_PRICE = "awaiting_alert_target_price"
    COPY_WALLET_ADDRESS = "awaiting_copy_wallet_address"
    SETTING_VALUE = "awaiting_setting_value"

    SECRET_FOR_BUY = "awaiting_secret_for_buy"
    SECRET_FOR_SELL = "awaiting_secret_for_sell"
    SECRET_FOR_SEND = "awaiting_secret_for_send"
    SECRET_FOR_SWAP = "awaiting_secret_for_swap"
    SECRET_FOR_SEND_TOKEN = "awaiting_secret_for_send_token"

    @property
    def is_secret(self) -> bool:
        return self.value.startswith("awaiting_secret_for_")
