"""
Error taxonomy for the trading bot.

Every error carries a ``user_message`` that the conversation layer can show
as-is. Execution errors abort the current trade and never touch the ledger.
"""

from __future__ import annotations


class BotError(Exception):
    user_message = "❌ Error inesperado."

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail


class ConfigError(BotError):
    """Missing or invalid startup configuration (fatal)."""
    user_message = "❌ Configuración inválida."


class RpcError(BotError):
    """The ledger RPC answered with an error (as opposed to "not found")."""
    user_message = "❌ Error de red Solana."


# ---------- secretos ----------
class SecretError(BotError):
    pass


class SecretMalformed(SecretError):
    user_message = "❌ Clave privada inválida. Operación cancelada."


class SecretMismatch(SecretError):
    user_message = "❌ La clave no corresponde a tu wallet. Operación cancelada."


# ---------- ejecución ----------
class ExecutionError(BotError):
    user_message = "❌ La operación falló."


class NoRoute(ExecutionError):
    user_message = "❌ No se encontró ruta de swap."


class BuildFailed(ExecutionError):
    user_message = "❌ No se pudo construir la transacción."


class BroadcastFailed(ExecutionError):
    user_message = "❌ No se pudo enviar la transacción."


class ConfirmTimeout(ExecutionError):
    user_message = "⌛ Sin confirmación a tiempo. La transacción podría confirmarse más tarde; revisa el explorador."

    def __init__(self, signature: str, detail: str = "") -> None:
        super().__init__(detail or f"timeout confirmando {signature}")
        self.signature = signature


class InsufficientBalance(ExecutionError):
    user_message = "❌ Saldo insuficiente."


class TradeInProgress(ExecutionError):
    user_message = "⏳ Ya tienes una operación en curso. Espera a que termine."
