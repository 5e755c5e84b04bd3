# orchestrators/copytrade_orchestrator.py
from __future__ import annotations
from collections import OrderedDict
from typing import List, Optional

from repositories.account_repository import AccountRepository
from services.solana_service import SolanaService
from services.telegram_service import TelegramService
from utils.log_config import logger_manager, log_function
from utils.solana_utils import explorer_tx_url, short

logger = logger_manager.setup_logger(__name__)


class SeenSignatures:
    """Conjunto FIFO acotado: al superar ``cap`` se olvidan las más antiguas."""

    def __init__(self, cap: int) -> None:
        self.cap = max(1, cap)
        self._items: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def add(self, key: str) -> None:
        self._items[key] = None
        self._items.move_to_end(key)
        while len(self._items) > self.cap:
            self._items.popitem(last=False)

    def __len__(self) -> int:
        return len(self._items)


def is_aggregator_trade(logs: Optional[List[str]]) -> bool:
    """Heurística: el programa de Jupiter deja 'JUP' en los logs."""
    return any("JUP" in line for line in (logs or []))


class CopyTradeOrchestrator:
    def __init__(self, accounts: AccountRepository, solana: SolanaService, telegram: TelegramService,
                 lookback: int = 5, seen_cap: int = 20000) -> None:
        self.accounts = accounts
        self.solana = solana
        self.telegram = telegram
        self.lookback = lookback
        self.seen = SeenSignatures(seen_cap)

    @log_function
    async def tick(self) -> int:
        notified = 0
        for account_id, account in self.accounts.items():
            wallets = list(account.settings.copy_wallets)
            if not wallets or not account.wallet_address:
                continue
            for wallet in wallets:
                try:
                    notified += await self._scan(account_id, account.chat_id or account_id, wallet)
                except Exception as e:
                    logger.warning(f"[copy] {short(wallet)} de {account_id}: {e}")
        return notified

    async def _scan(self, account_id: int, chat_id: int, wallet: str) -> int:
        notified = 0
        for signature in await self.solana.get_signatures(wallet, self.lookback):
            key = f"{account_id}:{signature}"
            if key in self.seen:
                continue
            self.seen.add(key)

            logs = await self.solana.get_transaction_logs(signature)
            if not is_aggregator_trade(logs):
                continue

            await self.telegram.send(
                chat_id,
                f"👥 *Copy trade detectado*\n\n"
                f"La wallet `{short(wallet)}` hizo un swap.\n"
                f"[Ver TX]({explorer_tx_url(signature)})\n\n"
                f"Para copiarlo, pega la dirección del token.",
            )
            notified += 1
        return notified
