"""
In-memory account store.

Accounts are created lazily on first access and never removed. Every
mutation goes through ``update`` so it runs without suspension points; the
per-account ``asyncio.Lock`` from ``lock`` serialises whole trades
(acquire signer, execute, mutate ledger).
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from models.account import Account, Settings, referral_code_for
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)

T = TypeVar("T")


class AccountRepository:
    def __init__(self) -> None:
        self._accounts: Dict[int, Account] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def exists(self, account_id: int) -> bool:
        return account_id in self._accounts

    def get(self, account_id: int) -> Account:
        """Return the account, creating it with default settings if new."""
        account = self._accounts.get(account_id)
        if account is None:
            account = Account(id=account_id, settings=Settings(referral_code=referral_code_for(account_id)))
            self._accounts[account_id] = account
            logger.info(f"👤 nueva cuenta {account_id}")
        return account

    def update(self, account_id: int, fn: Callable[[Account], T]) -> T:
        """Apply ``fn`` to the account in one step (no awaits inside)."""
        return fn(self.get(account_id))

    def lock(self, account_id: int) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[account_id] = lock
        return lock

    def items(self) -> List[Tuple[int, Account]]:
        # copia: los monitores iteran mientras los handlers mutan
        return list(self._accounts.items())

    def find_by_referral_code(self, code: str) -> Optional[Account]:
        code = (code or "").strip().upper()
        for account in self._accounts.values():
            if account.settings.referral_code == code:
                return account
        return None

    # ---------- snapshot ----------
    def snapshot(self) -> Dict[str, Any]:
        return {str(k): v.model_dump(mode="json") for k, v in self._accounts.items()}

    def restore(self, data: Dict[str, Any]) -> int:
        restored = 0
        for key, raw in (data or {}).items():
            try:
                account = Account.model_validate(raw)
            except ValueError as e:
                logger.error(f"cuenta {key} descartada al restaurar: {e}")
                continue
            self._accounts[account.id] = account
            restored += 1
        return restored
