# orchestrators/persistence_orchestrator.py
from __future__ import annotations
import asyncio

from repositories.account_repository import AccountRepository
from repositories.alert_repository import AlertRepository
from repositories.snapshot_repository import ACCOUNTS, ALERTS, SnapshotRepository
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)


class PersistenceOrchestrator:
    """
    Carga al arrancar y guarda periódicamente / al apagar.
    Los errores de persistencia se loguean y no detienen el bot.
    """

    def __init__(self, snapshots: SnapshotRepository, accounts: AccountRepository, alerts: AlertRepository) -> None:
        self.snapshots = snapshots
        self.accounts = accounts
        self.alerts = alerts

    def load(self) -> None:
        try:
            n_acc = self.accounts.restore(self.snapshots.load(ACCOUNTS) or {})
            n_alerts = self.alerts.restore(self.snapshots.load(ALERTS) or [])
            logger.info(f"📂 restauradas {n_acc} cuentas y {n_alerts} alertas")
        except Exception as e:
            logger.error(f"Snapshot ilegible, se arranca vacío: {e}")

    def save_sync(self) -> bool:
        # las copias se toman aquí, sin puntos de suspensión entre ambas
        accounts = self.accounts.snapshot()
        alerts = self.alerts.snapshot()
        try:
            self._write(accounts, alerts)
            return True
        except Exception as e:
            logger.error(f"Error guardando snapshot: {e}")
            return False

    async def save(self) -> bool:
        accounts = self.accounts.snapshot()
        alerts = self.alerts.snapshot()
        try:
            await asyncio.to_thread(self._write, accounts, alerts)
            return True
        except Exception as e:
            logger.error(f"Error guardando snapshot: {e}")
            return False

    def _write(self, accounts: dict, alerts: list) -> None:
        self.snapshots.save(ACCOUNTS, accounts)
        self.snapshots.save(ALERTS, alerts)
