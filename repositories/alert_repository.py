"""
In-memory alert store shared by the trade pipeline, the conversation flows
and the alert engine.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from models.alert import Alert
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)


class AlertRepository:
    def __init__(self) -> None:
        self._alerts: List[Alert] = []

    def add(self, alert: Alert) -> Alert:
        self._alerts.append(alert)
        return alert

    def all(self) -> List[Alert]:
        return list(self._alerts)

    def get(self, alert_id: str) -> Optional[Alert]:
        return next((a for a in self._alerts if a.id == alert_id), None)

    def list_for(self, account_id: int) -> List[Alert]:
        return [a for a in self._alerts if a.account_id == account_id]

    def remove_by_ids(self, ids: Iterable[str]) -> int:
        """Remove by identity in one pass; unknown ids are ignored."""
        ids = set(ids)
        before = len(self._alerts)
        self._alerts = [a for a in self._alerts if a.id not in ids]
        return before - len(self._alerts)

    def remove(self, account_id: int, alert_id: str) -> bool:
        alert = self.get(alert_id)
        if alert is None or alert.account_id != account_id:
            return False
        return self.remove_by_ids([alert_id]) == 1

    def purge(self, account_id: int, mint: str) -> int:
        """Drop every alert of ``mint`` for ``account_id`` (position closed)."""
        ids = [a.id for a in self._alerts if a.account_id == account_id and a.mint == mint]
        removed = self.remove_by_ids(ids)
        if removed:
            logger.info(f"🧹 {removed} alertas purgadas ({account_id}, {mint[:8]}...)")
        return removed

    def __len__(self) -> int:
        return len(self._alerts)

    # ---------- snapshot ----------
    def snapshot(self) -> List[Any]:
        return [a.model_dump(mode="json") for a in self._alerts]

    def restore(self, data: List[Any]) -> int:
        alerts: List[Alert] = []
        for raw in data or []:
            try:
                alerts.append(Alert.model_validate(raw))
            except ValueError as e:
                logger.error(f"alerta descartada al restaurar: {e}")
        self._alerts = alerts
        return len(alerts)
