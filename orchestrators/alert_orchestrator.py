# orchestrators/alert_orchestrator.py
from __future__ import annotations
from typing import Awaitable, Callable, List, Optional, Tuple

from enums.alert_type import AlertKind
from models.alert import Alert
from repositories.alert_repository import AlertRepository
from services import keyboards
from services.market_service import MarketService
from services.telegram_service import TelegramService
from utils.formatting import esc
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

_EMOJI = {AlertKind.TAKE_PROFIT: "🎯", AlertKind.STOP_LOSS: "🛑", AlertKind.MANUAL: "🔔"}


class AlertOrchestrator:
    def __init__(self, alerts: AlertRepository, market: MarketService, telegram: TelegramService,
                 persist: Optional[Callable[[], Awaitable[None]]] = None) -> None:
        """
        :param alerts: Store de alertas compartido con los flujos de usuario
        :param market: Fuente de precio nativo (SOL) por mint
        :param telegram: Salida de notificaciones
        :param persist: Se llama solo si alguna alerta se disparó
        """
        self.alerts = alerts
        self.market = market
        self.telegram = telegram
        self.persist = persist

    async def _price(self, alert: Alert) -> Optional[float]:
        try:
            return await self.market.get_price_native(alert.mint)
        except Exception as e:
            # se reintenta en el siguiente periodo
            logger.debug(f"precio no disponible para {alert.mint[:8]}...: {e}")
            return None

    @log_function
    async def tick(self) -> int:
        """Evalúa todas las alertas; devuelve cuántas se dispararon."""
        pending = self.alerts.all()
        if not pending:
            return 0

        fired: List[Tuple[Alert, float]] = []
        for alert in pending:
            price = await self._price(alert)
            if price is None:
                continue
            if alert.triggered(price):
                fired.append((alert, price))

        if not fired:
            return 0

        for alert, price in fired:
            await self._notify(alert, price)

        removed = self.alerts.remove_by_ids(a.id for a, _ in fired)
        logger.info(f"🔔 {len(fired)} alertas disparadas ({removed} eliminadas)")
        if self.persist is not None:
            await self.persist()
        return len(fired)

    async def _notify(self, alert: Alert, price: float) -> None:
        if alert.chat_id is None:
            logger.warning(f"alerta {alert.id} sin chat destino")
            return
        msg = (
            f"{_EMOJI.get(alert.kind, '🔔')} *Alerta disparada*\n\n"
            f"{esc(alert.symbol or alert.mint[:8])} cotiza ahora a `{price:.10f}` SOL\n"
            f"Objetivo: `{alert.target_price:.10f}` SOL ({alert.direction.value})\n\n"
            f"[DexScreener](https://dexscreener.com/solana/{alert.mint})"
        )
        await self.telegram.send(alert.chat_id, msg, keyboards.main_menu())
