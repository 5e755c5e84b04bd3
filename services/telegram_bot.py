from __future__ import annotations

from typing import Optional

from telegram import Update
from telegram.ext import Application, CallbackQueryHandler, ContextTypes, MessageHandler, filters

from controllers.conversation_controller import ConversationController
from controllers.ledger_controller import LedgerController
from controllers.menu_controller import MenuController
from controllers.trade_controller import TradeController
from orchestrators.alert_orchestrator import AlertOrchestrator
from orchestrators.copytrade_orchestrator import CopyTradeOrchestrator
from orchestrators.persistence_orchestrator import PersistenceOrchestrator
from orchestrators.scheduler import Scheduler
from repositories.account_repository import AccountRepository
from repositories.alert_repository import AlertRepository
from repositories.pending_repository import PendingRepository
from repositories.snapshot_repository import SnapshotRepository
from services.jupiter_service import JupiterService
from services.market_service import MarketService
from services.security_service import SecurityService
from services.solana_service import SolanaService
from services.telegram_service import TelegramService
from utils.config import AppConfig
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)


class TelegramBot:
    """
    Arma la Application de python-telegram-bot con todos los componentes.

    Texto y botones van al mismo ``ConversationController``. Los jobs
    periódicos (alertas, copy trading, snapshot) corren en el JobQueue.
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config

        self.application = (
            Application.builder()
            .token(config.telegram_token)
            .concurrent_updates(True)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        # ---- estado ----
        self.accounts = AccountRepository()
        self.alerts = AlertRepository()
        self.pending = PendingRepository()
        self.persistence = PersistenceOrchestrator(SnapshotRepository(config.db_path), self.accounts, self.alerts)

        # ---- servicios externos ----
        self.solana = SolanaService(config)
        self.jupiter = JupiterService(config)
        self.market = MarketService(config)
        self.security = SecurityService(config)
        self.telegram = TelegramService(self.application.bot)

        # ---- lógica ----
        ledger = LedgerController(self.accounts, self.alerts)
        self.trades = TradeController(self.solana, self.jupiter, self.market, ledger, self.alerts,
                                      persist=self.persistence.save)
        self.menus = MenuController(self.solana, self.market, self.alerts)
        self.conversation = ConversationController(
            accounts=self.accounts,
            pending=self.pending,
            alerts=self.alerts,
            trades=self.trades,
            menus=self.menus,
            telegram=self.telegram,
            solana=self.solana,
            market=self.market,
            security=self.security,
            persist=self.persistence.save,
        )
        self.alert_engine = AlertOrchestrator(self.alerts, self.market, self.telegram, persist=self.persistence.save)
        self.copytrade = CopyTradeOrchestrator(self.accounts, self.solana, self.telegram,
                                               lookback=config.copy_lookback, seen_cap=config.copy_seen_cap)
        self.scheduler: Optional[Scheduler] = None

        self.application.add_handler(MessageHandler(filters.TEXT, self.on_message))
        self.application.add_handler(CallbackQueryHandler(self.on_callback))
        self.application.add_error_handler(self.on_error)

    # ------------------------------------------------------------------
    # ciclo de vida
    # ------------------------------------------------------------------
    async def _post_init(self, application: Application) -> None:
        self.persistence.load()
        try:
            me = await application.bot.get_me()
            self.menus.bot_username = me.username or ""
        except Exception as e:
            logger.warning(f"No se pudo leer el username del bot: {e}")

        scheduler = Scheduler(application.job_queue)
        scheduler.every("alerts", self.config.alert_interval_secs, self.alert_engine.tick, first=5)
        scheduler.every("copytrade", self.config.copy_interval_secs, self.copytrade.tick, first=10)
        scheduler.every("snapshot", self.config.snapshot_interval_secs, self.persistence.save)
        self.scheduler = scheduler
        logger.info(f"🤖 bot @{self.menus.bot_username or '?'} listo")

    async def _post_shutdown(self, application: Application) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel_all()
        await self.persistence.save()
        await self.solana.close()
        logger.info("💾 estado guardado, conexión RPC cerrada")

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------
    async def on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        user = update.effective_user
        if message is None or user is None or not message.text:
            return
        await self.conversation.handle_input(
            user.id, message.chat_id, text=message.text, message_id=message.message_id)

    async def on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None:
            return
        await query.answer()
        chat_id = query.message.chat_id if query.message else query.from_user.id
        message_id = query.message.message_id if query.message else None
        await self.conversation.handle_input(
            query.from_user.id, chat_id, callback=query.data or "", message_id=message_id)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(f"Error no controlado procesando update: {context.error}", exc_info=context.error)

    def run(self) -> None:
        logger.info("TelegramBot iniciando...")
        self.application.run_polling(allowed_updates=Update.ALL_TYPES)
