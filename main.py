# main.py
from __future__ import annotations
import sys

# ---- carga .env antes de importar el proyecto (el logger lee LOG_* al importarse) ----
from dotenv import load_dotenv
load_dotenv()

# ---- imports del proyecto ----
from services.telegram_bot import TelegramBot
from utils.config import load_config
from utils.errors import ConfigError
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)


def main() -> None:
    try:
        config = load_config()
    except ConfigError as e:
        logger.error(f"❌ No se puede arrancar: {e}")
        sys.exit(1)

    logger.info("🚀 Iniciando bot de trading Solana...")
    TelegramBot(config).run()
    logger.info("✅ Apagado completado.")


if __name__ == "__main__":
    main()
