from __future__ import annotations
from typing import Optional

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from services.keyboards import Keyboard, to_markup
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)


class TelegramService:
    """
    Salida hacia Telegram. Nunca lanza: un fallo de envío se loguea y
    devuelve None para que el flujo de negocio siga.
    """

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send(self, chat_id: int, text: str, keyboard: Optional[Keyboard] = None,
                   markdown: bool = True) -> Optional[int]:
        try:
            msg = await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.MARKDOWN if markdown else None,
                reply_markup=to_markup(keyboard),
                disable_web_page_preview=True,
            )
            return msg.message_id
        except BadRequest as e:
            # normalmente Markdown mal formado: reintento en texto plano
            logger.warning(f"❌ Telegram rechazó el mensaje ({e}); reintento sin formato")
            if markdown:
                return await self.send(chat_id, text, keyboard, markdown=False)
            return None
        except TelegramError as e:
            logger.error(f"❌ Error enviando Telegram a {chat_id}: {e}")
            return None

    async def edit(self, chat_id: int, message_id: int, text: str, keyboard: Optional[Keyboard] = None) -> None:
        try:
            await self.bot.edit_message_text(
                chat_id=chat_id, message_id=message_id, text=text,
                parse_mode=ParseMode.MARKDOWN, reply_markup=to_markup(keyboard),
                disable_web_page_preview=True,
            )
        except TelegramError as e:
            logger.debug(f"edit fallido ({e}); envío nuevo")
            await self.send(chat_id, text, keyboard)

    async def delete_message(self, chat_id: int, message_id: Optional[int]) -> bool:
        """Best effort: el usuario puede haber borrado ya el mensaje."""
        if message_id is None:
            return False
        try:
            return bool(await self.bot.delete_message(chat_id=chat_id, message_id=message_id))
        except TelegramError as e:
            logger.warning(f"No se pudo borrar el mensaje {message_id} en {chat_id}: {e}")
            return False
