# Punto de entrada único para el logging del bot.
from utils.logger import logger_manager, log_function, SecretRedactionFilter

__all__ = ["logger_manager", "log_function", "SecretRedactionFilter"]
