from __future__ import annotations
import logging
from logging.handlers import RotatingFileHandler
import os, re, functools, inspect, time
from pathlib import Path

_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()
_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "1048576"))
_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "3"))

# claves privadas solana en base58 (64 bytes -> 86-88 caracteres)
_SECRET_RE = re.compile(r"[1-9A-HJ-NP-Za-km-z]{80,90}")
# formato JSON de solana-keygen: 64 enteros entre corchetes
_SECRET_ARRAY_RE = re.compile(r"\[\s*\d{1,3}(?:\s*,\s*\d{1,3}){63}\s*\]")


class SecretRedactionFilter(logging.Filter):
    """Tapa cualquier cadena con forma de clave privada (base58 o array JSON) antes de escribirla."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        if _SECRET_RE.search(msg) or _SECRET_ARRAY_RE.search(msg):
            record.msg = _SECRET_ARRAY_RE.sub("[REDACTED]", _SECRET_RE.sub("[REDACTED]", msg))
            record.args = None
        return True


_REDACTOR = SecretRedactionFilter()


class _LoggerManager:
    def __init__(self) -> None:
        self._configured = False
        self._module_handlers: dict[str, logging.Handler] = {}
        self._log_dir = os.getenv("LOG_DIR", "./logs")

    def _ensure(self) -> None:
        if self._configured:
            return

        level = getattr(logging, _DEFAULT_LEVEL, logging.DEBUG)
        fmt = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        root = logging.getLogger()
        root.setLevel(level)
        if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
            sh = logging.StreamHandler()
            sh.setLevel(level); sh.setFormatter(fmt)
            root.addHandler(sh)
        for h in root.handlers:
            if _REDACTOR not in h.filters:
                h.addFilter(_REDACTOR)

        # httpx (solana-py) loguea cada request en INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("solders").setLevel(logging.WARNING)
        # en DEBUG, PTB vuelca cada getUpdates con el texto de los usuarios
        logging.getLogger("telegram").setLevel(logging.INFO)

        Path(self._log_dir).mkdir(parents=True, exist_ok=True)
        self._configured = True

    def setup_logger(self, name: str) -> logging.Logger:
        self._ensure()
        logger = logging.getLogger(name)

        if name not in self._module_handlers:
            safe_name = name.replace(".", "_").replace("/", "_")
            file_path = os.path.join(self._log_dir, f"{safe_name}.log")
            try:
                fh = RotatingFileHandler(file_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
                fh.setLevel(getattr(logging, _DEFAULT_LEVEL, logging.DEBUG))
                fh.setFormatter(logging.Formatter(
                    fmt="%(asctime)s | %(levelname)s | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S"
                ))
                fh.addFilter(_REDACTOR)
                self._module_handlers[name] = fh
                logger.addHandler(fh)
                logger.propagate = True  # conserva salida a consola
            except OSError:
                pass

        return logger

logger_manager = _LoggerManager()

def log_function(func):
    """
    Traza entrada/salida de la función (sync o async).
    No usar en funciones que reciben texto crudo del usuario: se loguean los args.
    """
    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger = logger_manager.setup_logger(func.__module__)
            logger.debug(f"→ {func.__name__} args={args} kwargs={kwargs}")
            t0 = time.time()
            try:
                result = await func(*args, **kwargs)
                logger.debug(f"← {func.__name__} ({(time.time()-t0)*1000:.1f} ms)")
                return result
            except Exception as e:
                logger.exception(f"✗ {func.__name__}: {e}")
                raise
        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logger_manager.setup_logger(func.__module__)
        logger.debug(f"→ {func.__name__} args={args} kwargs={kwargs}")
        t0 = time.time()
        try:
            result = func(*args, **kwargs)
            logger.debug(f"← {func.__name__} ({(time.time()-t0)*1000:.1f} ms)")
            return result
        except Exception as e:
            logger.exception(f"✗ {func.__name__}: {e}")
            raise
    return wrapper
