# orchestrators/scheduler.py
from __future__ import annotations
from typing import Awaitable, Callable, Dict, Optional

from telegram.ext import ContextTypes, Job, JobQueue

from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)

Tick = Callable[[], Awaitable[object]]


class Scheduler:
    """
    Tareas periódicas sobre el JobQueue de python-telegram-bot.
    Una excepción en un tick se loguea y no cancela el job.
    """

    def __init__(self, job_queue: JobQueue) -> None:
        self.job_queue = job_queue
        self._jobs: Dict[str, Job] = {}

    def every(self, name: str, interval: float, tick: Tick, first: Optional[float] = None) -> Job:
        self.cancel(name)

        async def _run(context: ContextTypes.DEFAULT_TYPE) -> None:
            try:
                await tick()
            except Exception as e:
                logger.exception(f"[{name}] tick falló: {e}")

        job = self.job_queue.run_repeating(_run, interval=interval, first=interval if first is None else first, name=name)
        self._jobs[name] = job
        logger.info(f"⏱ job '{name}' cada {interval:g}s")
        return job

    def cancel(self, name: str) -> bool:
        job = self._jobs.pop(name, None)
        if job is None:
            return False
        job.schedule_removal()
        return True

    def cancel_all(self) -> None:
        for name in list(self._jobs):
            self.cancel(name)
