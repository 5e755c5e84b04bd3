"""
Service for the token security scan.

Queries the RugCheck report summary for a mint. Any failure degrades to an
``unknown`` report so a scan never blocks the user.
"""

from __future__ import annotations

import asyncio

import requests

from models.token import SecurityReport
from utils.config import AppConfig
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class SecurityService:
    def __init__(self, config: AppConfig) -> None:
        self.base_url = config.rugcheck_api.rstrip("/")
        self.timeout = config.http_timeout_secs

    def _scan_sync(self, mint: str) -> SecurityReport:
        try:
            url = f"{self.base_url}/tokens/{mint}/report/summary"
            response = requests.get(url, timeout=self.timeout)
            if response.status_code != 200:
                logger.warning(f"RugCheck API error: {response.status_code}")
                return SecurityReport.unknown()

            data = response.json() or {}
            score = data.get("score")
            score = 50 if score is None else int(score)
            risks = [f"{r.get('name', '?')}: {r.get('description', '')}" for r in (data.get("risks") or [])]
            return SecurityReport(score=score, grade=SecurityReport.grade_for(score), risks=risks)

        except (requests.RequestException, ValueError, TypeError) as e:
            logger.error(f"Error al consultar RugCheck: {e}")
            return SecurityReport.unknown()

    @log_function
    async def scan(self, mint: str) -> SecurityReport:
        return await asyncio.to_thread(self._scan_sync, mint)
