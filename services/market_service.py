# services/market_service.py
from __future__ import annotations
import asyncio
from typing import Optional

import requests

from models.token import TokenInfo
from utils.config import AppConfig
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class MarketService:
    """
    Precio y metadatos de un mint en Solana vía DexScreener.
    Se usa el par Solana con más liquidez; None si no hay datos.
    """

    def __init__(self, config: AppConfig) -> None:
        self.base_url = config.dexscreener_api.rstrip("/")
        self.timeout = config.http_timeout_secs

    def _fetch_sync(self, mint: str) -> Optional[TokenInfo]:
        url = f"{self.base_url}/latest/dex/tokens/{mint}"
        try:
            r = requests.get(url, timeout=self.timeout)
            r.raise_for_status()
            pairs = (r.json() or {}).get("pairs") or []
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[dexscreener] {mint[:8]}...: {e}")
            return None
        pairs = [p for p in pairs if p.get("chainId") == "solana"]
        if not pairs:
            return None
        best = max(pairs, key=lambda p: float((p.get("liquidity") or {}).get("usd") or 0))
        try:
            return TokenInfo.from_dexscreener(mint, best)
        except (TypeError, ValueError) as e:
            logger.warning(f"[dexscreener] par inválido para {mint[:8]}...: {e}")
            return None

    @log_function
    async def get_token_info(self, mint: str) -> Optional[TokenInfo]:
        return await asyncio.to_thread(self._fetch_sync, mint)

    async def get_price_native(self, mint: str) -> Optional[float]:
        info = await self.get_token_info(mint)
        if info is None or info.price_native <= 0:
            return None
        return info.price_native
