# services/jupiter_service.py
from __future__ import annotations
import asyncio
import base64
from typing import Optional

import requests

from models.trade import RouteQuote
from utils.config import AppConfig
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class JupiterService:
    """
    Cliente mínimo del agregador Jupiter (lite-api):
      - /quote → RouteQuote o None si no hay ruta
      - /swap  → bytes de la VersionedTransaction sin firmar o None
    Las llamadas HTTP (requests) corren en un hilo para no bloquear el loop.
    """

    def __init__(self, config: AppConfig) -> None:
        self.base_url = config.jupiter_api.rstrip("/")
        self.timeout = config.http_timeout_secs

    def _get_quote_sync(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Optional[RouteQuote]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": slippage_bps,
        }
        try:
            r = requests.get(f"{self.base_url}/quote", params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[jupiter] error de red en quote: {e}")
            return None
        if r.status_code != 200:
            logger.warning(f"[jupiter] quote {r.status_code}: {r.text[:200]}")
            return None
        data = r.json() or {}
        if "error" in data or not data.get("outAmount"):
            logger.warning(f"[jupiter] sin ruta {input_mint[:8]}→{output_mint[:8]}: {data.get('error')}")
            return None
        return RouteQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=int(data.get("inAmount", amount)),
            out_amount=int(data.get("outAmount", 0)),
            price_impact_pct=float(data.get("priceImpactPct") or 0),
            raw=data,
        )

    @log_function
    async def get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Optional[RouteQuote]:
        return await asyncio.to_thread(self._get_quote_sync, input_mint, output_mint, amount, slippage_bps)

    def _build_swap_sync(self, quote: RouteQuote, user_public_key: str, priority_fee_lamports: int) -> Optional[bytes]:
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": priority_fee_lamports,
        }
        try:
            r = requests.post(f"{self.base_url}/swap", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[jupiter] error de red en swap: {e}")
            return None
        if r.status_code != 200:
            logger.warning(f"[jupiter] swap {r.status_code}: {r.text[:200]}")
            return None
        swap_tx = (r.json() or {}).get("swapTransaction")
        if not swap_tx:
            return None
        return base64.b64decode(swap_tx)

    @log_function
    async def build_swap(self, quote: RouteQuote, user_public_key: str, priority_fee_lamports: int) -> Optional[bytes]:
        return await asyncio.to_thread(self._build_swap_sync, quote, user_public_key, priority_fee_lamports)
