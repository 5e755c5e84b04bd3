"""
Ledger RPC access (solana-py ``AsyncClient``).

Read helpers return ``None`` / zero for "not found" and raise ``RpcError``
when the node keeps failing after the configured retries. Broadcast and
confirmation raise the execution errors the trade pipeline reports.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from utils.config import AppConfig
from utils.errors import BroadcastFailed, ConfirmTimeout, RpcError
from utils.log_config import logger_manager, log_function
from utils.solana_utils import lamports_to_sol

logger = logger_manager.setup_logger(__name__)

_CONFIRMED = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)


class SolanaService:
    def __init__(self, config: AppConfig, client: Optional[AsyncClient] = None) -> None:
        self.config = config
        self._client = client or AsyncClient(config.rpc_url, timeout=config.rpc_timeout_secs)

    # ---------- reintentos ----------
    async def _rpc_call(self, label: str, fn: Callable[[], Awaitable[Any]],
                        retries: Optional[int] = None) -> Any:
        """Ejecuta una llamada RPC con reintentos y backoff lineal."""
        retries = retries or self.config.rpc_retries
        last_exc: Optional[Exception] = None
        for attempt in range(1, retries + 1):
            try:
                return await fn()
            except Exception as e:
                last_exc = e
                logger.warning(f"[RPC:{label}] intento {attempt}/{retries} falló: {e}")
                if attempt < retries:
                    await asyncio.sleep(self.config.rpc_retry_backoff_secs * attempt)
        raise RpcError(f"{label}: {last_exc}")

    # ---------- lecturas ----------
    @log_function
    async def get_balance_sol(self, address: str) -> float:
        resp = await self._rpc_call("get_balance", lambda: self._client.get_balance(Pubkey.from_string(address)))
        return lamports_to_sol(resp.value or 0)

    async def _token_accounts(self, owner: str, mint: Optional[str] = None) -> List[Any]:
        opts = TokenAccountOpts(mint=Pubkey.from_string(mint)) if mint else TokenAccountOpts(
            program_id=Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"))
        resp = await self._rpc_call(
            "get_token_accounts",
            lambda: self._client.get_token_accounts_by_owner_json_parsed(Pubkey.from_string(owner), opts, Confirmed),
        )
        return list(resp.value or [])

    @staticmethod
    def _parse_token_account(ta: Any) -> Dict[str, Any]:
        info = ta.account.data.parsed["info"]
        amount = info["tokenAmount"]
        return {
            "mint": info["mint"],
            "account": str(ta.pubkey),
            "amount": int(amount.get("amount") or 0),
            "decimals": int(amount.get("decimals") or 0),
            "ui_amount": float(amount.get("uiAmount") or 0),
        }

    @log_function
    async def get_token_balance(self, owner: str, mint: str) -> Optional[Dict[str, Any]]:
        """Saldo de un mint sumando todas las cuentas del owner; None si no tiene ninguna."""
        accounts = [self._parse_token_account(ta) for ta in await self._token_accounts(owner, mint)]
        if not accounts:
            return None
        total = sum(a["amount"] for a in accounts)
        decimals = accounts[0]["decimals"]
        return {
            "mint": mint,
            "account": accounts[0]["account"],
            "amount": total,
            "decimals": decimals,
            "ui_amount": total / (10 ** decimals) if decimals else float(total),
        }

    @log_function
    async def get_token_balances(self, owner: str) -> List[Dict[str, Any]]:
        balances = [self._parse_token_account(ta) for ta in await self._token_accounts(owner)]
        return [b for b in balances if b["amount"] > 0]

    async def get_signatures(self, address: str, limit: int) -> List[str]:
        resp = await self._rpc_call(
            "get_signatures",
            lambda: self._client.get_signatures_for_address(Pubkey.from_string(address), limit=limit),
        )
        return [str(s.signature) for s in (resp.value or [])]

    async def get_transaction_logs(self, signature: str) -> Optional[List[str]]:
        resp = await self._rpc_call(
            "get_transaction",
            lambda: self._client.get_transaction(Signature.from_string(signature),
                                                 max_supported_transaction_version=0),
        )
        tx = resp.value
        if tx is None or tx.transaction.meta is None:
            return None
        return list(tx.transaction.meta.log_messages or [])

    async def account_exists(self, address: str) -> bool:
        resp = await self._rpc_call("get_account_info",
                                    lambda: self._client.get_account_info(Pubkey.from_string(address)))
        return resp.value is not None

    async def get_latest_blockhash(self) -> Hash:
        resp = await self._rpc_call("get_latest_blockhash", lambda: self._client.get_latest_blockhash())
        return resp.value.blockhash

    # ---------- envío / confirmación ----------
    @log_function
    async def send_raw_transaction(self, raw: bytes) -> str:
        opts = TxOpts(skip_preflight=False, preflight_commitment=Confirmed, max_retries=0)
        try:
            resp = await self._rpc_call("send_raw_tx", lambda: self._client.send_raw_transaction(raw, opts=opts),
                                        retries=self.config.broadcast_retries)
        except RpcError as e:
            raise BroadcastFailed(e.detail) from e
        return str(resp.value)

    @log_function
    async def confirm(self, signature: str) -> None:
        """Poll the signature status until ``confirmed`` or the timeout expires.

        :raises BroadcastFailed: the transaction landed with an error.
        :raises ConfirmTimeout: no confirmation in time (it may still land).
        """
        sig = Signature.from_string(signature)
        deadline = time.monotonic() + self.config.confirm_timeout_secs
        while time.monotonic() < deadline:
            try:
                resp = await self._client.get_signature_statuses([sig])
                status = resp.value[0] if resp.value else None
            except Exception as e:
                logger.warning(f"[confirm] {signature[:12]}... error consultando estado: {e}")
                status = None
            if status is not None:
                if status.err:
                    raise BroadcastFailed(f"tx fallida en cadena: {status.err}")
                if status.confirmation_status in _CONFIRMED:
                    logger.info(f"✅ confirmada {signature[:12]}...")
                    return
            await asyncio.sleep(self.config.confirm_poll_secs)
        raise ConfirmTimeout(signature)

    async def close(self) -> None:
        try:
            await self._client.close()
        except Exception as e:
            logger.warning(f"Error cerrando cliente RPC: {e}")
