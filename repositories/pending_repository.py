from __future__ import annotations

from typing import Any, Dict, Optional

from enums.conversation_step import ConversationStep
from models.pending_state import PendingState


class PendingRepository:
    """At most one pending conversation step per account. Not persisted."""

    def __init__(self) -> None:
        self._pending: Dict[int, PendingState] = {}

    def get(self, account_id: int) -> Optional[PendingState]:
        return self._pending.get(account_id)

    def set(self, account_id: int, step: ConversationStep, data: Optional[Dict[str, Any]] = None) -> PendingState:
        state = PendingState(step=step, data=dict(data or {}))
        self._pending[account_id] = state
        return state

    def clear(self, account_id: int) -> Optional[PendingState]:
        return self._pending.pop(account_id, None)
