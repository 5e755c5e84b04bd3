from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field

from enums.conversation_step import ConversationStep


class PendingState(BaseModel):
    """What the account is expected to send next, plus what was collected so far."""

    step: ConversationStep
    data: Dict[str, Any] = Field(default_factory=dict)
