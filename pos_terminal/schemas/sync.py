from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import Field

from pos_terminal.schemas.base import CamelModel


class SyncEvent(CamelModel):
    """Change notification broadcast by the backend; carries no payload beyond what changed."""

    type: Literal["sync"] = "sync"
    resource: str
    action: Literal["create", "update", "delete", "refresh"] = "refresh"
    id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
