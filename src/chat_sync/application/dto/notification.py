from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.value_objects.enums import ToastLevel


@dataclass(frozen=True, slots=True)
class Toast:
    id: int
    level: ToastLevel
    message: str
    created_at: datetime
