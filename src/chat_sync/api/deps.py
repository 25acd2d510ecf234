"""FastAPI dependency helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from chat_sync.infrastructure.sse.manager import ConnectionManager

_manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return _manager


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Identity asserted by the authenticating gateway in front of this service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_user_id.strip()


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
ManagerDep = Annotated[ConnectionManager, Depends(get_manager)]
