from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

SSE_HEARTBEAT = ": heartbeat\n\n"


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_envelope(user_ids: Sequence[str], payload: dict[str, Any]) -> str:
    envelope = {
        "event": payload.get("type", "unknown"),
        "user_ids": list(user_ids),
        "data": payload,
    }
    return json.dumps(envelope, cls=_Encoder)


def deserialize_envelope(raw: str | bytes) -> tuple[list[str], dict[str, Any]]:
    data = json.loads(raw)
    return [str(uid) for uid in data.get("user_ids", [])], data["data"]


def encode_frame(payload: dict[str, Any]) -> str:
    return json.dumps(payload, cls=_Encoder)


def encode_sse(payload: dict[str, Any]) -> str:
    return f"data: {encode_frame(payload)}\n\n"
