"""
Real-time fan-out of dispatch changes.

Messages are published on a per-terminal Redis channel as JSON
{"event": ..., "data": ...}. Publishing is best effort.
"""

import json
import logging
from typing import Any

from dispatch_backend.app.core.redis_client import terminal_channel

logger = logging.getLogger("dispatch.realtime")

DISPATCH_CREATED = "dispatch:created"
DISPATCH_UPDATED = "dispatch:updated"
DISPATCH_STATUS_CHANGED = "dispatch:statusChanged"
DISPATCH_DELETED = "dispatch:deleted"
STOP_UPDATED = "stop:updated"


class RealtimePublisher:

    def __init__(self, redis):
        self.redis = redis

    async def publish(self, terminal_id: int, event: str, payload: Any) -> bool:
        """Publish one message; failures are logged and reported as False."""
        if hasattr(payload, "model_dump"):
            payload = payload.model_dump(mode="json")
        message = json.dumps({"event": event, "data": payload}, default=str)
        try:
            await self.redis.publish(terminal_channel(terminal_id), message)
            return True
        except Exception as exc:
            logger.warning("Realtime publish %s to terminal %s failed: %s", event, terminal_id, exc)
            return False
