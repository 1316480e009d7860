from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from collections.abc import AsyncGenerator
from typing import Any

from starlette.requests import Request

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100
POLL_SECONDS = 15.0


class PushHub:
  """
  Per-user in-process fan-out for the notification stream.

  Best effort only: a user without an open stream simply misses the push, and
  a full queue drops the event (the record is already persisted).
  """

  def __init__(self) -> None:
    self._queues: dict[str, set[asyncio.Queue]] = defaultdict(set)

  def subscribe(self, user_id: str) -> asyncio.Queue:
    q: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
    self._queues[user_id].add(q)
    return q

  def unsubscribe(self, user_id: str, q: asyncio.Queue) -> None:
    qs = self._queues.get(user_id)
    if not qs:
      return
    qs.discard(q)
    if not qs:
      self._queues.pop(user_id, None)

  def subscriber_count(self, user_id: str) -> int:
    return len(self._queues.get(user_id) or ())

  def publish(self, user_id: str, event: dict[str, Any]) -> int:
    delivered = 0
    for q in list(self._queues.get(user_id) or ()):
      try:
        q.put_nowait(event)
        delivered += 1
      except asyncio.QueueFull:
        logger.warning("push queue full for user %s; dropping event", user_id)
    return delivered

  async def stream(self, request: Request, user_id: str) -> AsyncGenerator[dict, None]:
    q = self.subscribe(user_id)
    try:
      while True:
        if await request.is_disconnected():
          break
        try:
          event = await asyncio.wait_for(q.get(), timeout=POLL_SECONDS)
        except asyncio.TimeoutError:
          continue
        yield {"event": "notification", "id": str(event.get("id") or ""), "data": json.dumps(event, default=str)}
    finally:
      self.unsubscribe(user_id, q)


push_hub = PushHub()
