from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import settings
from taskhub.db import SessionLocal
from taskhub.models import Notification
from taskhub.notifications.intents import NotificationIntent
from taskhub.notifications.realtime import PushHub, push_hub
from taskhub.notifications.service import EmailSender, email_sender_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
  intent: NotificationIntent
  ok: bool
  notification_id: str | None = None
  error: str | None = None


class NotificationDispatcher:
  """
  Delivers NotificationIntents: one persisted unread Notification per intent,
  then a best-effort push and, when the intent carries one, an email.

  Every intent is delivered independently and concurrently; a failure or
  timeout for one recipient is logged and never reaches the others or the
  caller.
  """

  def __init__(
    self,
    *,
    session_factory: Callable[[], AsyncSession] = SessionLocal,
    email_sender: EmailSender | None = None,
    hub: PushHub = push_hub,
    timeout_seconds: float | None = None,
  ) -> None:
    self._session_factory = session_factory
    self._email_sender = email_sender
    self._hub = hub
    self._timeout = timeout_seconds
    self._pending: set[asyncio.Task] = set()

  @property
  def email_sender(self) -> EmailSender:
    if self._email_sender is None:
      self._email_sender = email_sender_for(settings)
    return self._email_sender

  @email_sender.setter
  def email_sender(self, sender: EmailSender) -> None:
    self._email_sender = sender

  @property
  def timeout(self) -> float:
    return float(self._timeout if self._timeout is not None else settings.notification_timeout_seconds)

  def submit(self, intents: Iterable[NotificationIntent]) -> asyncio.Task | None:
    """Fire-and-forget: schedule delivery and return immediately."""
    items = list(intents)
    if not items:
      return None
    task = asyncio.create_task(self.dispatch(items))
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)
    return task

  async def dispatch(self, intents: Iterable[NotificationIntent]) -> list[DeliveryOutcome]:
    items = list(intents)
    if not items:
      return []
    results = await asyncio.gather(*(self._deliver_bounded(i) for i in items), return_exceptions=True)
    outcomes: list[DeliveryOutcome] = []
    for intent, result in zip(items, results):
      if isinstance(result, BaseException):
        reason = "timed out" if isinstance(result, asyncio.TimeoutError) else repr(result)
        logger.error(
          "notification %s for user %s (task %s) failed: %s",
          intent.type.value,
          intent.recipient.user_id,
          intent.task_id,
          reason,
        )
        outcomes.append(DeliveryOutcome(intent=intent, ok=False, error=reason))
      else:
        outcomes.append(DeliveryOutcome(intent=intent, ok=True, notification_id=result))
    return outcomes

  async def drain(self) -> None:
    while self._pending:
      await asyncio.gather(*list(self._pending), return_exceptions=True)

  async def _deliver_bounded(self, intent: NotificationIntent) -> str:
    return await asyncio.wait_for(self._deliver(intent), timeout=self.timeout)

  async def _deliver(self, intent: NotificationIntent) -> str:
    async with self._session_factory() as db:
      n = Notification(
        user_id=intent.recipient.user_id,
        task_id=intent.task_id,
        type=intent.type.value,
        status="unread",
        message=intent.message,
        link=intent.link,
      )
      db.add(n)
      await db.commit()

    self._hub.publish(
      intent.recipient.user_id,
      {
        "id": n.id,
        "type": n.type,
        "message": n.message,
        "link": n.link,
        "taskId": n.task_id,
        "createdAt": n.created_at.isoformat(),
      },
    )

    if intent.email is not None and intent.recipient.email:
      try:
        await self.email_sender.send(to=intent.recipient.email, subject=intent.email.subject, body=intent.email.body)
      except Exception:
        # The notification record stays; email is best-effort.
        logger.exception("email %r to %s failed", intent.email.subject, intent.recipient.email)
    return n.id


dispatcher = NotificationDispatcher()
