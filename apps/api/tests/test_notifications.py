from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import login, user_id
from taskhub.db import SessionLocal
from taskhub.models import Notification
from taskhub.notifications.dispatcher import NotificationDispatcher, dispatcher
from taskhub.notifications.intents import EmailContent, NotificationIntent, NotificationType
from taskhub.notifications.realtime import PushHub
from taskhub.notifications.recipients import Recipient
from taskhub.notifications.service import LocalEmailSender


async def _seed_notifications(username: str, count: int, *, status: str = "unread") -> list[str]:
  uid = await user_id(username)
  base = datetime(2026, 1, 1, tzinfo=timezone.utc)
  ids: list[str] = []
  async with SessionLocal() as db:
    for i in range(count):
      n = Notification(
        user_id=uid,
        task_id=None,
        type="other",
        status=status,
        message=f"note {i}",
        created_at=base + timedelta(minutes=i),
      )
      db.add(n)
      await db.flush()
      ids.append(n.id)
    await db.commit()
  return ids


@pytest.mark.anyio
async def test_list_is_paginated_newest_first(client: AsyncClient) -> None:
  await _seed_notifications("u1", 12)
  await login(client, "u1")

  first = await client.get("/notifications", params={"page": 1, "limit": 5})
  assert first.status_code == 200, first.text
  body = first.json()
  assert [n["message"] for n in body["notifications"]] == ["note 11", "note 10", "note 9", "note 8", "note 7"]
  assert body["currentPage"] == 1
  assert body["totalPages"] == 3
  assert body["totalCount"] == 12

  last = (await client.get("/notifications", params={"page": 3, "limit": 5})).json()
  assert [n["message"] for n in last["notifications"]] == ["note 1", "note 0"]


@pytest.mark.anyio
async def test_status_filter_and_read_all(client: AsyncClient) -> None:
  await _seed_notifications("u1", 3)
  await _seed_notifications("u1", 2, status="read")
  await _seed_notifications("u2", 4)
  await login(client, "u1")

  unread = (await client.get("/notifications", params={"status": "unread"})).json()
  assert unread["totalCount"] == 3

  res = await client.post("/notifications/read-all")
  assert res.status_code == 200, res.text
  assert res.json() == {"ok": True, "updated": 3}
  assert (await client.get("/notifications", params={"status": "unread"})).json()["totalCount"] == 0

  async with SessionLocal() as db:
    others = (await db.execute(select(Notification).where(Notification.user_id == await user_id("u2")))).scalars().all()
    assert {n.status for n in others} == {"unread"}


@pytest.mark.anyio
async def test_mark_read_and_delete_distinguish_missing_from_foreign(client: AsyncClient) -> None:
  (mine,) = await _seed_notifications("u1", 1)
  (theirs,) = await _seed_notifications("u2", 1)
  await login(client, "u1")

  read = await client.patch(f"/notifications/{mine}/read")
  assert read.status_code == 200, read.text
  assert read.json()["status"] == "read"

  assert (await client.patch(f"/notifications/{theirs}/read")).status_code == 403
  assert (await client.delete(f"/notifications/{theirs}")).status_code == 403
  missing = "0b7f7c1e-0000-4000-8000-000000000000"
  assert (await client.patch(f"/notifications/{missing}/read")).status_code == 404
  assert (await client.delete(f"/notifications/{missing}")).status_code == 404
  assert (await client.delete("/notifications/nope")).status_code == 422

  gone = await client.delete(f"/notifications/{mine}")
  assert gone.status_code == 200
  assert (await client.get("/notifications")).json()["totalCount"] == 0


@pytest.mark.anyio
async def test_listing_tolerates_deleted_tasks(client: AsyncClient) -> None:
  await login(client, "admin")
  created = await client.post(
    "/tasks",
    json={
      "title": "Ephemeral",
      "description": "Will be deleted",
      "dueDate": (datetime.now(timezone.utc) + timedelta(days=2)).isoformat(),
      "assigneeId": await user_id("u1"),
    },
  )
  assert created.status_code == 201, created.text
  await dispatcher.drain()

  await login(client, "u1")
  before = (await client.get("/notifications")).json()["notifications"]
  assert before[0]["task"]["title"] == "Ephemeral"

  await login(client, "admin")
  assert (await client.delete(f"/tasks/{created.json()['id']}")).status_code == 200

  await login(client, "u1")
  after = await client.get("/notifications")
  assert after.status_code == 200, after.text
  items = after.json()["notifications"]
  assert len(items) == 1
  assert items[0]["task"] is None
  assert items[0]["type"] == "task_assigned"


class _FailingSender:
  async def send(self, *, to: str, subject: str, body: str) -> dict:
    raise RuntimeError("smtp down")


class _SlowSender:
  async def send(self, *, to: str, subject: str, body: str) -> dict:
    await asyncio.sleep(5)
    return {}


def _intent(rid: str, email: str | None, *, subject: str | None = "Hello") -> NotificationIntent:
  return NotificationIntent(
    recipient=Recipient(user_id=rid, username="x", email=email),
    task_id=None,
    type=NotificationType.OTHER,
    message="hi",
    email=EmailContent(subject=subject, body="body") if subject else None,
  )


@pytest.mark.anyio
async def test_email_failure_keeps_the_record() -> None:
  u1, u2 = await user_id("u1"), await user_id("u2")
  d = NotificationDispatcher(email_sender=_FailingSender(), hub=PushHub())
  outcomes = await d.dispatch([_intent(u1, "u1@taskhub.local"), _intent(u2, "u2@taskhub.local")])
  assert [o.ok for o in outcomes] == [True, True]

  async with SessionLocal() as db:
    rows = (await db.execute(select(Notification))).scalars().all()
  assert sorted(n.user_id for n in rows) == sorted([u1, u2])


@pytest.mark.anyio
async def test_one_failing_recipient_does_not_block_others() -> None:
  u1 = await user_id("u1")
  sender = LocalEmailSender()
  d = NotificationDispatcher(email_sender=sender, hub=PushHub())
  # A recipient without an id cannot be stored.
  bad = _intent(None, None, subject=None)  # type: ignore[arg-type]
  outcomes = await d.dispatch([bad, _intent(u1, "u1@taskhub.local")])
  assert [o.ok for o in outcomes] == [False, True]
  assert [m.to for m in sender.outbox] == ["u1@taskhub.local"]


@pytest.mark.anyio
async def test_slow_delivery_times_out_without_blocking_others() -> None:
  u1, u2 = await user_id("u1"), await user_id("u2")
  d = NotificationDispatcher(email_sender=_SlowSender(), hub=PushHub(), timeout_seconds=0.2)
  outcomes = await d.dispatch([_intent(u1, "u1@taskhub.local"), _intent(u2, None)])
  assert [o.ok for o in outcomes] == [False, True]
  assert outcomes[0].error == "timed out"


@pytest.mark.anyio
async def test_push_reaches_open_subscribers() -> None:
  u1 = await user_id("u1")
  hub = PushHub()
  q = hub.subscribe(u1)
  d = NotificationDispatcher(email_sender=LocalEmailSender(), hub=hub)
  (outcome,) = await d.dispatch([_intent(u1, None, subject=None)])
  event = q.get_nowait()
  assert event["id"] == outcome.notification_id
  assert event["message"] == "hi"
  hub.unsubscribe(u1, q)
  assert hub.subscriber_count(u1) == 0


@pytest.mark.anyio
async def test_requires_authentication(client: AsyncClient) -> None:
  assert (await client.get("/notifications")).status_code == 401
