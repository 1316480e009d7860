from __future__ import annotations

import math
from typing import Literal

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from taskhub.deps import get_current_user, get_db
from taskhub.errors import ForbiddenError, NotFoundError, require_uuid
from taskhub.models import Notification, Task, User
from taskhub.notifications.realtime import push_hub
from taskhub.schemas import NotificationOut, NotificationPageOut, NotificationTaskOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_out(n: Notification, t: Task | None) -> NotificationOut:
  return NotificationOut(
    id=n.id,
    type=n.type,
    status=n.status,
    message=n.message,
    link=n.link,
    task=NotificationTaskOut(id=t.id, title=t.title, status=t.status, dueDate=t.due_date) if t else None,
    createdAt=n.created_at,
  )


async def _owned_notification(db: AsyncSession, notification_id: str, actor: User) -> Notification:
  nid = require_uuid(notification_id, field="notificationId")
  res = await db.execute(select(Notification).where(Notification.id == nid))
  n = res.scalar_one_or_none()
  if not n:
    raise NotFoundError("Notification not found")
  if n.user_id != actor.id:
    raise ForbiddenError("This notification belongs to another user")
  return n


@router.get("", response_model=NotificationPageOut)
async def list_notifications(
  status: Literal["read", "unread"] | None = None,
  page: int = 1,
  limit: int = 10,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> NotificationPageOut:
  page = max(1, int(page))
  limit = max(1, min(int(limit), 100))
  where = [Notification.user_id == actor.id]
  if status:
    where.append(Notification.status == status)

  total = int(await db.scalar(select(func.count()).select_from(Notification).where(*where)) or 0)
  # Outer join: the task may have been deleted since.
  res = await db.execute(
    select(Notification, Task)
    .outerjoin(Task, Task.id == Notification.task_id)
    .where(*where)
    .order_by(Notification.created_at.desc())
    .offset((page - 1) * limit)
    .limit(limit)
  )
  return NotificationPageOut(
    notifications=[_notification_out(n, t) for n, t in res.all()],
    currentPage=page,
    totalPages=math.ceil(total / limit) if total else 0,
    totalCount=total,
  )


@router.get("/stream")
async def stream_notifications(request: Request, actor: User = Depends(get_current_user)) -> EventSourceResponse:
  return EventSourceResponse(push_hub.stream(request, actor.id), ping=20)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
  notification_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> NotificationOut:
  n = await _owned_notification(db, notification_id, actor)
  n.status = "read"
  await db.commit()
  t = None
  if n.task_id:
    tres = await db.execute(select(Task).where(Task.id == n.task_id))
    t = tres.scalar_one_or_none()
  return _notification_out(n, t)


@router.post("/read-all")
async def mark_all_read(actor: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(
    update(Notification).where(Notification.user_id == actor.id, Notification.status == "unread").values(status="read")
  )
  await db.commit()
  return {"ok": True, "updated": int(res.rowcount or 0)}


@router.delete("/{notification_id}")
async def delete_notification(
  notification_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  n = await _owned_notification(db, notification_id, actor)
  await db.delete(n)
  await db.commit()
  return {"ok": True, "message": "Notification deleted"}
