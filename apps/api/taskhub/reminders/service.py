from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.clock import end_of_day, local_zone, start_of_day
from taskhub.config import settings
from taskhub.lifecycle.transitions import Status
from taskhub.models import ReminderRun, Task
from taskhub.notifications import intents as notify
from taskhub.notifications.dispatcher import NotificationDispatcher, dispatcher as default_dispatcher
from taskhub.notifications.intents import NotificationIntent
from taskhub.notifications.recipients import resolve_task_recipients

logger = logging.getLogger(__name__)

_scan_lock = asyncio.Lock()


class ReminderKind(str, Enum):
  DUE_SOON = "due_soon"
  OVERDUE = "overdue"


@dataclass
class ReminderScanResult:
  ran: bool = True
  due_soon: int = 0
  overdue: int = 0
  skipped: int = 0
  run_id: str | None = None


def _flag_column(kind: ReminderKind):
  return Task.due_date_reminder_sent if kind is ReminderKind.DUE_SOON else Task.overdue_reminder_sent


def _candidates(kind: ReminderKind, *, now: datetime):
  tz = local_zone()
  today = start_of_day(now, tz)
  flag = _flag_column(kind)
  stmt = select(Task).where(Task.status != Status.COMPLETED.value, flag.is_(False))
  if kind is ReminderKind.DUE_SOON:
    horizon = end_of_day(now, tz, days=int(settings.reminder_days_before))
    stmt = stmt.where(Task.due_date >= today, Task.due_date <= horizon)
  else:
    stmt = stmt.where(Task.due_date < today)
  return stmt.order_by(Task.due_date.asc())


async def _scan(
  db: AsyncSession,
  kind: ReminderKind,
  *,
  now: datetime,
  out: list[NotificationIntent],
) -> tuple[int, int]:
  res = await db.execute(_candidates(kind, now=now))
  tasks = list(res.scalars().all())
  flag = _flag_column(kind)
  build = notify.due_soon if kind is ReminderKind.DUE_SOON else notify.overdue

  notified = 0
  skipped = 0
  for t in tasks:
    recipients = await resolve_task_recipients(db, assignee_id=t.assignee_id, team_id=t.team_id)
    if not recipients:
      # Left unflagged on purpose; it is picked up again once someone owns it.
      logger.warning("%s reminder skipped for task %s: no assignee or team member to notify", kind.value, t.id)
      skipped += 1
      continue
    built = build(t, recipients)

    # Claim the flag so an overlapping run cannot notify the same task twice.
    claim = await db.execute(update(Task).where(Task.id == t.id, flag.is_(False)).values({flag.key: True}))
    await db.commit()
    if claim.rowcount == 0:
      continue
    out.extend(built)
    notified += 1
  return notified, skipped


async def _begin_run(db: AsyncSession, *, now: datetime) -> ReminderRun | None:
  stale_before = now - timedelta(minutes=max(1, int(settings.reminder_run_stale_minutes)))
  res = await db.execute(
    select(ReminderRun).where(ReminderRun.status == "running", ReminderRun.started_at > stale_before).limit(1)
  )
  active = res.scalar_one_or_none()
  if active is not None:
    logger.warning("reminder run %s still in progress since %s; skipping", active.id, active.started_at)
    return None

  await db.execute(
    update(ReminderRun)
    .where(ReminderRun.status == "running", ReminderRun.started_at <= stale_before)
    .values(status="failed", finished_at=now, error="stale")
  )
  run = ReminderRun(status="running", started_at=now)
  db.add(run)
  await db.commit()
  return run


async def _fail_run(db: AsyncSession, run_id: str, exc: BaseException) -> None:
  await db.execute(
    update(ReminderRun)
    .where(ReminderRun.id == run_id)
    .values(status="failed", finished_at=datetime.now(timezone.utc), error=str(exc)[:2000])
  )
  await db.commit()


async def run_reminder_scan(
  db: AsyncSession,
  *,
  now: datetime | None = None,
  dispatcher: NotificationDispatcher | None = None,
) -> ReminderScanResult:
  """
  Notify due-soon and overdue tasks once per condition.

  Skips (ran=False) when another scan is active in this process or a
  non-stale persisted run marker exists. A task's flag is claimed only once
  its intents are built, and every claimed task is dispatched even when a
  later part of the scan fails.
  """
  if _scan_lock.locked():
    logger.warning("reminder scan already running in this process; skipping")
    return ReminderScanResult(ran=False)

  async with _scan_lock:
    now = now or datetime.now(timezone.utc)
    disp = dispatcher or default_dispatcher
    run = await _begin_run(db, now=now)
    if run is None:
      return ReminderScanResult(ran=False)

    result = ReminderScanResult(run_id=run.id)
    claimed: list[NotificationIntent] = []
    try:
      result.due_soon, skipped_soon = await _scan(db, ReminderKind.DUE_SOON, now=now, out=claimed)
      result.overdue, skipped_over = await _scan(db, ReminderKind.OVERDUE, now=now, out=claimed)
      result.skipped = skipped_soon + skipped_over
    except Exception as exc:
      await db.rollback()
      # Flags claimed so far are committed; their reminders still go out.
      try:
        await disp.dispatch(claimed)
      finally:
        await _fail_run(db, run.id, exc)
      raise

    try:
      await disp.dispatch(claimed)
    except Exception as exc:
      await _fail_run(db, run.id, exc)
      raise

    await db.execute(
      update(ReminderRun)
      .where(ReminderRun.id == run.id)
      .values(
        status="finished",
        finished_at=datetime.now(timezone.utc),
        due_soon_count=result.due_soon,
        overdue_count=result.overdue,
        skipped_count=result.skipped,
      )
    )
    await db.commit()
    logger.info(
      "reminder scan %s: due_soon=%d overdue=%d skipped=%d",
      run.id,
      result.due_soon,
      result.overdue,
      result.skipped,
    )
    return result
