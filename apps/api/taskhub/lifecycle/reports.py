from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.clock import local_zone, range_start
from taskhub.lifecycle.service import load_refs, visibility_clause
from taskhub.lifecycle.transitions import Status
from taskhub.models import Task, User

DURATIONS_LIMIT = 50


def _completed_between(actor: User, start: datetime, end: datetime):
  stmt = select(Task).where(
    Task.status == Status.COMPLETED.value,
    Task.completed_at.is_not(None),
    Task.completed_at >= start,
    Task.completed_at <= end,
  )
  scope = visibility_clause(actor)
  if scope is not None:
    stmt = stmt.where(scope)
  return stmt


async def performance(
  db: AsyncSession,
  actor: User,
  *,
  time_range: str = "W",
  group_by: str = "team",
  now: datetime | None = None,
) -> tuple[list[str], list[int]]:
  """Approved completions in the current range, counted per team or per assignee."""
  now = now or datetime.now(timezone.utc)
  start = range_start(now, local_zone(), time_range)
  res = await db.execute(_completed_between(actor, start, now))
  tasks = list(res.scalars().all())
  users, teams = await load_refs(db, tasks)

  by_user = (group_by or "").strip().lower() == "user"
  counts: Counter[str | None] = Counter()
  labels: dict[str | None, str] = {}
  for t in tasks:
    key = t.assignee_id if by_user else t.team_id
    counts[key] += 1
    if key not in labels:
      if by_user:
        u = users.get(key) if key else None
        labels[key] = u.username if u else "Unassigned"
      else:
        tm = teams.get(key) if key else None
        labels[key] = tm.name if tm else "No Team"

  ordered = sorted(counts.items(), key=lambda kv: (-kv[1], labels[kv[0]]))
  return [labels[k] for k, _ in ordered], [v for _, v in ordered]


async def durations(
  db: AsyncSession,
  actor: User,
  *,
  time_range: str = "M",
  now: datetime | None = None,
) -> list[dict]:
  now = now or datetime.now(timezone.utc)
  start = range_start(now, local_zone(), time_range)
  res = await db.execute(
    _completed_between(actor, start, now).order_by(Task.completed_at.desc()).limit(DURATIONS_LIMIT)
  )
  out: list[dict] = []
  for t in res.scalars().all():
    days = math.ceil((t.completed_at - t.created_at).total_seconds() / 86400)
    out.append({"title": t.title, "duration": max(0, days)})
  return out
