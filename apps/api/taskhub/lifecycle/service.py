from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.clock import end_of_day, local_zone
from taskhub.config import settings
from taskhub.errors import ForbiddenError, NotFoundError, ValidationError, require_uuid
from taskhub.lifecycle.commands import StatusOnlyUpdate, parse_update_command
from taskhub.lifecycle.policy import can_view, is_privileged, ownership_of
from taskhub.lifecycle.transitions import (
  ActorKind,
  AssignmentEvent,
  Status,
  TaskState,
  TransitionEvent,
  apply_transition,
  assignment_event,
)
from taskhub.models import Task, Team, User
from taskhub.notifications import intents as notify
from taskhub.notifications.intents import NotificationIntent
from taskhub.notifications.recipients import (
  resolve_privileged_recipients,
  resolve_task_recipients,
  resolve_team,
  resolve_user,
)
from taskhub.schemas import TaskCreateIn

logger = logging.getLogger(__name__)

OPEN_STATUSES = (Status.PENDING.value, Status.IN_PROGRESS.value)


def _now() -> datetime:
  return datetime.now(timezone.utc)


def state_of(t: Task) -> TaskState:
  return TaskState(
    status=Status(t.status),
    needs_completion_approval=bool(t.needs_completion_approval),
    completed_at=t.completed_at,
  )


def _apply_state(t: Task, s: TaskState) -> None:
  t.status = s.status.value
  t.needs_completion_approval = s.needs_completion_approval
  t.completed_at = s.completed_at


def visibility_clause(actor: User) -> Any:
  """None for privileged actors, else "assigned to me or to my team"."""
  if is_privileged(actor.role):
    return None
  conds = [Task.assignee_id == actor.id]
  if actor.team_id:
    conds.append(Task.team_id == actor.team_id)
  return or_(*conds)


async def _ensure_user(db: AsyncSession, user_id: str) -> None:
  res = await db.execute(select(User.id).where(User.id == user_id, User.active.is_(True)))
  if res.scalar_one_or_none() is None:
    raise ValidationError("Assignee does not exist", fields=["assigneeId"])


async def _ensure_team(db: AsyncSession, team_id: str) -> None:
  res = await db.execute(select(Team.id).where(Team.id == team_id))
  if res.scalar_one_or_none() is None:
    raise ValidationError("Team does not exist", fields=["teamId"])


async def load_task(db: AsyncSession, task_id: str) -> Task:
  tid = require_uuid(task_id, field="taskId")
  res = await db.execute(select(Task).where(Task.id == tid))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFoundError("Task not found")
  return t


async def load_refs(db: AsyncSession, tasks: Iterable[Task]) -> tuple[dict[str, User], dict[str, Team]]:
  items = list(tasks)
  user_ids = {t.assignee_id for t in items if t.assignee_id}
  team_ids = {t.team_id for t in items if t.team_id}
  users: dict[str, User] = {}
  teams: dict[str, Team] = {}
  if user_ids:
    ures = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {u.id: u for u in ures.scalars().all()}
  if team_ids:
    tres = await db.execute(select(Team).where(Team.id.in_(team_ids)))
    teams = {tm.id: tm for tm in tres.scalars().all()}
  return users, teams


async def assignment_intents(
  db: AsyncSession,
  t: Task,
  *,
  old_assignee_id: str | None,
  old_team_id: str | None,
  on_update: bool,
) -> list[NotificationIntent]:
  ev = assignment_event(
    old_assignee_id=old_assignee_id,
    old_team_id=old_team_id,
    new_assignee_id=t.assignee_id,
    new_team_id=t.team_id,
  )
  if ev is AssignmentEvent.ASSIGNEE:
    return notify.assignee_assigned(t, await resolve_user(db, t.assignee_id), on_update=on_update)
  if ev is AssignmentEvent.TEAM:
    members = await resolve_team(db, t.team_id)
    if not members:
      logger.info("team %s has no members; no assignment notification for task %s", t.team_id, t.id)
    return notify.team_assigned(t, members)
  return []


async def transition_intents(
  db: AsyncSession,
  t: Task,
  events: list[TransitionEvent],
  *,
  actor: User,
  old_assignee_id: str | None,
  old_team_id: str | None,
) -> list[NotificationIntent]:
  out: list[NotificationIntent] = []
  for ev in events:
    if ev is TransitionEvent.APPROVAL_REQUESTED:
      actor_name = " ".join(p for p in (actor.fname, actor.lname) if p) or actor.username
      out.extend(notify.approval_requested(t, await resolve_privileged_recipients(db), actor_name=actor_name))
      continue
    # Approval outcomes go to whoever submitted the completion.
    recipients = await resolve_task_recipients(db, assignee_id=old_assignee_id, team_id=old_team_id)
    if ev is TransitionEvent.APPROVED:
      out.extend(notify.approved(t, recipients))
    elif ev is TransitionEvent.REJECTED:
      out.extend(notify.rejected(t, recipients))
  return out


async def create_task(db: AsyncSession, actor: User, payload: TaskCreateIn) -> tuple[Task, list[NotificationIntent]]:
  if not is_privileged(actor.role):
    raise ForbiddenError("Only Admin or Manager can create tasks")

  assignee_id = require_uuid(payload.assigneeId, field="assigneeId") if payload.assigneeId else None
  team_id = require_uuid(payload.teamId, field="teamId") if payload.teamId else None
  if assignee_id and team_id:
    raise ValidationError("A task can be assigned to a user or a team, not both", fields=["assigneeId", "teamId"])
  if assignee_id:
    await _ensure_user(db, assignee_id)
  if team_id:
    await _ensure_team(db, team_id)

  state, _ = apply_transition(TaskState(status=Status.PENDING), payload.status, ActorKind.PRIVILEGED, now=_now())
  t = Task(
    title=payload.title,
    description=payload.description,
    due_date=payload.dueDate,
    tags=list(payload.tags),
    assignee_id=assignee_id,
    team_id=team_id,
  )
  _apply_state(t, state)
  db.add(t)
  await db.commit()

  intents = await assignment_intents(db, t, old_assignee_id=None, old_team_id=None, on_update=False)
  logger.info("task %s created by %s (%d notifications)", t.id, actor.id, len(intents))
  return t, intents


async def update_task(
  db: AsyncSession,
  actor: User,
  task_id: str,
  body: Any,
) -> tuple[Task, list[NotificationIntent]]:
  """
  Apply a role-gated update and return the task plus notification intents.

  Every check (permissions, body shape, reference resolution) runs before the
  first attribute is touched, so a rejected request never writes anything.
  """
  t = await load_task(db, task_id)
  ownership = ownership_of(
    actor_id=actor.id,
    actor_team_id=actor.team_id,
    assignee_id=t.assignee_id,
    team_id=t.team_id,
  )
  cmd = parse_update_command(actor.role, ownership, body)
  now = _now()
  old_assignee_id, old_team_id = t.assignee_id, t.team_id
  current = state_of(t)

  if isinstance(cmd, StatusOnlyUpdate):
    nxt, events = apply_transition(current, cmd.status, ActorKind.MEMBER, now=now)
    if nxt == current and not events:
      return t, []
    if nxt != current:
      _apply_state(t, nxt)
      await db.commit()
    intents = await transition_intents(
      db, t, events, actor=actor, old_assignee_id=old_assignee_id, old_team_id=old_team_id
    )
    return t, intents

  fields = cmd.model_fields_set
  new_assignee_id, new_team_id = old_assignee_id, old_team_id
  if "assigneeId" in fields:
    if cmd.assigneeId is not None:
      await _ensure_user(db, cmd.assigneeId)
      new_assignee_id, new_team_id = cmd.assigneeId, None
    else:
      new_assignee_id = None
  if "teamId" in fields:
    if cmd.teamId is not None:
      await _ensure_team(db, cmd.teamId)
      new_assignee_id, new_team_id = None, cmd.teamId
    else:
      new_team_id = None

  events: list[TransitionEvent] = []
  nxt = current
  if "status" in fields:
    nxt, events = apply_transition(current, cmd.status, ActorKind.PRIVILEGED, now=now)

  if "title" in fields:
    t.title = cmd.title
  if "description" in fields:
    t.description = cmd.description
  if "tags" in fields:
    t.tags = list(cmd.tags or [])
  if "dueDate" in fields and cmd.dueDate != t.due_date:
    t.due_date = cmd.dueDate
    # A moved deadline earns fresh reminders.
    t.due_date_reminder_sent = False
    t.overdue_reminder_sent = False
  t.assignee_id = new_assignee_id
  t.team_id = new_team_id
  _apply_state(t, nxt)
  await db.commit()

  intents = await transition_intents(
    db, t, events, actor=actor, old_assignee_id=old_assignee_id, old_team_id=old_team_id
  )
  intents.extend(
    await assignment_intents(db, t, old_assignee_id=old_assignee_id, old_team_id=old_team_id, on_update=True)
  )
  return t, intents


async def delete_task(db: AsyncSession, actor: User, task_id: str) -> None:
  if not is_privileged(actor.role):
    raise ForbiddenError("Only Admin or Manager can delete tasks")
  t = await load_task(db, task_id)
  await db.delete(t)
  await db.commit()
  logger.info("task %s deleted by %s", t.id, actor.id)


async def get_task(db: AsyncSession, actor: User, task_id: str) -> Task:
  t = await load_task(db, task_id)
  if not can_view(
    actor.role,
    actor_id=actor.id,
    actor_team_id=actor.team_id,
    assignee_id=t.assignee_id,
    team_id=t.team_id,
  ):
    raise ForbiddenError("You do not have permission to view this task")
  return t


async def list_tasks(
  db: AsyncSession,
  actor: User,
  *,
  status: str | None = None,
  assignee_id: str | None = None,
  team_id: str | None = None,
  tag: str | None = None,
) -> list[Task]:
  stmt = select(Task)
  scope = visibility_clause(actor)
  if scope is not None:
    stmt = stmt.where(scope)
  if status and status != "All":
    try:
      st = Status(status)
    except ValueError:
      raise ValidationError("Invalid status value", fields=["status"]) from None
    stmt = stmt.where(Task.status == st.value)
  if assignee_id:
    stmt = stmt.where(Task.assignee_id == require_uuid(assignee_id, field="assigneeId"))
  if team_id:
    stmt = stmt.where(Task.team_id == require_uuid(team_id, field="teamId"))
  res = await db.execute(stmt.order_by(Task.created_at.desc()))
  tasks = list(res.scalars().all())

  needle = (tag or "").strip().lower()
  if needle:
    tasks = [t for t in tasks if any(needle in str(x).lower() for x in (t.tags or []))]
  return tasks


async def my_work(db: AsyncSession, actor: User, *, now: datetime | None = None) -> tuple[list[Task], dict[str, int]]:
  """Open tasks of the actor (or their team) that are overdue or due within the reminder horizon."""
  now = now or _now()
  owner = [Task.assignee_id == actor.id]
  if actor.team_id:
    owner.append(Task.team_id == actor.team_id)
  owner_clause = or_(*owner)
  horizon = end_of_day(now, local_zone(), days=int(settings.reminder_days_before))

  res = await db.execute(
    select(Task)
    .where(owner_clause, Task.status.in_(OPEN_STATUSES), Task.due_date <= horizon)
    .order_by(Task.due_date.asc())
  )
  tasks = list(res.scalars().all())

  open_count = await db.scalar(select(func.count()).select_from(Task).where(owner_clause, Task.status.in_(OPEN_STATUSES)))
  done_count = await db.scalar(
    select(func.count()).select_from(Task).where(owner_clause, Task.status == Status.COMPLETED.value)
  )
  return tasks, {"pendingInProgress": int(open_count or 0), "completed": int(done_count or 0)}


async def summary(db: AsyncSession, actor: User) -> dict[str, int]:
  scope = visibility_clause(actor)
  done = select(func.count()).select_from(Task).where(Task.status == Status.COMPLETED.value)
  pending = select(func.count()).select_from(Task).where(Task.status.in_(OPEN_STATUSES))
  if scope is not None:
    done = done.where(scope)
    pending = pending.where(scope)
  return {
    "completedTasksCount": int(await db.scalar(done) or 0),
    "pendingTasksCount": int(await db.scalar(pending) or 0),
  }
