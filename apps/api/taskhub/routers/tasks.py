from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.deps import get_current_user, get_db, require_privileged
from taskhub.lifecycle import reports, service
from taskhub.models import Task, Team, User
from taskhub.notifications.dispatcher import dispatcher
from taskhub.schemas import (
  DurationOut,
  MyWorkOut,
  PerformanceOut,
  SummaryOut,
  TaskCreateIn,
  TaskOut,
  TeamRefOut,
  UserRefOut,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _task_out(t: Task, users: dict[str, User], teams: dict[str, Team]) -> TaskOut:
  assignee = users.get(t.assignee_id) if t.assignee_id else None
  team = teams.get(t.team_id) if t.team_id else None
  return TaskOut(
    id=t.id,
    title=t.title,
    description=t.description,
    dueDate=t.due_date,
    status=t.status,
    tags=list(t.tags or []),
    assignee=UserRefOut(id=assignee.id, username=assignee.username, fname=assignee.fname or "", lname=assignee.lname or "")
    if assignee
    else None,
    team=TeamRefOut(id=team.id, name=team.name) if team else None,
    completedAt=t.completed_at,
    needsCompletionApproval=bool(t.needs_completion_approval),
    dueDateReminderSent=bool(t.due_date_reminder_sent),
    overdueReminderSent=bool(t.overdue_reminder_sent),
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def _tasks_out(db: AsyncSession, tasks: list[Task]) -> list[TaskOut]:
  users, teams = await service.load_refs(db, tasks)
  return [_task_out(t, users, teams) for t in tasks]


@router.get("", response_model=list[TaskOut])
async def list_tasks(
  status: str | None = None,
  assigneeId: str | None = None,
  teamId: str | None = None,
  tag: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  tasks = await service.list_tasks(db, user, status=status, assignee_id=assigneeId, team_id=teamId, tag=tag)
  return await _tasks_out(db, tasks)


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
  payload: TaskCreateIn,
  user: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t, intents = await service.create_task(db, user, payload)
  dispatcher.submit(intents)
  return (await _tasks_out(db, [t]))[0]


@router.get("/my-work", response_model=MyWorkOut)
async def my_work(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MyWorkOut:
  tasks, counts = await service.my_work(db, user)
  return MyWorkOut(relevantTasks=await _tasks_out(db, tasks), counts=counts)


@router.get("/summary", response_model=SummaryOut)
async def summary(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> SummaryOut:
  return SummaryOut(**await service.summary(db, user))


@router.get("/performance", response_model=PerformanceOut)
async def performance(
  timeRange: str = "W",
  groupBy: str = "team",
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> PerformanceOut:
  labels, data = await reports.performance(db, user, time_range=timeRange, group_by=groupBy)
  return PerformanceOut(labels=labels, data=data)


@router.get("/durations", response_model=list[DurationOut])
async def durations(
  timeRange: str = "M",
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[DurationOut]:
  return [DurationOut(**d) for d in await reports.durations(db, user, time_range=timeRange)]


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await service.get_task(db, user, task_id)
  return (await _tasks_out(db, [t]))[0]


@router.put("/{task_id}", response_model=TaskOut)
@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: Any = Body(...),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  # Raw body: the engine decides which keys the actor may send.
  t, intents = await service.update_task(db, user, task_id, payload)
  dispatcher.submit(intents)
  return (await _tasks_out(db, [t]))[0]


@router.delete("/{task_id}")
async def delete_task(task_id: str, user: User = Depends(require_privileged), db: AsyncSession = Depends(get_db)) -> dict:
  await service.delete_task(db, user, task_id)
  return {"ok": True, "message": "Task deleted successfully"}
