from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.lifecycle.policy import PRIVILEGED_ROLES
from taskhub.models import User


@dataclass(frozen=True)
class Recipient:
  user_id: str
  username: str
  fname: str = ""
  email: str | None = None

  @property
  def display_name(self) -> str:
    return self.fname or self.username


def _recipient(u: User) -> Recipient:
  return Recipient(user_id=u.id, username=u.username, fname=u.fname or "", email=(u.email or None))


async def resolve_user(db: AsyncSession, user_id: str) -> list[Recipient]:
  res = await db.execute(select(User).where(User.id == user_id, User.active.is_(True)))
  u = res.scalar_one_or_none()
  return [_recipient(u)] if u else []


async def resolve_team(db: AsyncSession, team_id: str) -> list[Recipient]:
  res = await db.execute(
    select(User).where(User.team_id == team_id, User.active.is_(True)).order_by(User.username.asc())
  )
  return [_recipient(u) for u in res.scalars().all()]


async def resolve_task_recipients(
  db: AsyncSession,
  *,
  assignee_id: str | None,
  team_id: str | None,
) -> list[Recipient]:
  """
  Who hears about a task: its assignee, otherwise every member of its team.

  Shared by in-app and email delivery, by the lifecycle engine and by the
  reminder scan. An empty list means nobody could be resolved.
  """
  if assignee_id:
    return await resolve_user(db, assignee_id)
  if team_id:
    return await resolve_team(db, team_id)
  return []


async def resolve_privileged_recipients(db: AsyncSession) -> list[Recipient]:
  res = await db.execute(
    select(User).where(User.role.in_(sorted(PRIVILEGED_ROLES)), User.active.is_(True)).order_by(User.username.asc())
  )
  return [_recipient(u) for u in res.scalars().all()]
