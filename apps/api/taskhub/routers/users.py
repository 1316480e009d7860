from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.deps import get_current_user, get_db, require_admin, require_privileged
from taskhub.errors import ConflictError, NotFoundError, ValidationError, require_uuid
from taskhub.lifecycle.policy import is_privileged
from taskhub.models import Notification, PasswordResetToken, Session as DbSession, Task, Team, User
from taskhub.schemas import TeamRefOut, UserCreateIn, UserOut, UserUpdateIn
from taskhub.security import hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _user_out(u: User, team: Team | None) -> UserOut:
  return UserOut(
    id=u.id,
    username=u.username,
    email=u.email,
    fname=u.fname or "",
    lname=u.lname or "",
    role=u.role,
    teamId=u.team_id,
    team=TeamRefOut(id=team.id, name=team.name) if team else None,
    active=bool(u.active),
  )


async def user_out(db: AsyncSession, u: User) -> UserOut:
  team = None
  if u.team_id:
    tres = await db.execute(select(Team).where(Team.id == u.team_id))
    team = tres.scalar_one_or_none()
  return _user_out(u, team)


async def _load_user(db: AsyncSession, user_id: str) -> User:
  uid = require_uuid(user_id, field="userId")
  res = await db.execute(select(User).where(User.id == uid))
  u = res.scalar_one_or_none()
  if not u:
    raise NotFoundError("User not found")
  return u


async def _resolve_team_id(db: AsyncSession, team_id: str | None) -> str | None:
  if not team_id:
    return None
  tid = require_uuid(team_id, field="teamId")
  res = await db.execute(select(Team.id).where(Team.id == tid))
  if res.scalar_one_or_none() is None:
    raise ValidationError("Team does not exist", fields=["teamId"])
  return tid


async def _ensure_unique(db: AsyncSession, *, username: str | None, email: str | None, exclude_id: str | None = None) -> None:
  conds = []
  if username:
    conds.append(User.username == username)
  if email:
    conds.append(User.email == email)
  if not conds:
    return
  stmt = select(User).where(or_(*conds))
  if exclude_id:
    stmt = stmt.where(User.id != exclude_id)
  res = await db.execute(stmt.limit(1))
  clash = res.scalar_one_or_none()
  if clash:
    field = "username" if username and clash.username == username else "email"
    raise ConflictError(f"A user with this {field} already exists", fields=[field])


@router.get("", response_model=list[UserOut])
async def list_users(
  assignment: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[UserOut]:
  stmt = select(User).where(User.active.is_(True))
  if assignment == "unassigned":
    stmt = stmt.where(User.team_id.is_(None))
  res = await db.execute(stmt.order_by(User.username.asc()))
  users = res.scalars().all()
  team_ids = {u.team_id for u in users if u.team_id}
  teams: dict[str, Team] = {}
  if team_ids:
    tres = await db.execute(select(Team).where(Team.id.in_(team_ids)))
    teams = {t.id: t for t in tres.scalars().all()}
  return [_user_out(u, teams.get(u.team_id) if u.team_id else None) for u in users]


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
  user_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  u = await _load_user(db, user_id)
  if u.id != user.id and not is_privileged(user.role):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin or Manager required")
  return await user_out(db, u)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
  payload: UserCreateIn,
  actor: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  username = payload.username.strip()
  email = payload.email.strip().lower() if payload.email else None
  await _ensure_unique(db, username=username, email=email)
  team_id = await _resolve_team_id(db, payload.teamId)

  u = User(
    username=username,
    email=email,
    fname=payload.fname.strip(),
    lname=payload.lname.strip(),
    role=payload.role,
    team_id=team_id,
    password_hash=hash_password(payload.password),
    active=True,
  )
  db.add(u)
  await db.commit()
  logger.info("user %s created by %s", u.id, actor.id)
  return await user_out(db, u)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
  user_id: str,
  payload: UserUpdateIn,
  actor: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  u = await _load_user(db, user_id)
  fields_set = payload.model_fields_set

  username = payload.username.strip() if "username" in fields_set and payload.username else None
  email = payload.email.strip().lower() if "email" in fields_set and payload.email else None
  await _ensure_unique(db, username=username, email=email, exclude_id=u.id)

  if "teamId" in fields_set:
    new_team_id = await _resolve_team_id(db, payload.teamId)
    if u.team_id and u.team_id != new_team_id:
      await db.execute(update(Team).where(Team.id == u.team_id, Team.leader_id == u.id).values(leader_id=None))
    u.team_id = new_team_id
  if username:
    u.username = username
  if "email" in fields_set:
    u.email = email
  if "fname" in fields_set and payload.fname is not None:
    u.fname = payload.fname.strip()
  if "lname" in fields_set and payload.lname is not None:
    u.lname = payload.lname.strip()
  if "role" in fields_set and payload.role is not None:
    u.role = payload.role
  if "password" in fields_set and payload.password:
    u.password_hash = hash_password(payload.password)
    await db.execute(delete(DbSession).where(DbSession.user_id == u.id))

  await db.commit()
  return await user_out(db, u)


@router.delete("/{user_id}")
async def delete_user(
  user_id: str,
  actor: User = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> dict:
  u = await _load_user(db, user_id)
  if u.id == actor.id:
    raise ValidationError("You cannot delete your own account", fields=["userId"])

  await db.execute(update(Task).where(Task.assignee_id == u.id).values(assignee_id=None))
  await db.execute(update(Team).where(Team.leader_id == u.id).values(leader_id=None))
  await db.execute(delete(Notification).where(Notification.user_id == u.id))
  await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == u.id))
  await db.execute(delete(DbSession).where(DbSession.user_id == u.id))
  await db.execute(delete(User).where(User.id == u.id))
  await db.commit()
  logger.info("user %s deleted by %s", u.id, actor.id)
  return {"ok": True, "message": "User deleted successfully"}
