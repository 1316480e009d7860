from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.deps import get_current_user, get_db, require_privileged
from taskhub.errors import ConflictError, NotFoundError, ValidationError, require_uuid
from taskhub.lifecycle.policy import is_privileged
from taskhub.models import Task, Team, User
from taskhub.schemas import TeamDetailOut, TeamIn, TeamLeaderIn, TeamMemberIn, TeamOut, TeamUpdateIn, UserRefOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/teams", tags=["teams"])


def _ref(u: User) -> UserRefOut:
  return UserRefOut(id=u.id, username=u.username, fname=u.fname or "", lname=u.lname or "")


async def _members(db: AsyncSession, team_id: str) -> list[User]:
  res = await db.execute(select(User).where(User.team_id == team_id).order_by(User.username.asc()))
  return list(res.scalars().all())


def _team_out(t: Team, members: list[User], *, detail: bool = False) -> TeamOut:
  leader = next((m for m in members if m.id == t.leader_id), None)
  data = dict(
    id=t.id,
    name=t.name,
    description=t.description,
    leader=_ref(leader) if leader else None,
    memberCount=len(members),
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )
  if detail:
    return TeamDetailOut(**data, members=[_ref(m) for m in members])
  return TeamOut(**data)


async def _load_team(db: AsyncSession, team_id: str) -> Team:
  tid = require_uuid(team_id, field="teamId")
  res = await db.execute(select(Team).where(Team.id == tid))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFoundError("Team not found")
  return t


async def _load_member_candidate(db: AsyncSession, user_id: str | None) -> User:
  uid = require_uuid(user_id, field="userId")
  res = await db.execute(select(User).where(User.id == uid))
  u = res.scalar_one_or_none()
  if not u:
    raise NotFoundError("User not found")
  return u


async def _ensure_name_free(db: AsyncSession, name: str, *, exclude_id: str | None = None) -> None:
  stmt = select(Team.id).where(Team.name == name)
  if exclude_id:
    stmt = stmt.where(Team.id != exclude_id)
  if (await db.execute(stmt)).scalar_one_or_none() is not None:
    raise ConflictError(f"Team name '{name}' already exists", fields=["name"])


def _require_team_access(user: User, team: Team) -> None:
  if is_privileged(user.role) or user.team_id == team.id:
    return
  raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not a member of this team")


@router.post("", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
async def create_team(
  payload: TeamIn,
  actor: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> TeamOut:
  name = payload.name.strip()
  if not name:
    raise ValidationError("Team name is required", fields=["name"])
  await _ensure_name_free(db, name)
  t = Team(name=name, description=(payload.description or "").strip() or None)
  db.add(t)
  await db.commit()
  logger.info("team %s created by %s", t.id, actor.id)
  return _team_out(t, [])


@router.get("", response_model=list[TeamOut])
async def list_teams(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TeamOut]:
  res = await db.execute(select(Team).order_by(Team.name.asc()))
  teams = res.scalars().all()
  cres = await db.execute(select(User.team_id, func.count()).where(User.team_id.is_not(None)).group_by(User.team_id))
  counts = {tid: int(n) for tid, n in cres.all()}
  leader_ids = {t.leader_id for t in teams if t.leader_id}
  leaders: dict[str, User] = {}
  if leader_ids:
    lres = await db.execute(select(User).where(User.id.in_(leader_ids)))
    leaders = {u.id: u for u in lres.scalars().all()}
  out: list[TeamOut] = []
  for t in teams:
    leader = leaders.get(t.leader_id) if t.leader_id else None
    out.append(
      TeamOut(
        id=t.id,
        name=t.name,
        description=t.description,
        leader=_ref(leader) if leader else None,
        memberCount=counts.get(t.id, 0),
        createdAt=t.created_at,
        updatedAt=t.updated_at,
      )
    )
  return out


@router.get("/{team_id}", response_model=TeamDetailOut)
async def get_team(team_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TeamOut:
  t = await _load_team(db, team_id)
  _require_team_access(user, t)
  return _team_out(t, await _members(db, t.id), detail=True)


@router.put("/{team_id}", response_model=TeamOut)
async def update_team(
  team_id: str,
  payload: TeamUpdateIn,
  actor: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> TeamOut:
  t = await _load_team(db, team_id)
  fields_set = payload.model_fields_set
  if "name" in fields_set and payload.name is not None:
    name = payload.name.strip()
    if not name:
      raise ValidationError("Team name is required", fields=["name"])
    await _ensure_name_free(db, name, exclude_id=t.id)
    t.name = name
  if "description" in fields_set:
    t.description = (payload.description or "").strip() or None
  await db.commit()
  return _team_out(t, await _members(db, t.id))


@router.delete("/{team_id}")
async def delete_team(team_id: str, actor: User = Depends(require_privileged), db: AsyncSession = Depends(get_db)) -> dict:
  t = await _load_team(db, team_id)
  released = await db.execute(update(User).where(User.team_id == t.id).values(team_id=None))
  await db.execute(update(Task).where(Task.team_id == t.id).values(team_id=None))
  await db.delete(t)
  await db.commit()
  logger.info("team %s deleted by %s (%d members released)", t.id, actor.id, released.rowcount or 0)
  return {"ok": True, "message": "Team deleted successfully"}


@router.get("/{team_id}/members", response_model=list[UserRefOut])
async def list_members(team_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[UserRefOut]:
  t = await _load_team(db, team_id)
  _require_team_access(user, t)
  return [_ref(m) for m in await _members(db, t.id)]


@router.put("/{team_id}/leader", response_model=TeamDetailOut)
async def set_leader(
  team_id: str,
  payload: TeamLeaderIn,
  actor: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> TeamOut:
  t = await _load_team(db, team_id)
  if payload.userId is None:
    t.leader_id = None
  else:
    u = await _load_member_candidate(db, payload.userId)
    if u.team_id != t.id:
      raise ValidationError("The leader must be a member of the team", fields=["userId"])
    t.leader_id = u.id
  await db.commit()
  return _team_out(t, await _members(db, t.id), detail=True)


@router.post("/{team_id}/members")
async def add_member(
  team_id: str,
  payload: TeamMemberIn,
  actor: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> dict:
  t = await _load_team(db, team_id)
  u = await _load_member_candidate(db, payload.userId)
  if u.team_id == t.id:
    return {"ok": True, "message": "User is already a member of this team"}
  if u.team_id is not None:
    raise ValidationError("User already belongs to another team", fields=["userId"])
  u.team_id = t.id
  await db.commit()
  return {"ok": True, "message": "Member added"}


@router.delete("/{team_id}/members/{user_id}")
async def remove_member(
  team_id: str,
  user_id: str,
  actor: User = Depends(require_privileged),
  db: AsyncSession = Depends(get_db),
) -> dict:
  t = await _load_team(db, team_id)
  u = await _load_member_candidate(db, user_id)
  if u.team_id != t.id:
    raise ValidationError("User is not a member of this team", fields=["userId"])
  u.team_id = None
  if t.leader_id == u.id:
    t.leader_id = None
  await db.commit()
  return {"ok": True, "message": "Member removed"}
