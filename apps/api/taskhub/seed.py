from __future__ import annotations

import asyncio
import logging
import os
import secrets

from sqlalchemy import select

from taskhub.db import SessionLocal
from taskhub.models import Team, User
from taskhub.security import hash_password

logger = logging.getLogger(__name__)


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def seed() -> list[str]:
  """
  Create the bootstrap admin (and, with SEED_DEMO_TEAM, a demo team).

  Idempotent: existing usernames and team names are left untouched. Returns
  the credential lines of accounts created in this run.
  """
  created: list[str] = []
  async with SessionLocal() as db:
    admin_password, admin_generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    res = await db.execute(select(User).where(User.username == "admin"))
    if res.scalar_one_or_none() is None:
      db.add(
        User(
          username="admin",
          email="admin@taskhub.local",
          fname="Admin",
          lname="",
          role="Admin",
          password_hash=hash_password(admin_password),
        )
      )
      created.append(f"admin={admin_password} (generated={str(admin_generated).lower()})")

    if os.getenv("SEED_DEMO_TEAM", "").strip().lower() in ("1", "true", "yes", "y"):
      tres = await db.execute(select(Team).where(Team.name == "Demo Team"))
      team = tres.scalar_one_or_none()
      if team is None:
        team = Team(name="Demo Team", description="Sample team")
        db.add(team)
        await db.flush()
      member_password, member_generated = _bootstrap_password("SEED_MEMBER_PASSWORD")
      mres = await db.execute(select(User).where(User.username == "member"))
      if mres.scalar_one_or_none() is None:
        member = User(
          username="member",
          email="member@taskhub.local",
          fname="Member",
          lname="",
          role="User",
          team_id=team.id,
          password_hash=hash_password(member_password),
        )
        db.add(member)
        await db.flush()
        team.leader_id = member.id
        created.append(f"member={member_password} (generated={str(member_generated).lower()})")

    await db.commit()

  for ln in created:
    logger.warning("seed credentials created: %s", ln)
  return created


def main() -> None:
  logging.basicConfig(level=logging.INFO)
  asyncio.run(seed())


if __name__ == "__main__":
  main()
