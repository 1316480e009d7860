from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_DB_PATH = Path(tempfile.gettempdir()) / "taskhub_test.db"
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_PATH}")
os.environ.setdefault("APP_SECRET", "test-secret")
os.environ.setdefault("EMAIL_PROVIDER", "local")

from taskhub.config import settings
from taskhub.db import SessionLocal, engine
from taskhub.main import app
from taskhub.models import Base, Team, User
from taskhub.notifications.dispatcher import dispatcher
from taskhub.notifications.service import LocalEmailSender
from taskhub.rate_limit import limiter
from taskhub.security import hash_password

PASSWORD = "password123"
_PASSWORD_HASH = hash_password(PASSWORD)

# username -> (role, team name, email)
SEEDED_USERS = {
  "admin": ("Admin", None, "admin@taskhub.local"),
  "manager": ("Manager", None, "manager@taskhub.local"),
  "u1": ("User", "Alpha", "u1@taskhub.local"),
  "u2": ("User", "Alpha", "u2@taskhub.local"),
  "u3": ("User", None, None),
}


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)

  async with SessionLocal() as db:
    alpha = Team(name="Alpha", description="Seeded team")
    db.add(alpha)
    await db.flush()
    for username, (role, team_name, email) in SEEDED_USERS.items():
      db.add(
        User(
          username=username,
          email=email,
          fname=username.capitalize(),
          lname="Test",
          role=role,
          team_id=alpha.id if team_name == "Alpha" else None,
          password_hash=_PASSWORD_HASH,
        )
      )
    await db.commit()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend) -> None:
  if not settings.is_test_db():
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. taskhub_test)."
    )
  await _reset_db()
  dispatcher.email_sender = LocalEmailSender()
  yield
  await dispatcher.drain()
  await engine.dispose()


@pytest.fixture
def outbox() -> LocalEmailSender:
  sender = dispatcher.email_sender
  assert isinstance(sender, LocalEmailSender)
  return sender


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def login(client: AsyncClient, username: str, password: str = PASSWORD) -> dict:
  res = await client.post("/auth/login", json={"username": username, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "th_session=" in cookie
  return res.json()


async def user_id(username: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.username == username))
    return res.scalar_one().id


async def team_id(name: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(Team).where(Team.name == name))
    return res.scalar_one().id
