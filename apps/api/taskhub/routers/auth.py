from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import settings
from taskhub.deps import get_current_user, get_db
from taskhub.models import PasswordResetToken, Session as DbSession, User
from taskhub.notifications.dispatcher import dispatcher
from taskhub.rate_limit import limiter
from taskhub.routers.users import user_out
from taskhub.schemas import ForgotPasswordIn, LoginIn, ResetPasswordIn, UserOut
from taskhub.security import (
  SESSION_COOKIE_NAME,
  SESSION_TTL_DAYS,
  hash_password,
  new_session_expires_at,
  reset_token_hash,
  reset_token_new,
  verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_FORGOT_OK = {"ok": True, "message": "If an account with that email exists, a password reset link has been sent."}


def _client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"


@router.post("/login", response_model=UserOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  ip = _client_ip(request)
  username = payload.username.strip()
  limiter.enforce(f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_per_minute))
  limiter.enforce(f"auth:login:user:{username.lower()}", limit=int(settings.rate_limit_login_per_minute))

  res = await db.execute(select(User).where(User.username == username))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    logger.info("login failed for %r from %s", username, ip)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login failed")
  if not u.active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")

  s = DbSession(
    user_id=u.id,
    expires_at=new_session_expires_at(),
    created_ip=request.client.host if request.client else None,
    user_agent=request.headers.get("user-agent"),
  )
  db.add(s)
  await db.commit()

  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain or None,
    max_age=int(SESSION_TTL_DAYS * 86400),
    expires=s.expires_at,
    path="/",
  )
  return await user_out(db, u)


@router.post("/logout")
async def logout(
  response: Response,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await db.execute(delete(DbSession).where(DbSession.user_id == user.id))
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
  await db.commit()
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserOut:
  return await user_out(db, user)


@router.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordIn, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
  ip = _client_ip(request)
  email = payload.email.strip().lower()
  limiter.enforce(f"auth:pwreset:ip:{ip}", limit=int(settings.rate_limit_password_reset_per_minute))

  # Same answer whether or not the account exists.
  res = await db.execute(select(User).where(User.email == email, User.active.is_(True)))
  u = res.scalar_one_or_none()
  if not u:
    return _FORGOT_OK

  token = reset_token_new()
  ttl = max(1, int(settings.password_reset_ttl_minutes))
  db.add(
    PasswordResetToken(
      user_id=u.id,
      token_hash=reset_token_hash(token),
      request_ip=ip,
      expires_at=datetime.now(timezone.utc) + timedelta(minutes=ttl),
    )
  )
  await db.commit()

  reset_url = f"{settings.frontend_url.rstrip('/')}/reset-password/{token}"
  try:
    await dispatcher.email_sender.send(
      to=u.email,
      subject="Password Reset Request",
      body=(
        f"Hi {u.fname or u.username},\n\n"
        f"A password reset was requested for your account ({u.username}).\n\n"
        f"Reset link: {reset_url}\n\n"
        f"This link expires in {ttl} minutes. If you did not request it, you can ignore this email.\n"
      ),
    )
  except Exception:
    logger.exception("password reset email to %s failed", u.email)
  return _FORGOT_OK


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordIn, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
  limiter.enforce(f"auth:pwreset:confirm:ip:{_client_ip(request)}", limit=int(settings.rate_limit_password_reset_per_minute))

  res = await db.execute(select(PasswordResetToken).where(PasswordResetToken.token_hash == reset_token_hash(payload.token)))
  t = res.scalar_one_or_none()
  if not t or t.used_at is not None or t.expires_at < datetime.now(timezone.utc):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired token")

  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired token")

  u.password_hash = hash_password(payload.password)
  t.used_at = datetime.now(timezone.utc)
  await db.execute(delete(DbSession).where(DbSession.user_id == u.id))
  await db.commit()
  return {"ok": True, "message": "Password reset successful"}
