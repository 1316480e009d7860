from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from taskhub.config import settings
from taskhub.errors import DomainError
from taskhub.notifications.dispatcher import dispatcher
from taskhub.reminders.scheduler import parse_daily_cron, reminder_loop
from taskhub.routers.auth import router as auth_router
from taskhub.routers.notifications import router as notifications_router
from taskhub.routers.tasks import router as tasks_router
from taskhub.routers.teams import router as teams_router
from taskhub.routers.users import router as users_router

logging.basicConfig(
  level=getattr(logging, settings.log_level.upper(), logging.INFO),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="taskhub API", version=settings.app_version)


@app.exception_handler(DomainError)
async def _domain_error_handler(_, exc: DomainError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(teams_router)
app.include_router(tasks_router)
app.include_router(notifications_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version}


_reminder_loop_task: asyncio.Task | None = None


@app.on_event("startup")
async def _startup() -> None:
  global _reminder_loop_task
  if settings.is_test_db():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  if settings.reminder_enabled and _reminder_loop_task is None:
    schedule = parse_daily_cron(settings.reminder_cron, settings.reminder_timezone)
    _reminder_loop_task = asyncio.create_task(reminder_loop(schedule))
    logger.info("reminder scheduler started (%s %s)", settings.reminder_cron, settings.reminder_timezone)


@app.on_event("shutdown")
async def _shutdown() -> None:
  global _reminder_loop_task
  if _reminder_loop_task is not None:
    _reminder_loop_task.cancel()
    _reminder_loop_task = None
  await dispatcher.drain()
