from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from taskhub.db import SessionLocal
from taskhub.reminders.service import ReminderScanResult, run_reminder_scan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailySchedule:
  hour: int
  minute: int
  tz: ZoneInfo

  def next_fire_at(self, now: datetime) -> datetime:
    local = now.astimezone(self.tz)
    target = datetime.combine(local.date(), time(self.hour, self.minute), tzinfo=self.tz)
    if target <= local:
      target = datetime.combine(local.date() + timedelta(days=1), time(self.hour, self.minute), tzinfo=self.tz)
    return target.astimezone(timezone.utc)

  def seconds_until_next(self, now: datetime | None = None) -> float:
    now = now or datetime.now(timezone.utc)
    return max(1.0, (self.next_fire_at(now) - now).total_seconds())


def parse_daily_cron(expr: str, tz_name: str) -> DailySchedule:
  """
  Parse a once-a-day cron expression ("M H * * *").

  Anything richer (ranges, steps, weekdays) is rejected with ValueError.
  """
  parts = (expr or "").split()
  if len(parts) != 5:
    raise ValueError(f"cron expression must have 5 fields: {expr!r}")
  minute_s, hour_s, dom, month, dow = parts
  if (dom, month, dow) != ("*", "*", "*") or not minute_s.isdigit() or not hour_s.isdigit():
    raise ValueError(f"only daily 'M H * * *' cron expressions are supported: {expr!r}")
  minute, hour = int(minute_s), int(hour_s)
  if not (0 <= minute <= 59 and 0 <= hour <= 23):
    raise ValueError(f"cron time out of range: {expr!r}")
  return DailySchedule(hour=hour, minute=minute, tz=ZoneInfo(tz_name))


async def run_scheduled_reminders() -> ReminderScanResult:
  async with SessionLocal() as db:
    return await run_reminder_scan(db)


async def reminder_loop(schedule: DailySchedule) -> None:
  while True:
    delay = schedule.seconds_until_next()
    logger.info("next reminder scan in %.0fs", delay)
    await asyncio.sleep(delay)
    try:
      await run_scheduled_reminders()
    except Exception:
      # Keep the loop alive; the next tick retries.
      logger.exception("reminder scan failed")
