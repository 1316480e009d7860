from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from taskhub.clock import end_of_day, format_date, range_start, start_of_day
from taskhub.reminders.scheduler import parse_daily_cron

BANGKOK = ZoneInfo("Asia/Bangkok")


def test_default_schedule_fires_at_nine_bangkok() -> None:
  schedule = parse_daily_cron("0 9 * * *", "Asia/Bangkok")
  # 01:00 UTC is 08:00 in Bangkok: the same day's 09:00 is next.
  before = datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)
  assert schedule.next_fire_at(before) == datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)
  assert schedule.seconds_until_next(before) == 3600

  # Exactly at 09:00 local the next run is tomorrow.
  at = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)
  assert schedule.next_fire_at(at) == datetime(2026, 3, 3, 2, 0, tzinfo=timezone.utc)


def test_custom_minute_and_hour() -> None:
  schedule = parse_daily_cron("30 18 * * *", "UTC")
  now = datetime(2026, 3, 2, 19, 0, tzinfo=timezone.utc)
  assert schedule.next_fire_at(now) == datetime(2026, 3, 3, 18, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("expr", ["", "0 9 * *", "*/5 9 * * *", "0 9 * * 1", "0 24 * * *", "60 9 * * *", "0 9-17 * * *"])
def test_unsupported_cron_expressions_are_rejected(expr: str) -> None:
  with pytest.raises(ValueError):
    parse_daily_cron(expr, "Asia/Bangkok")


def test_day_boundaries_follow_the_configured_zone() -> None:
  # 20:00 UTC on Mar 1 is already Mar 2 in Bangkok.
  now = datetime(2026, 3, 1, 20, 0, tzinfo=timezone.utc)
  assert start_of_day(now, BANGKOK) == datetime(2026, 3, 1, 17, 0, tzinfo=timezone.utc)
  assert end_of_day(now, BANGKOK, days=3).astimezone(BANGKOK).date().isoformat() == "2026-03-05"
  assert format_date(now, BANGKOK) == "2026-03-02"


def test_range_start_week_month_year() -> None:
  # Wednesday Mar 4 2026, Bangkok.
  now = datetime(2026, 3, 4, 5, 0, tzinfo=timezone.utc)
  assert range_start(now, BANGKOK, "D").astimezone(BANGKOK).date().isoformat() == "2026-03-04"
  assert range_start(now, BANGKOK, "W").astimezone(BANGKOK).date().isoformat() == "2026-03-02"
  assert range_start(now, BANGKOK, "M").astimezone(BANGKOK).date().isoformat() == "2026-03-01"
  assert range_start(now, BANGKOK, "Y").astimezone(BANGKOK).date().isoformat() == "2026-01-01"
