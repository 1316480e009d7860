from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://taskhub:taskhub@db:5432/taskhub"
  app_secret: str = "dev-secret-change-me"
  app_version: str = "0.1.0"
  log_level: str = "INFO"

  cookie_secure: bool = False
  cookie_domain: str | None = None

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,api,web"

  redis_url: str | None = None
  rate_limit_login_per_minute: int = 20
  rate_limit_password_reset_per_minute: int = 5
  password_reset_ttl_minutes: int = 15

  frontend_url: str = "http://localhost:3000"
  email_provider: str = "local"  # local | smtp
  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_username: str | None = None
  smtp_password: str | None = None
  smtp_from: str | None = None
  smtp_starttls: bool = True
  notification_timeout_seconds: float = 10.0

  reminder_enabled: bool = True
  reminder_cron: str = "0 9 * * *"
  reminder_timezone: str = "Asia/Bangkok"
  reminder_days_before: int = 3
  reminder_run_stale_minutes: int = 30

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def is_test_db(self) -> bool:
    db_name = self.database_url.rsplit("/", 1)[-1]
    return "test" in db_name


settings = Settings()
