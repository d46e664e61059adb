"""Configuration via pydantic-settings — 12-factor app style."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """alertpilot configuration — loaded from env vars / .env file."""

    model_config = SettingsConfigDict(env_prefix="ALERTPILOT_", env_file=".env", extra="ignore")

    # Evaluation
    evaluation_interval_seconds: float = Field(default=60.0, gt=0, description="Seconds between rule evaluation ticks")
    max_matching_logs: int = Field(default=10, ge=0, description="Matching log entries sampled into each alert")
    search_max_entries: int = Field(default=10000, gt=0, description="Max entries requested from the log source per rule")
    rule_test_max_entries: int = Field(default=100, gt=0, description="Max entries requested when dry-running a rule")
    dispatch_workers: int = Field(default=0, ge=0, description="Notification worker threads (0 = dispatch inline)")

    # Alert history
    redis_url: str = Field(default="", description="Redis URL for the alert archive (empty = in-memory only)")
    alert_retention_seconds: int = Field(default=30 * 24 * 3600, gt=0, description="TTL of archived alerts")

    # Email
    smtp_host: str = Field(default="localhost", description="SMTP server for email notifications")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_username: str = Field(default="", description="SMTP login")
    smtp_password: str = Field(default="", description="SMTP password")
    smtp_from: str = Field(default="alertpilot@localhost", description="Sender address")
    smtp_use_tls: bool = Field(default=True, description="Issue STARTTLS before login")

    # HTTP transports
    webhook_timeout: float = Field(default=5.0, gt=0, description="Timeout for webhook/chat/SMS HTTP calls")
    chat_webhook_url: str = Field(default="", description="Incoming-webhook URL for chat notifications")
    sms_api_base: str = Field(default="https://api.twilio.com", description="Twilio-compatible SMS API base URL")
    sms_account_sid: str = Field(default="", description="SMS gateway account id")
    sms_auth_token: str = Field(default="", description="SMS gateway auth token")
    sms_from_number: str = Field(default="", description="Sender phone number")

    # Reports
    report_output_dir: str = Field(default="reports", description="Directory rendered report artifacts are written to")

    log_level: str = Field(default="INFO", description="Root log level for the CLI")


settings = Settings()
