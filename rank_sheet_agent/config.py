from __future__ import annotations

import os
from dataclasses import dataclass

from rank_sheet_agent.models import LAYOUT_INTEGRATED, REPORT_LAYOUTS


def _env(name: str, default: str = "") -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default.strip()
    value = raw.strip()
    placeholder = f"{name}="
    unquoted = value.strip("'\"").strip()
    if unquoted.lower() == placeholder.lower():
        return default.strip()
    return value if value else default.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    return float(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _normalize_layout(raw: str) -> str:
    value = raw.strip().lower().replace("-", "_")
    aliases = {"matrix_only": "matrix", "summary": LAYOUT_INTEGRATED}
    value = aliases.get(value, value)
    return value if value in REPORT_LAYOUTS else LAYOUT_INTEGRATED


@dataclass(frozen=True)
class AgentConfig:
    timezone: str
    rank_csv_path: str
    report_layout: str
    all_keywords_report_name: str
    unclassified_report_name: str

    google_sheets_client_secret_path: str
    google_sheets_token_path: str
    spreadsheet_id: str
    sheet_value_range: str
    sheets_min_request_interval_sec: float

    slack_enabled: bool
    slack_webhook_url: str
    slack_channel: str
    slack_username: str
    slack_icon_emoji: str
    slack_thread_ts: str

    @classmethod
    def from_env(cls) -> "AgentConfig":
        return cls(
            timezone=_env("SCHEDULE_TZ", "Asia/Tokyo"),
            rank_csv_path=_env("RANK_CSV_PATH"),
            report_layout=_normalize_layout(_env("RANK_REPORT_LAYOUT", LAYOUT_INTEGRATED)),
            all_keywords_report_name=_env("RANK_ALL_REPORT_NAME"),
            unclassified_report_name=_env("RANK_UNCLASSIFIED_REPORT_NAME", "unclassified"),
            google_sheets_client_secret_path=_env(
                "GOOGLE_SHEETS_CLIENT_SECRET_PATH",
                _env("GOOGLE_CREDENTIALS_PATH"),
            ),
            google_sheets_token_path=_env("GOOGLE_SHEETS_TOKEN_PATH", ".google_sheets_token.json"),
            spreadsheet_id=_env("SPREADSHEET_ID"),
            sheet_value_range=_env("RANK_SHEET_RANGE", "A1:ZZ"),
            sheets_min_request_interval_sec=max(
                0.0, _env_float("SHEETS_MIN_REQUEST_INTERVAL_SEC", 1.0)
            ),
            slack_enabled=_env_bool("SLACK_ENABLED", True),
            slack_webhook_url=_env("SLACK_WEBHOOK_URL"),
            slack_channel=_env("SLACK_CHANNEL"),
            slack_username=_env("SLACK_USERNAME", "Rank checker"),
            slack_icon_emoji=_env("SLACK_ICON_EMOJI"),
            slack_thread_ts=_env("SLACK_THREAD_TS"),
        )

    @property
    def sheets_enabled(self) -> bool:
        return bool(self.google_sheets_client_secret_path and self.spreadsheet_id)

    @property
    def slack_notifications_enabled(self) -> bool:
        return self.slack_enabled and bool(self.slack_webhook_url)

    @property
    def spreadsheet_url(self) -> str:
        if not self.spreadsheet_id:
            return ""
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}/edit"
