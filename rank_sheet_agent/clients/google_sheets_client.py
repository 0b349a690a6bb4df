from __future__ import annotations

import json
import os
from pathlib import Path
import re
import time
import webbrowser

import httplib2
from google.auth.transport.requests import Request
try:
    from google_auth_httplib2 import AuthorizedHttp
except Exception:  # pragma: no cover - fallback for minimal envs
    AuthorizedHttp = None
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from rank_sheet_agent.errors import NotFoundError, StoreError
from rank_sheet_agent.grid import Grid


class GoogleSheetsClient:
    """Report store backed by the tabs of one Google spreadsheet.

    Each report is a tab; reads and writes always cover the whole value range.
    """

    SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
    HTTP_TIMEOUT_SEC = 30
    API_RETRIES = 3
    MAX_TITLE_LENGTH = 100
    INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")

    def __init__(
        self,
        client_secret_path: str,
        token_path: str,
        spreadsheet_id: str,
        value_range: str = "A1:ZZ",
        min_request_interval_sec: float = 1.0,
        fallback_report_name: str = "unclassified",
    ) -> None:
        self.client_secret_path = client_secret_path.strip()
        self.token_path = token_path.strip() or ".google_sheets_token.json"
        self.spreadsheet_id = spreadsheet_id.strip()
        self.value_range = value_range.strip() or "A1:ZZ"
        self.min_request_interval_sec = max(0.0, min_request_interval_sec)
        self.fallback_report_name = fallback_report_name.strip() or "unclassified"
        self._service = None
        self._last_request_at: float | None = None

    @classmethod
    def sanitize_report_name(cls, report_name: str, fallback: str = "unclassified") -> str:
        cleaned = cls.INVALID_TITLE_CHARS.sub(" ", report_name)
        cleaned = re.sub(r"\s+", " ", cleaned).strip().strip("'")
        return cleaned[: cls.MAX_TITLE_LENGTH].strip() or fallback

    def report_title(self, report_name: str) -> str:
        return self.sanitize_report_name(report_name, self.fallback_report_name)

    @staticmethod
    def _quote_title(title: str) -> str:
        return "'" + title.replace("'", "''") + "'"

    def _range_for(self, title: str) -> str:
        return f"{self._quote_title(title)}!{self.value_range}"

    def _load_credentials(self) -> Credentials:
        secret_path = Path(self.client_secret_path)
        if not secret_path.exists():
            raise StoreError(
                "Google Sheets credentials file not found: "
                f"{self.client_secret_path}"
            )

        secret_payload = json.loads(secret_path.read_text(encoding="utf-8"))
        if secret_payload.get("type") == "service_account":
            return service_account.Credentials.from_service_account_file(
                str(secret_path),
                scopes=self.SCOPES,
            )

        creds: Credentials | None = None
        token_file = Path(self.token_path)
        if token_file.exists():
            creds = Credentials.from_authorized_user_file(str(token_file), self.SCOPES)

        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if not creds or not creds.valid:
            if self._running_in_ci():
                raise StoreError(
                    "Google Sheets OAuth requires a pre-generated token in CI. "
                    "Provide GOOGLE_SHEETS_TOKEN_PATH or use a service account JSON "
                    "shared with the spreadsheet."
                )
            flow = InstalledAppFlow.from_client_secrets_file(
                str(secret_path), self.SCOPES
            )
            try:
                creds = flow.run_local_server(port=0, access_type="offline", prompt="consent")
            except webbrowser.Error as exc:
                raise StoreError(
                    "Unable to start browser for Google OAuth flow. "
                    "Run locally once to create the token file (GOOGLE_SHEETS_TOKEN_PATH)."
                ) from exc

        if not self._running_in_ci():
            self._write_token_atomically(token_file, creds.to_json())
        return creds

    @staticmethod
    def _running_in_ci() -> bool:
        value = str(os.environ.get("CI", "")).strip().lower()
        return value in {"1", "true", "yes"}

    @staticmethod
    def _write_token_atomically(token_file: Path, payload: str) -> None:
        token_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = token_file.with_suffix(token_file.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(token_file)

    def _get_service(self):
        if self._service is None:
            credentials = self._load_credentials()
            if AuthorizedHttp is not None:
                http = AuthorizedHttp(
                    credentials,
                    http=httplib2.Http(timeout=self.HTTP_TIMEOUT_SEC),
                )
                self._service = build("sheets", "v4", http=http, cache_discovery=False)
            else:
                self._service = build(
                    "sheets",
                    "v4",
                    credentials=credentials,
                    cache_discovery=False,
                )
        return self._service

    def connect(self) -> "GoogleSheetsClient":
        if not self.spreadsheet_id:
            raise StoreError("SPREADSHEET_ID is not configured.")
        self._get_service()
        return self

    def close(self) -> None:
        self._service = None
        self._last_request_at = None

    def _throttle(self) -> None:
        if self._last_request_at is not None:
            wait = self.min_request_interval_sec - (time.monotonic() - self._last_request_at)
            if wait > 0:
                time.sleep(wait)
        self._last_request_at = time.monotonic()

    def _trailing_range(self, title: str, first_row: int) -> str:
        last_column = self.value_range.split(":")[-1].rstrip("0123456789") or "ZZ"
        return f"{self._quote_title(title)}!A{first_row}:{last_column}"

    def _execute(self, request, action: str, write: bool = False) -> dict:
        self._throttle()
        try:
            payload = request.execute(num_retries=self.API_RETRIES)
        except HttpError as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            # A missing spreadsheet only means "new report" on the read path.
            if str(status) == "404" and not write:
                raise NotFoundError(f"Spreadsheet not found during {action}: {exc}") from exc
            raise StoreError(f"Google Sheets {action} failed: {exc}") from exc
        return payload if isinstance(payload, dict) else {}

    def _sheet_ids(self, write: bool = False) -> dict[str, int]:
        service = self._get_service()
        meta = self._execute(
            service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="sheets.properties(sheetId,title)",
            ),
            "metadata read",
            write=write,
        )
        out: dict[str, int] = {}
        for row in meta.get("sheets", []):
            properties = row.get("properties", {}) if isinstance(row, dict) else {}
            title = str(properties.get("title", ""))
            if title:
                out[title] = int(properties.get("sheetId", 0))
        return out

    def _ensure_sheet(self, title: str) -> int:
        existing = self._sheet_ids(write=True)
        if title in existing:
            return existing[title]

        service = self._get_service()
        resp = self._execute(
            service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
            ),
            f"tab create '{title}'",
            write=True,
        )
        try:
            return int(resp["replies"][0]["addSheet"]["properties"]["sheetId"])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise StoreError(f"Google Sheets did not confirm tab creation: {title}") from exc

    def get(self, report_name: str) -> Grid:
        title = self.report_title(report_name)
        if title not in self._sheet_ids():
            return Grid()

        service = self._get_service()
        payload = self._execute(
            service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=self._range_for(title),
                majorDimension="ROWS",
            ),
            f"read '{title}'",
        )
        return Grid.from_values(payload.get("values", []))

    def put(self, report_name: str, grid: Grid) -> None:
        """Overwrite the tab with `grid` in one update.

        Rows below the grid are cleared only after the write succeeded, so a
        failed write leaves the previous contents in place.
        """
        title = self.report_title(report_name)
        self._ensure_sheet(title)

        service = self._get_service()
        self._execute(
            service.spreadsheets().values().update(
                spreadsheetId=self.spreadsheet_id,
                range=f"{self._quote_title(title)}!A1",
                valueInputOption="RAW",
                body={"values": grid.to_values()},
            ),
            f"write '{title}'",
            write=True,
        )
        self._execute(
            service.spreadsheets().values().clear(
                spreadsheetId=self.spreadsheet_id,
                range=self._trailing_range(title, len(grid) + 1),
            ),
            f"clear below '{title}'",
            write=True,
        )
