from __future__ import annotations

import requests

from rank_sheet_agent.models import RANK_BUCKETS, RankSummary
from rank_sheet_agent.rank_summary import format_bucket_cell


class SlackNotifier:
    HTTP_TIMEOUT_SEC = 20

    def __init__(
        self,
        webhook_url: str,
        channel: str = "",
        username: str = "Rank checker",
        icon_emoji: str = "",
        thread_ts: str = "",
        broadcast_thread_reply: bool = True,
    ) -> None:
        self.webhook_url = webhook_url.strip()
        self.channel = channel.strip()
        self.username = username.strip()
        self.icon_emoji = icon_emoji.strip()
        self.thread_ts = thread_ts.strip()
        self.broadcast_thread_reply = broadcast_thread_reply

    @staticmethod
    def build_digest(summary: RankSummary, day_key: str, report_link: str = "") -> str:
        lines = [f"Rank check results ({day_key})", ""]
        heading = "Rank distribution"
        if report_link:
            heading += f" <{report_link}|open>"
        lines.append(heading)
        for label in RANK_BUCKETS:
            lines.append(f"{label}: {format_bucket_cell(summary.bucket(label))}")
        lines.append("")
        lines.append("Rank changes")
        lines.append(f"up: {summary.improved} ({summary.share(summary.improved):.2f}%)")
        lines.append(f"down: {summary.worsened} ({summary.share(summary.worsened):.2f}%)")
        lines.append(f"unchanged: {summary.unchanged} ({summary.share(summary.unchanged):.2f}%)")
        if summary.big_winners:
            lines.append("")
            lines.append("Big winners")
            lines.extend(f"- {row.keyword}: {row.rank} (+{row.change})" for row in summary.big_winners)
        if summary.big_losers:
            lines.append("")
            lines.append("Big losers")
            lines.extend(f"- {row.keyword}: {row.rank} (-{row.change})" for row in summary.big_losers)
        return "\n".join(lines)

    def _payload(self, message: str) -> dict:
        payload: dict = {"text": message}
        if self.channel:
            payload["channel"] = self.channel
        if self.username:
            payload["username"] = self.username
        if self.icon_emoji:
            payload["icon_emoji"] = self.icon_emoji
        if self.thread_ts:
            payload["thread_ts"] = self.thread_ts
            if self.broadcast_thread_reply:
                payload["reply_broadcast"] = True
        return payload

    def send_message(self, message: str) -> None:
        if not self.webhook_url:
            raise RuntimeError("Slack webhook URL is not configured.")
        response = requests.post(
            self.webhook_url,
            json=self._payload(message),
            timeout=self.HTTP_TIMEOUT_SEC,
        )
        if response.status_code != 200:
            raise RuntimeError(
                f"Slack webhook returned HTTP {response.status_code}: {response.text[:200]}"
            )

    def notify_summary(self, summary: RankSummary, day_key: str, report_link: str = "") -> None:
        self.send_message(self.build_digest(summary, day_key, report_link))
