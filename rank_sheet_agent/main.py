from __future__ import annotations

import argparse
from datetime import date, datetime
from pathlib import Path
from typing import Sequence
from zoneinfo import ZoneInfo

from dotenv import find_dotenv, load_dotenv

from rank_sheet_agent.clients.google_sheets_client import GoogleSheetsClient
from rank_sheet_agent.clients.slack_client import SlackNotifier
from rank_sheet_agent.config import AgentConfig
from rank_sheet_agent.fanout import ReportStore, count_failures, fan_out, sync_group_reports
from rank_sheet_agent.models import REPORT_LAYOUTS, GroupSyncResult, RankRecord
from rank_sheet_agent.rank_data import filter_records_for_day, read_rank_csv
from rank_sheet_agent.rank_summary import format_bucket_cell, summarize_ranks


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keyword rank report updater")
    parser.add_argument(
        "--csv",
        dest="csv_path",
        help="Rank checker CSV export (default: RANK_CSV_PATH).",
    )
    parser.add_argument(
        "--run-date",
        dest="run_date",
        help="Day to merge in YYYY-MM-DD format (default: today in SCHEDULE_TZ).",
    )
    parser.add_argument(
        "--layout",
        choices=REPORT_LAYOUTS,
        help="Report layout (default: RANK_REPORT_LAYOUT).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and group records, print the plan, write nothing.",
    )
    parser.add_argument(
        "--no-slack",
        action="store_true",
        help="Skip the Slack digest for this run.",
    )
    return parser.parse_args(argv)


def _parse_run_date(raw: str | None, timezone: str) -> date:
    if not raw:
        return datetime.now(ZoneInfo(timezone)).date()
    return date.fromisoformat(raw)


def run_report_sync(
    store: ReportStore,
    records: Sequence[RankRecord],
    config: AgentConfig,
    layout: str,
) -> list[GroupSyncResult]:
    extra_reports = (config.all_keywords_report_name,) if config.all_keywords_report_name else ()
    return sync_group_reports(
        store,
        records,
        layout=layout,
        unclassified_group=config.unclassified_report_name,
        extra_reports=extra_reports,
        report_key=getattr(store, "report_title", None),
    )


def _send_slack_digest(config: AgentConfig, records: Sequence[RankRecord], day: date) -> None:
    notifier = SlackNotifier(
        webhook_url=config.slack_webhook_url,
        channel=config.slack_channel,
        username=config.slack_username,
        icon_emoji=config.slack_icon_emoji,
        thread_ts=config.slack_thread_ts,
    )
    try:
        notifier.notify_summary(summarize_ranks(records), day.isoformat(), config.spreadsheet_url)
        print("Slack digest sent.")
    except Exception as exc:
        print(f"Slack notification failed: {exc}")


def main(argv: Sequence[str] | None = None) -> None:
    try:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    except Exception:
        pass

    args = _parse_args(argv)
    config = AgentConfig.from_env()
    run_date = _parse_run_date(args.run_date, config.timezone)
    layout = args.layout or config.report_layout

    csv_path = (args.csv_path or config.rank_csv_path).strip()
    if not csv_path:
        raise SystemExit("No rank CSV given. Pass --csv or set RANK_CSV_PATH.")

    all_records = read_rank_csv(Path(csv_path))
    records = filter_records_for_day(all_records, run_date)
    print(
        f"Records for {run_date.isoformat()}: {len(records)} / {len(all_records)} in {csv_path}"
    )
    if not records:
        raise SystemExit(f"No rank records for {run_date.isoformat()}; nothing to merge.")

    summary = summarize_ranks(records)
    for bucket in summary.buckets:
        print(f"- {bucket.label}: {format_bucket_cell(bucket)}")

    if args.dry_run:
        for group, subset in fan_out(records, config.unclassified_report_name).items():
            print(f"Would update report: {group} | records={len(subset)} | layout={layout}")
        return

    results: list[GroupSyncResult] = []
    if config.sheets_enabled:
        store = GoogleSheetsClient(
            client_secret_path=config.google_sheets_client_secret_path,
            token_path=config.google_sheets_token_path,
            spreadsheet_id=config.spreadsheet_id,
            value_range=config.sheet_value_range,
            min_request_interval_sec=config.sheets_min_request_interval_sec,
            fallback_report_name=config.unclassified_report_name,
        ).connect()
        try:
            results = run_report_sync(store, records, config, layout)
        finally:
            store.close()
    else:
        print(
            "Google Sheets sync skipped: set GOOGLE_SHEETS_CLIENT_SECRET_PATH and SPREADSHEET_ID."
        )

    if config.slack_notifications_enabled and not args.no_slack:
        _send_slack_digest(config, records, run_date)

    failures = count_failures(results)
    if failures:
        print(f"Run finished with report-level failures ({failures}/{len(results)}):")
        for row in results:
            if not row.ok:
                print(f"- {row.report_name}: {row.error}")
        if failures == len(results):
            raise SystemExit("Run failed: no report was updated.")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
