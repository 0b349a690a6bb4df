from __future__ import annotations

import csv
import re
from datetime import date
from pathlib import Path
from typing import Iterable, Mapping

from rank_sheet_agent.models import RankRecord


# Column names of the rank checker's CSV export.
COL_DATETIME = "日時"
COL_KEYWORD = "キーワード"
COL_RANK = "順位"
COL_RANK_DELTA = "前日比"
COL_SEARCH_VOLUME = "検索ボリューム"
COL_GROUP = "グループ"
COL_PRIORITY_URL = "優先URL"
COL_TITLE = "タイトル"
COL_RANKING_URL = "ランクインしているURL"
COL_COUNTRY = "国"

_GROUP_SEPARATORS = re.compile(r"[,、\r\n]+")


def _parse_int(raw: object) -> int:
    text = str(raw or "").strip().replace(",", "")
    match = re.match(r"^[+-]?\d+", text)
    return int(match.group(0)) if match else 0


def _split_groups(raw: object) -> tuple[str, ...]:
    groups: list[str] = []
    for part in _GROUP_SEPARATORS.split(str(raw or "")):
        name = part.strip()
        if name and name not in groups:
            groups.append(name)
    return tuple(groups)


def parse_rank_row(row: Mapping[str, object]) -> RankRecord | None:
    raw_datetime = str(row.get(COL_DATETIME) or "").strip()
    keyword = str(row.get(COL_KEYWORD) or "").strip()
    if not raw_datetime or not keyword:
        return None

    day_text, _, time_text = raw_datetime.partition(" ")
    try:
        day = date.fromisoformat(day_text.replace("/", "-"))
    except ValueError:
        return None

    return RankRecord(
        day=day,
        keyword=keyword,
        rank=_parse_int(row.get(COL_RANK)),
        rank_delta=_parse_int(row.get(COL_RANK_DELTA)),
        ranking_url=str(row.get(COL_RANKING_URL) or "").strip(),
        groups=_split_groups(row.get(COL_GROUP)),
        time=time_text.strip(),
        search_volume=_parse_int(row.get(COL_SEARCH_VOLUME)),
        title=str(row.get(COL_TITLE) or "").strip(),
        priority_url=str(row.get(COL_PRIORITY_URL) or "").strip(),
        country=str(row.get(COL_COUNTRY) or "").strip(),
    )


def parse_rank_rows(rows: Iterable[Mapping[str, object]]) -> list[RankRecord]:
    records: list[RankRecord] = []
    for line_no, row in enumerate(rows, start=2):
        record = parse_rank_row(row)
        if record is None:
            if any(str(value or "").strip() for value in row.values()):
                print(f"Skipping CSV row {line_no}: missing or invalid date/keyword.")
            continue
        records.append(record)
    return records


def read_rank_csv(csv_path: Path) -> list[RankRecord]:
    if not csv_path.exists():
        raise RuntimeError(f"Rank CSV file does not exist: {csv_path}")
    # utf-8-sig strips the BOM the export writes.
    with csv_path.open("r", newline="", encoding="utf-8-sig") as handle:
        return parse_rank_rows(csv.DictReader(handle))


def filter_records_for_day(records: Iterable[RankRecord], day: date) -> list[RankRecord]:
    return [record for record in records if record.day == day]
