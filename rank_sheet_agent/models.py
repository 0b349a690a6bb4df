from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


LAYOUT_MATRIX = "matrix"
LAYOUT_INTEGRATED = "integrated"
REPORT_LAYOUTS = (LAYOUT_MATRIX, LAYOUT_INTEGRATED)

BUCKET_TOP3 = "1-3"
BUCKET_TOP10 = "4-10"
BUCKET_TOP50 = "11-50"
BUCKET_OTHER = "other"
RANK_BUCKETS = (BUCKET_TOP3, BUCKET_TOP10, BUCKET_TOP50, BUCKET_OTHER)


@dataclass(frozen=True)
class RankRecord:
    day: date
    keyword: str
    rank: int = 0
    rank_delta: int = 0
    ranking_url: str = ""
    groups: tuple[str, ...] = ()
    time: str = ""
    search_volume: int = 0
    title: str = ""
    priority_url: str = ""
    country: str = ""

    @property
    def date_key(self) -> str:
        return self.day.isoformat()


@dataclass(frozen=True)
class RankBucket:
    label: str
    count: int
    percent: float


@dataclass(frozen=True)
class RankMover:
    keyword: str
    rank: int
    change: int


@dataclass
class RankSummary:
    total: int
    buckets: tuple[RankBucket, ...]
    improved: int = 0
    worsened: int = 0
    unchanged: int = 0
    big_winners: list[RankMover] = field(default_factory=list)
    big_losers: list[RankMover] = field(default_factory=list)

    def bucket(self, label: str) -> RankBucket:
        for row in self.buckets:
            if row.label == label:
                return row
        raise KeyError(label)

    def share(self, count: int) -> float:
        return (count / self.total) * 100 if self.total else 0.0


@dataclass
class GroupSyncResult:
    report_name: str
    record_count: int
    ok: bool
    error: str = ""
