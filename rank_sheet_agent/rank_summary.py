from __future__ import annotations

from typing import Iterable

from rank_sheet_agent.errors import ValidationError
from rank_sheet_agent.models import (
    BUCKET_OTHER,
    BUCKET_TOP10,
    BUCKET_TOP3,
    BUCKET_TOP50,
    RANK_BUCKETS,
    RankBucket,
    RankMover,
    RankRecord,
    RankSummary,
)


BIG_MOVE_THRESHOLD = 3


def classify_rank(rank: int | None) -> str:
    # 0, negatives and missing ranks mean "not ranked".
    if rank is None:
        return BUCKET_OTHER
    if 1 <= rank <= 3:
        return BUCKET_TOP3
    if 4 <= rank <= 10:
        return BUCKET_TOP10
    if 11 <= rank <= 50:
        return BUCKET_TOP50
    return BUCKET_OTHER


def summarize_ranks(records: Iterable[RankRecord]) -> RankSummary:
    """Bucket histogram, percentage of total and day-over-day movement.

    The same value feeds the summary block of integrated reports and the
    Slack digest, so neither recomputes it.
    """
    rows = list(records)
    total = len(rows)
    if total == 0:
        raise ValidationError("Cannot compute rank distribution for an empty batch.")

    counts = {label: 0 for label in RANK_BUCKETS}
    improved = worsened = unchanged = 0
    winners: list[RankMover] = []
    losers: list[RankMover] = []

    for row in rows:
        counts[classify_rank(row.rank)] += 1

        delta = row.rank_delta
        if delta > 0:
            improved += 1
            if delta >= BIG_MOVE_THRESHOLD:
                winners.append(RankMover(keyword=row.keyword, rank=row.rank, change=delta))
        elif delta < 0:
            worsened += 1
            if delta <= -BIG_MOVE_THRESHOLD:
                losers.append(RankMover(keyword=row.keyword, rank=row.rank, change=abs(delta)))
        else:
            unchanged += 1

    buckets = tuple(
        RankBucket(label=label, count=counts[label], percent=(counts[label] / total) * 100)
        for label in RANK_BUCKETS
    )
    winners.sort(key=lambda item: item.change)
    losers.sort(key=lambda item: item.change, reverse=True)
    return RankSummary(
        total=total,
        buckets=buckets,
        improved=improved,
        worsened=worsened,
        unchanged=unchanged,
        big_winners=winners,
        big_losers=losers,
    )


def format_bucket_cell(bucket: RankBucket) -> str:
    return f"{bucket.percent:.2f}% ({bucket.count})"
