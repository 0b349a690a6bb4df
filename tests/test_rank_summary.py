from __future__ import annotations

from datetime import date

import pytest

from rank_sheet_agent.errors import ValidationError
from rank_sheet_agent.models import RankRecord
from rank_sheet_agent.rank_summary import classify_rank, format_bucket_cell, summarize_ranks


def _record(keyword: str, rank: int, delta: int = 0) -> RankRecord:
    return RankRecord(day=date(2024, 1, 1), keyword=keyword, rank=rank, rank_delta=delta)


@pytest.mark.parametrize(
    ("rank", "bucket"),
    [
        (1, "1-3"),
        (3, "1-3"),
        (4, "4-10"),
        (10, "4-10"),
        (11, "11-50"),
        (50, "11-50"),
        (51, "other"),
        (0, "other"),
        (-7, "other"),
        (None, "other"),
    ],
)
def test_classify_rank_boundaries(rank, bucket) -> None:
    assert classify_rank(rank) == bucket


def test_summary_counts_and_percentages() -> None:
    summary = summarize_ranks([_record("shoes", 2), _record("boots", 15)])

    assert summary.total == 2
    assert format_bucket_cell(summary.bucket("1-3")) == "50.00% (1)"
    assert format_bucket_cell(summary.bucket("4-10")) == "0.00% (0)"
    assert format_bucket_cell(summary.bucket("11-50")) == "50.00% (1)"
    assert format_bucket_cell(summary.bucket("other")) == "0.00% (0)"


def test_percentages_sum_to_hundred() -> None:
    summary = summarize_ranks([_record("a", 1), _record("b", 7), _record("c", 99)])
    rounded = sum(round(bucket.percent, 2) for bucket in summary.buckets)
    assert abs(rounded - 100.0) <= 0.02


def test_empty_batch_fails_fast() -> None:
    with pytest.raises(ValidationError):
        summarize_ranks([])


def test_rank_change_statistics() -> None:
    summary = summarize_ranks(
        [
            _record("up-small", 5, 1),
            _record("up-big", 2, 8),
            _record("up-bigger", 1, 12),
            _record("down-big", 40, -5),
            _record("flat", 9, 0),
        ]
    )

    assert (summary.improved, summary.worsened, summary.unchanged) == (3, 1, 1)
    assert [row.keyword for row in summary.big_winners] == ["up-big", "up-bigger"]
    assert [(row.keyword, row.change) for row in summary.big_losers] == [("down-big", 5)]
    assert summary.share(summary.improved) == pytest.approx(60.0)
