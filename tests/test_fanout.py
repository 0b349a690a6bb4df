from __future__ import annotations

from datetime import date

from rank_sheet_agent.errors import NotFoundError, StoreError
from rank_sheet_agent.fanout import count_failures, fan_out, sync_group_reports, sync_report
from rank_sheet_agent.grid import Grid
from rank_sheet_agent.models import LAYOUT_INTEGRATED, LAYOUT_MATRIX, RankRecord


def _record(keyword: str, rank: int, groups: tuple[str, ...]) -> RankRecord:
    return RankRecord(day=date(2024, 1, 1), keyword=keyword, rank=rank, groups=groups)


class _FakeStore:
    def __init__(self, grids: dict[str, Grid] | None = None, fail_on: set[str] | None = None):
        self.grids = dict(grids or {})
        self.fail_on = set(fail_on or ())
        self.calls: list[tuple[str, str]] = []

    def get(self, report_name: str) -> Grid:
        self.calls.append(("get", report_name))
        return self.grids.get(report_name, Grid()).copy()

    def put(self, report_name: str, grid: Grid) -> None:
        self.calls.append(("put", report_name))
        if report_name in self.fail_on:
            raise StoreError(f"quota exceeded for {report_name}")
        self.grids[report_name] = grid.copy()


class _MissingReportStore(_FakeStore):
    def get(self, report_name: str) -> Grid:
        raise NotFoundError(report_name)


def _keywords(grid: Grid) -> list[str]:
    bounds = grid.locate_sections()
    return [row[0] for row in grid.rows[bounds.detail_header + 1 :]]


def test_fan_out_routes_records_to_every_group() -> None:
    both = _record("shoes", 2, ("A", "B"))
    only_a = _record("boots", 5, ("A",))
    untagged = _record("hats", 9, ())

    grouped = fan_out([both, only_a, untagged])

    assert list(grouped) == ["A", "B", "unclassified"]
    assert grouped["A"] == [both, only_a]
    assert grouped["B"] == [both]
    assert grouped["unclassified"] == [untagged]


def test_fan_out_ignores_duplicate_and_blank_group_tags() -> None:
    record = _record("shoes", 2, ("A", "A", " "))
    assert fan_out([record], unclassified_group="misc") == {"A": [record]}


def test_sync_group_reports_writes_each_group_report() -> None:
    store = _FakeStore(grids={"C": Grid([["keyword", "url", "2023-12-31"], ["socks", "", "4"]])})
    records = [_record("shoes", 2, ("A", "B")), _record("boots", 5, ("A",))]

    results = sync_group_reports(store, records, layout=LAYOUT_MATRIX)

    assert [(row.report_name, row.record_count, row.ok) for row in results] == [
        ("A", 2, True),
        ("B", 1, True),
    ]
    assert _keywords(store.grids["A"]) == ["shoes", "boots"]
    assert _keywords(store.grids["B"]) == ["shoes"]
    assert _keywords(store.grids["C"]) == ["socks"]
    assert count_failures(results) == 0


def test_one_failing_report_does_not_stop_the_others(capsys) -> None:
    store = _FakeStore(fail_on={"A"})
    records = [_record("shoes", 2, ("A",)), _record("boots", 5, ("B",))]

    results = sync_group_reports(store, records, layout=LAYOUT_MATRIX)

    assert count_failures(results) == 1
    failed = [row for row in results if not row.ok][0]
    assert failed.report_name == "A"
    assert "quota exceeded" in failed.error
    assert "B" in store.grids
    assert "Report sync failed: A" in capsys.readouterr().out


def test_extra_report_receives_whole_batch() -> None:
    store = _FakeStore()
    records = [_record("shoes", 2, ("A",)), _record("boots", 5, ())]

    results = sync_group_reports(
        store, records, layout=LAYOUT_MATRIX, extra_reports=("All keywords",)
    )

    assert [row.report_name for row in results] == ["All keywords", "A", "unclassified"]
    assert _keywords(store.grids["All keywords"]) == ["shoes", "boots"]


def test_groups_sharing_a_report_name_are_merged_once() -> None:
    store = _FakeStore()
    records = [
        _record("shoes", 2, ("a/b",)),
        _record("boots", 5, ("a b",)),
        _record("socks", 1, ("a/b", "a b")),
    ]

    results = sync_group_reports(
        store,
        records,
        layout=LAYOUT_INTEGRATED,
        report_key=lambda name: name.replace("/", " "),
    )

    assert [(row.report_name, row.record_count, row.ok) for row in results] == [("a b", 3, True)]
    assert store.calls == [("get", "a b"), ("put", "a b")]
    grid = store.grids["a b"]
    assert _keywords(grid) == ["shoes", "socks", "boots"]
    bounds = grid.locate_sections()
    assert grid.cell(bounds.summary_header + 1, 2) == "66.67% (2)"


def test_sync_report_treats_missing_report_as_new() -> None:
    store = _MissingReportStore()
    merged = sync_report(store, "A", [_record("shoes", 2, ("A",))], LAYOUT_MATRIX)

    assert merged.rows == [["keyword", "url", "2024-01-01"], ["shoes", "", "2"]]
    assert store.grids["A"] == merged


def test_sync_report_rereads_before_every_merge() -> None:
    store = _FakeStore()
    sync_report(store, "A", [_record("shoes", 2, ("A",))], LAYOUT_MATRIX)
    store.grids["A"].rows.append(["manual", "", "1"])

    sync_report(store, "A", [_record("boots", 3, ("A",))], LAYOUT_MATRIX)

    assert _keywords(store.grids["A"]) == ["shoes", "manual", "boots"]
    assert store.calls == [("get", "A"), ("put", "A"), ("get", "A"), ("put", "A")]
