from __future__ import annotations

from typing import Callable, Iterable, Protocol, Sequence

from rank_sheet_agent.errors import NotFoundError
from rank_sheet_agent.grid import Grid
from rank_sheet_agent.matrix_merge import merge_records
from rank_sheet_agent.models import LAYOUT_INTEGRATED, GroupSyncResult, RankRecord


UNCLASSIFIED_GROUP = "unclassified"


class ReportStore(Protocol):
    def get(self, report_name: str) -> Grid: ...

    def put(self, report_name: str, grid: Grid) -> None: ...


def fan_out(
    records: Iterable[RankRecord],
    unclassified_group: str = UNCLASSIFIED_GROUP,
) -> dict[str, list[RankRecord]]:
    """Partition records by group tag, in order of first appearance.

    A record tagged with several groups lands in each of them; untagged
    records go to `unclassified_group`.
    """
    grouped: dict[str, list[RankRecord]] = {}
    for record in records:
        groups = [group for group in record.groups if group.strip()] or [unclassified_group]
        seen: set[str] = set()
        for group in groups:
            if group in seen:
                continue
            seen.add(group)
            grouped.setdefault(group, []).append(record)
    return grouped


def sync_report(
    store: ReportStore,
    report_name: str,
    records: Sequence[RankRecord],
    layout: str = LAYOUT_INTEGRATED,
) -> Grid:
    # Always re-read: the tab may have been edited since our last write.
    try:
        previous = store.get(report_name)
    except NotFoundError:
        previous = Grid()
    merged = merge_records(previous, records, layout)
    store.put(report_name, merged)
    return merged


def sync_group_reports(
    store: ReportStore,
    records: Sequence[RankRecord],
    layout: str = LAYOUT_INTEGRATED,
    unclassified_group: str = UNCLASSIFIED_GROUP,
    extra_reports: Sequence[str] = (),
    report_key: Callable[[str], str] | None = None,
) -> list[GroupSyncResult]:
    """Run one read-merge-write cycle per destination report, sequentially.

    `extra_reports` receive the whole batch (e.g. an "all keywords" tab).
    `report_key` maps a group name to the store's report name; groups that
    map to the same report are merged as one batch. A failing report is
    recorded and the remaining reports still run.
    """
    key_for = report_key or (lambda name: name)
    targets: dict[str, list[RankRecord]] = {}
    placed: dict[str, set[int]] = {}

    def _add(report_name: str, subset: Iterable[RankRecord]) -> None:
        key = key_for(report_name)
        rows = targets.setdefault(key, [])
        seen = placed.setdefault(key, set())
        for record in subset:
            if id(record) not in seen:
                seen.add(id(record))
                rows.append(record)

    for report_name in extra_reports:
        if report_name.strip():
            _add(report_name.strip(), records)
    for group, subset in fan_out(records, unclassified_group).items():
        _add(group, subset)

    results: list[GroupSyncResult] = []
    for report_name, subset in targets.items():
        try:
            sync_report(store, report_name, subset, layout)
        except Exception as exc:
            results.append(
                GroupSyncResult(
                    report_name=report_name,
                    record_count=len(subset),
                    ok=False,
                    error=f"{type(exc).__name__}: {exc}",
                )
            )
            print(f"Report sync failed: {report_name} | {exc}")
            continue
        results.append(GroupSyncResult(report_name=report_name, record_count=len(subset), ok=True))
        print(f"Report updated: {report_name} | records={len(subset)} | layout={layout}")
    return results


def count_failures(results: Sequence[GroupSyncResult]) -> int:
    return sum(1 for row in results if not row.ok)
