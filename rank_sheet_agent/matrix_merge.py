from __future__ import annotations

from typing import Sequence

from rank_sheet_agent.errors import StructuralInvariantError, ValidationError
from rank_sheet_agent.grid import (
    DATE_INSERT_INDEX,
    Grid,
    SectionBounds,
    detail_header_row,
    summary_block_rows,
)
from rank_sheet_agent.models import (
    LAYOUT_INTEGRATED,
    LAYOUT_MATRIX,
    RANK_BUCKETS,
    REPORT_LAYOUTS,
    RankRecord,
    RankSummary,
)
from rank_sheet_agent.rank_summary import format_bucket_cell, summarize_ranks


def new_report_grid(layout: str) -> Grid:
    if layout == LAYOUT_MATRIX:
        return Grid([detail_header_row()])
    return Grid(summary_block_rows() + [[]] + [detail_header_row()])


def single_date_key(records: Sequence[RankRecord]) -> str:
    if not records:
        raise ValidationError("Merge batch is empty.")
    keys: list[str] = []
    for record in records:
        if record.date_key not in keys:
            keys.append(record.date_key)
    if len(keys) > 1:
        raise ValidationError(
            "Merge batch must hold a single day, got: " + ", ".join(sorted(keys))
        )
    return keys[0]


def _ensure_sections(grid: Grid, layout: str) -> SectionBounds:
    bounds = grid.locate_sections()

    if layout == LAYOUT_INTEGRATED and not bounds.has_summary:
        if bounds.has_detail:
            raise StructuralInvariantError(
                f"Keyword header at row {bounds.detail_header + 1} has no rank "
                "distribution block above it."
            )
        grid.insert_rows(0, summary_block_rows() + [[]])
        bounds = grid.locate_sections()

    if not bounds.has_detail:
        # Reuse the summary's date columns so both sections stay aligned.
        dates: list[str] = []
        if bounds.summary_header is not None:
            dates = grid.rows[bounds.summary_header][DATE_INSERT_INDEX:]
        if grid.rows and any(cell.strip() for cell in grid.rows[-1]):
            grid.append_row([])
        grid.append_row(detail_header_row(dates))
        bounds = grid.locate_sections()

    return bounds


def _write_summary(
    grid: Grid,
    bounds: SectionBounds,
    column: int,
    summary: RankSummary,
) -> None:
    for row_idx, label in zip(bounds.summary_rows(), RANK_BUCKETS):
        grid.set_cell(row_idx, column, format_bucket_cell(summary.bucket(label)))


def merge_records(
    previous: Grid,
    records: Sequence[RankRecord],
    layout: str = LAYOUT_INTEGRATED,
) -> Grid:
    """Fold one day of rank records into a report grid.

    Returns a new grid; `previous` is left untouched. Re-running with the
    same records yields the same grid, and a different batch for the same
    day overwrites that day's column in place.
    """
    if layout not in REPORT_LAYOUTS:
        raise ValidationError(f"Unknown report layout: {layout}")
    rows = list(records)
    date_key = single_date_key(rows)
    for record in rows:
        if not record.keyword.strip():
            raise ValidationError(f"Record for {date_key} has an empty keyword.")

    grid = new_report_grid(layout) if previous.is_empty() else previous.copy()
    bounds = _ensure_sections(grid, layout)

    column = grid.upsert_column(bounds.detail_header, date_key)
    # Column insertion never moves rows, but boundaries are always re-derived
    # after a structural change.
    bounds = grid.locate_sections()

    if bounds.summary_header is not None:
        grid.set_cell(bounds.summary_header, column, date_key)
        if layout == LAYOUT_INTEGRATED:
            _write_summary(grid, bounds, column, summarize_ranks(rows))

    for record in rows:
        row_idx = grid.upsert_row(bounds.detail_header, record.keyword)
        grid.set_cell(row_idx, column, str(record.rank))
        if record.ranking_url:
            grid.set_cell(row_idx, 1, record.ranking_url)

    grid.normalize()
    return grid
