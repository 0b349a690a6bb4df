from __future__ import annotations

import pytest

from rank_sheet_agent.errors import StructuralInvariantError
from rank_sheet_agent.grid import Grid, summary_block_rows


def _integrated_grid() -> Grid:
    return Grid(
        summary_block_rows(["2024-01-01"])
        + [[]]
        + [
            ["keyword", "url", "2024-01-01"],
            ["shoes", "https://example.com/shoes", "2"],
            ["other", "", "70"],
        ]
    )


def test_from_values_coerces_cells_to_strings() -> None:
    grid = Grid.from_values([["keyword", "url", 3], [None, 1.5]])
    assert grid.rows == [["keyword", "url", "3"], ["", "1.5"]]
    assert Grid.from_values(None).rows == []


def test_cell_reads_past_row_end_as_blank() -> None:
    grid = Grid([["a"]])
    assert grid.cell(0, 5) == ""
    assert grid.cell(3, 0) == ""


def test_locate_sections_in_integrated_grid() -> None:
    bounds = _integrated_grid().locate_sections()

    assert bounds.summary_header == 0
    assert bounds.summary_end == 4
    assert bounds.detail_header == 6
    assert bounds.summary_rows() == [1, 2, 3, 4]


def test_keyword_named_other_is_not_a_summary_boundary() -> None:
    grid = Grid([["keyword", "url", "d1"], ["other", "", "5"]])
    bounds = grid.locate_sections()

    assert bounds.has_summary is False
    assert bounds.detail_header == 0


def test_locate_sections_accepts_legacy_keyword_header() -> None:
    grid = Grid([["キーワード", "URL", "2024-01-01"], ["shoes", "", "2"]])
    bounds = grid.locate_sections()

    assert bounds.detail_header == 0
    assert not bounds.has_summary


def test_locate_sections_absent_sections_are_none() -> None:
    bounds = Grid().locate_sections()
    assert bounds.has_summary is False
    assert bounds.has_detail is False


def test_locate_sections_rejects_broken_summary_block() -> None:
    grid = Grid([["rank distribution", ""], ["1-3", ""], ["other", ""]])
    with pytest.raises(StructuralInvariantError):
        grid.locate_sections()


def test_upsert_column_returns_existing_index_without_mutation() -> None:
    grid = _integrated_grid()
    before = grid.to_values()

    assert grid.upsert_column(6, "2024-01-01") == 2
    assert grid.to_values() == before


def test_upsert_column_inserts_at_fixed_index_and_shifts_rows() -> None:
    grid = Grid(
        [
            ["keyword", "url", "2024-01-01"],
            ["shoes", "u", "2"],
            ["boots"],
        ]
    )

    assert grid.upsert_column(0, "2024-01-02") == 2
    assert grid.rows == [
        ["keyword", "url", "2024-01-02", "2024-01-01"],
        ["shoes", "u", "", "2"],
        ["boots"],
    ]


def test_upsert_column_shifts_summary_rows_too() -> None:
    grid = _integrated_grid()
    grid.upsert_column(6, "2024-01-02")

    assert grid.rows[1] == ["1-3", "", "", ""]
    assert grid.rows[5] == []
    assert grid.rows[6] == ["keyword", "url", "2024-01-02", "2024-01-01"]


def test_upsert_row_first_match_wins_and_appends_missing() -> None:
    grid = Grid([["keyword", "url"], ["shoes", ""], ["shoes", "dup"]])

    assert grid.upsert_row(0, "shoes") == 1
    assert grid.upsert_row(0, "Shoes") == 3
    assert grid.rows[3] == ["Shoes", ""]


def test_normalize_pads_rows_to_widest() -> None:
    grid = Grid([["a", "b", "c"], [], ["d"]])
    grid.normalize()
    assert grid.rows == [["a", "b", "c"], ["", "", ""], ["d", "", ""]]
