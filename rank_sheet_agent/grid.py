from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from rank_sheet_agent.errors import StructuralInvariantError
from rank_sheet_agent.models import BUCKET_OTHER, RANK_BUCKETS


SUMMARY_HEADER_LABEL = "rank distribution"
KEYWORD_HEADER_LABEL = "keyword"
URL_HEADER_LABEL = "url"
# Header written by the earlier rank sheet tooling; still read as the keyword header.
KEYWORD_HEADER_ALIASES = (KEYWORD_HEADER_LABEL, "キーワード")
# Keyword and URL are the identity columns; every new date lands right after them.
DATE_INSERT_INDEX = 2


@dataclass(frozen=True)
class SectionBounds:
    summary_header: int | None = None
    summary_end: int | None = None
    detail_header: int | None = None

    @property
    def has_summary(self) -> bool:
        return self.summary_end is not None

    @property
    def has_detail(self) -> bool:
        return self.detail_header is not None

    def summary_rows(self) -> list[int]:
        if self.summary_header is None:
            return []
        return [self.summary_header + 1 + offset for offset in range(len(RANK_BUCKETS))]


class Grid:
    """Rows of string cells backing one report tab.

    Rows are ragged: reading past the end of a row yields "", writing pads it.
    """

    def __init__(self, rows: Iterable[Sequence[object]] | None = None) -> None:
        self.rows: list[list[str]] = [
            ["" if cell is None else str(cell) for cell in row] for row in (rows or [])
        ]

    @classmethod
    def from_values(cls, values: object) -> "Grid":
        # Sheets API payloads may omit "values" or carry non-list junk.
        if not isinstance(values, list):
            return cls()
        return cls(row if isinstance(row, list) else [row] for row in values)

    def __len__(self) -> int:
        return len(self.rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self.rows == other.rows

    def __repr__(self) -> str:
        return f"Grid(rows={self.rows!r})"

    def is_empty(self) -> bool:
        return not any(cell.strip() for row in self.rows for cell in row)

    def copy(self) -> "Grid":
        return Grid(self.rows)

    def to_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def width(self) -> int:
        return max((len(row) for row in self.rows), default=0)

    def cell(self, row_idx: int, col_idx: int) -> str:
        if row_idx < 0 or row_idx >= len(self.rows):
            return ""
        row = self.rows[row_idx]
        return row[col_idx] if 0 <= col_idx < len(row) else ""

    def pad_row(self, row_idx: int, width: int) -> list[str]:
        row = self.rows[row_idx]
        if len(row) < width:
            row.extend([""] * (width - len(row)))
        return row

    def set_cell(self, row_idx: int, col_idx: int, value: str) -> None:
        row = self.pad_row(row_idx, col_idx + 1)
        row[col_idx] = value

    def append_row(self, cells: Sequence[str]) -> int:
        self.rows.append(list(cells))
        return len(self.rows) - 1

    def insert_rows(self, index: int, rows: Sequence[Sequence[str]]) -> None:
        self.rows[index:index] = [list(row) for row in rows]

    def normalize(self) -> None:
        width = self.width()
        for idx in range(len(self.rows)):
            self.pad_row(idx, width)

    def locate_sections(self) -> SectionBounds:
        """Scan for the rank distribution block and the keyword header.

        The summary block ends at the first "other" row above the keyword
        header; keywords named "other" below the header are data, not
        boundaries. Missing sections come back as None.
        """
        summary_end: int | None = None
        detail_header: int | None = None
        for idx in range(len(self.rows)):
            label = self.cell(idx, 0)
            if label in KEYWORD_HEADER_ALIASES:
                detail_header = idx
                break
            if summary_end is None and label == BUCKET_OTHER:
                summary_end = idx

        if summary_end is None:
            return SectionBounds(detail_header=detail_header)

        summary_header = summary_end - len(RANK_BUCKETS)
        if summary_header < 0 or self.cell(summary_header, 0) != SUMMARY_HEADER_LABEL:
            raise StructuralInvariantError(
                f"Row {summary_end + 1} closes a rank distribution block, "
                f"but no '{SUMMARY_HEADER_LABEL}' header sits {len(RANK_BUCKETS)} rows above it."
            )
        for offset, label in enumerate(RANK_BUCKETS):
            found = self.cell(summary_header + 1 + offset, 0)
            if found != label:
                raise StructuralInvariantError(
                    f"Rank distribution row {summary_header + 2 + offset} is '{found}', "
                    f"expected '{label}'."
                )
        return SectionBounds(
            summary_header=summary_header,
            summary_end=summary_end,
            detail_header=detail_header,
        )

    def find_column(self, header_row: int, key: str) -> int | None:
        header = self.rows[header_row]
        for idx in range(DATE_INSERT_INDEX, len(header)):
            if header[idx] == key:
                return idx
        return None

    def upsert_column(self, header_row: int, key: str) -> int:
        existing = self.find_column(header_row, key)
        if existing is not None:
            return existing

        self.pad_row(header_row, DATE_INSERT_INDEX)
        for idx, row in enumerate(self.rows):
            if idx == header_row:
                row.insert(DATE_INSERT_INDEX, key)
            elif len(row) >= DATE_INSERT_INDEX:
                row.insert(DATE_INSERT_INDEX, "")
        return DATE_INSERT_INDEX

    def upsert_row(self, header_row: int, keyword: str) -> int:
        for idx in range(header_row + 1, len(self.rows)):
            if self.cell(idx, 0) == keyword:
                return idx
        return self.append_row([keyword, ""])


def summary_block_rows(dates: Sequence[str] = ()) -> list[list[str]]:
    header = [SUMMARY_HEADER_LABEL, ""] + list(dates)
    blanks = [""] * len(dates)
    return [header] + [[label, ""] + blanks for label in RANK_BUCKETS]


def detail_header_row(dates: Sequence[str] = ()) -> list[str]:
    return [KEYWORD_HEADER_LABEL, URL_HEADER_LABEL] + list(dates)
