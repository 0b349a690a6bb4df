from __future__ import annotations


class RankSheetError(RuntimeError):
    """Base class for rank report failures."""


class ValidationError(RankSheetError):
    """Input batch violates a merge or summary precondition."""


class NotFoundError(RankSheetError):
    """Report (or its value range) does not exist yet."""


class StoreError(RankSheetError):
    """Report store read/write failed."""


class StructuralInvariantError(RankSheetError):
    """Report grid sections are laid out inconsistently."""
