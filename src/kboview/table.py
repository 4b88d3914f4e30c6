"""Sortable, filterable result tables.

A table is described by a list of :class:`FieldSpec` entries, one per column.
Each field knows how to pull a sort key out of a record and how to render the
value; ``None`` (and NaN) keys always sort last. Exactly one column is the
active sort key at any time and sorting is stable, so re-sorting an already
sorted table does not move anything.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, TypeVar

from .models import AlignmentRecord, VariantRecord

R = TypeVar("R")


class SortDirection(enum.Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"
    UNSORTED = "unsorted"

    def next(self) -> "SortDirection":
        """Header-click cycle: ascending -> descending -> unsorted -> ascending."""
        if self is SortDirection.ASCENDING:
            return SortDirection.DESCENDING
        if self is SortDirection.DESCENDING:
            return SortDirection.UNSORTED
        return SortDirection.ASCENDING


class NullHandling(enum.Enum):
    FIRST = "first"
    LAST = "last"


def _fmt_float(x: Any) -> str:
    return "" if x is None else f"{float(x):.2f}"


def _fmt_plain(x: Any) -> str:
    return "" if x is None else str(x)


def _is_null(x: Any) -> bool:
    return x is None or (isinstance(x, float) and math.isnan(x))


@dataclass(frozen=True)
class FieldSpec(Generic[R]):
    """One column: its name, header text, key getter and formatter."""

    name: str
    header: str
    key: Callable[[R], Any]
    fmt: Callable[[Any], str] = _fmt_plain
    nulls: NullHandling = NullHandling.LAST

    def render(self, row: R) -> str:
        return self.fmt(self.key(row))


class SortableResultTable(Generic[R]):
    """Single-key sortable view over a homogeneous list of records."""

    def __init__(self, fields: Sequence[FieldSpec[R]], rows: Iterable[R] = ()) -> None:
        if not fields:
            raise ValueError("A table needs at least one field")
        self._fields: Dict[str, FieldSpec[R]] = {}
        for f in fields:
            if f.name in self._fields:
                raise ValueError(f"Duplicate field name: {f.name}")
            self._fields[f.name] = f
        self.rows: List[R] = list(rows)
        self.sort_field: Optional[str] = None
        self.direction: SortDirection = SortDirection.UNSORTED
        self._filters: Dict[str, Callable[[R], bool]] = {}

    @property
    def fields(self) -> List[FieldSpec[R]]:
        return list(self._fields.values())

    def field(self, name: str) -> FieldSpec[R]:
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"Unknown field '{name}'. Known fields: {list(self._fields)}") from None

    def set_sort(self, name: Optional[str], direction: SortDirection = SortDirection.ASCENDING) -> None:
        """Make ``name`` the only sort key; any previous key is dropped."""
        if name is None or direction is SortDirection.UNSORTED:
            self.sort_field = None if name is None else self.field(name).name
            self.direction = SortDirection.UNSORTED
            return
        self.sort_field = self.field(name).name
        self.direction = direction

    def toggle(self, name: str) -> SortDirection:
        """Emulate clicking a column header and return the new direction."""
        self.field(name)
        if self.sort_field == name:
            self.direction = self.direction.next()
        else:
            self.sort_field = name
            self.direction = SortDirection.ASCENDING
        return self.direction

    def add_filter(self, name: str, predicate: Callable[[R], bool]) -> None:
        self._filters[name] = predicate

    def remove_filter(self, name: str) -> None:
        self._filters.pop(name, None)

    def filtered(self) -> List[R]:
        """Rows passing every filter, in their original order."""
        return [r for r in self.rows if all(p(r) for p in self._filters.values())]

    def sort(self, rows: Sequence[R]) -> List[R]:
        """Return ``rows`` ordered by the active key (stable, nulls by policy)."""
        if self.sort_field is None or self.direction is SortDirection.UNSORTED:
            return list(rows)
        column = self._fields[self.sort_field]
        present = [r for r in rows if not _is_null(column.key(r))]
        missing = [r for r in rows if _is_null(column.key(r))]
        ordered = sorted(present, key=column.key, reverse=self.direction is SortDirection.DESCENDING)
        if column.nulls is NullHandling.FIRST:
            return missing + ordered
        return ordered + missing

    def view(self) -> List[R]:
        """Filtered rows in the active sort order."""
        return self.sort(self.filtered())

    def header_line(self, sep: str = "\t") -> str:
        return sep.join(f.header for f in self._fields.values())

    def format_row(self, row: R, sep: str = "\t") -> str:
        return sep.join(f.render(row) for f in self._fields.values())

    def to_text(self, *, sep: str = "\t", sorted_view: bool = False, header: bool = True) -> str:
        """Flat export of the filtered rows (input order unless ``sorted_view``)."""
        rows = self.view() if sorted_view else self.filtered()
        lines = [self.header_line(sep)] if header else []
        lines.extend(self.format_row(r, sep) for r in rows)
        return "\n".join(lines) + "\n" if lines else ""

    def rows_as_dicts(self) -> List[Dict[str, str]]:
        return [{f.header: f.render(r) for f in self._fields.values()} for r in self.view()]


ALIGNMENT_FIELDS: List[FieldSpec[AlignmentRecord]] = [
    FieldSpec("query", "query", lambda r: r.query_file),
    FieldSpec("ref", "ref", lambda r: r.ref_file),
    FieldSpec("q.start", "q.start", lambda r: r.start),
    FieldSpec("q.end", "q.end", lambda r: r.end),
    FieldSpec("strand", "strand", lambda r: r.strand),
    FieldSpec("length", "length", lambda r: r.length),
    FieldSpec("mismatches", "mismatches", lambda r: r.mismatches),
    FieldSpec("gap_bases", "gap_bases", lambda r: r.gap_bases),
    FieldSpec("gap_opens", "gap_opens", lambda r: r.gap_opens),
    FieldSpec("identity", "identity", lambda r: r.identity, _fmt_float),
    FieldSpec("coverage", "coverage", lambda r: r.coverage, _fmt_float),
    FieldSpec("query.contig", "query.contig", lambda r: r.query_contig),
    FieldSpec("ref.contig", "ref.contig", lambda r: r.ref_contig),
]

VARIANT_FIELDS: List[FieldSpec[VariantRecord]] = [
    FieldSpec("chrom", "CHROM", lambda r: r.chromosome),
    FieldSpec("pos", "POS", lambda r: r.position),
    FieldSpec("id", "ID", lambda r: r.id),
    FieldSpec("ref", "REF", lambda r: r.ref_base),
    FieldSpec("alt", "ALT", lambda r: r.alt_base),
    FieldSpec("qual", "QUAL", lambda r: r.qual),
    FieldSpec("filter", "FILTER", lambda r: r.filter),
    FieldSpec("info", "INFO", lambda r: r.info),
    FieldSpec("format", "FORMAT", lambda r: r.format),
    FieldSpec("sample", "SAMPLE", lambda r: r.sample),
]


def alignment_table(
    rows: Iterable[AlignmentRecord], *, min_len: int = 0
) -> SortableResultTable[AlignmentRecord]:
    table = SortableResultTable(ALIGNMENT_FIELDS, rows)
    if min_len > 0:
        table.add_filter("min_len", lambda r: r.length >= min_len)
    return table


def variant_table(rows: Iterable[VariantRecord]) -> SortableResultTable[VariantRecord]:
    return SortableResultTable(VARIANT_FIELDS, rows)
