"""CSV export and import of survey records.

Column order is a contract per generation: files written by the flat
browser generation use `LEGACY_COLUMNS`, current exports use
`CURRENT_COLUMNS`. Decoding maps columns by header name, so either
generation (or a hand-reordered file) reads back correctly.

Image payloads are never written; attachment columns carry counts only.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from models.survey_record import CATEGORIES, LEGACY_PHOTO_CATEGORY, SurveyRecord
from services.record_repository import normalize_id, parse_number

LEGACY_COLUMNS = (
    "id", "height", "status", "species", "calcDiaPct",
    "lat", "lng", "acc", "notes", "photoCount", "updatedAt",
)

CURRENT_COLUMNS = (
    ("id", "species", "height", "status", "treatment", "calcDiaPct", "lat", "lng", "acc", "notes")
    + tuple(f"{name}Notes" for name in CATEGORIES)
    + tuple(f"{name}PhotoCount" for name in CATEGORIES)
    + ("updatedAt",)
)

GENERATIONS: Dict[str, Sequence[str]] = {
    "legacy": LEGACY_COLUMNS,
    "current": CURRENT_COLUMNS,
}

# Header name -> record attribute for plain scalar columns.
_SCALAR_COLUMNS = {
    "species": "species",
    "height": "height",
    "status": "status",
    "treatment": "treatment",
    "calcDiaPct": "calc_dia_pct",
    "lat": "lat",
    "lng": "lng",
    "acc": "acc",
    "notes": "notes",
}
_NUMERIC_ATTRS = {"height", "calc_dia_pct", "lat", "lng", "acc"}


@dataclass
class ImportedRow:
    """One decoded data row.

    `record` never carries attachments; `attachment_counts` holds the photo
    counts the file reported, keyed by category, for information only.
    """

    record: SurveyRecord
    attachment_counts: Dict[str, int] = field(default_factory=dict)
    row_number: int = 0


class _State(enum.Enum):
    FIELD_START = enum.auto()
    UNQUOTED = enum.auto()
    QUOTED = enum.auto()
    QUOTE_IN_QUOTED = enum.auto()


def parse_rows(text: str) -> List[List[str]]:
    """Split CSV text into rows of raw field strings.

    Handles quoted fields with embedded commas, CR/LF newlines and doubled
    quotes. Blank lines are skipped. An unterminated quoted field is closed
    at end of input.
    """
    rows: List[List[str]] = []
    row: List[str] = []
    buf: List[str] = []
    state = _State.FIELD_START
    i, n = 0, len(text)

    def end_field() -> None:
        row.append("".join(buf))
        buf.clear()

    def end_row() -> None:
        end_field()
        if row != [""]:
            rows.append(list(row))
        row.clear()

    while i < n:
        ch = text[i]
        if state is _State.QUOTED:
            if ch == '"':
                state = _State.QUOTE_IN_QUOTED
            else:
                buf.append(ch)
        elif ch == ",":
            end_field()
            state = _State.FIELD_START
        elif ch in "\r\n":
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
            end_row()
            state = _State.FIELD_START
        elif state is _State.FIELD_START:
            if ch == '"':
                state = _State.QUOTED
            else:
                buf.append(ch)
                state = _State.UNQUOTED
        elif state is _State.QUOTE_IN_QUOTED:
            # A doubled quote is a literal quote; anything else after a
            # closing quote is kept as-is.
            buf.append(ch)
            state = _State.QUOTED if ch == '"' else _State.UNQUOTED
        else:
            buf.append(ch)
        i += 1

    if buf or row or state in (_State.QUOTED, _State.QUOTE_IN_QUOTED):
        end_row()
    return rows


def quote_field(value: object) -> str:
    """Render one value, quoting it when it holds a comma, quote or newline."""
    if value is None:
        return ""
    text = str(value)
    if any(ch in text for ch in ',"\r\n'):
        return '"' + text.replace('"', '""') + '"'
    return text


def _column_value(record: SurveyRecord, column: str) -> object:
    if column == "id":
        return record.id
    if column == "updatedAt":
        return record.last_modified
    if column == "photoCount":
        return record.attachment_count()
    if column in _SCALAR_COLUMNS:
        return getattr(record, _SCALAR_COLUMNS[column])
    for name in CATEGORIES:
        if column == f"{name}Notes":
            return record.section(name).notes
        if column == f"{name}PhotoCount":
            return record.attachment_count(name)
    return None


def _parse_count(value: str) -> int:
    number = parse_number(value)
    return int(number) if number is not None and number > 0 else 0


class CSVCodec:
    """Encode records to CSV text and decode CSV text into imported rows.

    Args:
        generation: Column contract used by `encode`, "current" or "legacy".
    """

    def __init__(self, generation: str = "current") -> None:
        if generation not in GENERATIONS:
            raise ValueError(f"Unknown CSV generation: {generation!r}")
        self.generation = generation
        self.columns = tuple(GENERATIONS[generation])

    def encode(self, records: Iterable[SurveyRecord]) -> str:
        """Return a header line followed by one line per record."""
        lines = [",".join(self.columns)]
        for record in records:
            lines.append(",".join(quote_field(_column_value(record, col)) for col in self.columns))
        return "\n".join(lines)

    def decode(self, text: str) -> List[ImportedRow]:
        """Parse CSV text into rows, mapping columns by header name.

        Unknown headers are ignored and numeric fields that are blank or
        malformed become None. Rows with an empty identifier are returned
        too; the import step decides to drop them.
        """
        rows = parse_rows(text.lstrip("\ufeff"))
        if not rows:
            return []
        header = [h.strip() for h in rows[0]]
        setters = [self._setter_for(name) for name in header]

        result: List[ImportedRow] = []
        for row_number, cells in enumerate(rows[1:], start=1):
            imported = ImportedRow(record=SurveyRecord(id=""), row_number=row_number)
            for idx, setter in enumerate(setters):
                if setter is None:
                    continue
                setter(imported, cells[idx] if idx < len(cells) else "")
            result.append(imported)
        return result

    @staticmethod
    def _setter_for(column: str) -> Optional[Callable[[ImportedRow, str], None]]:
        if column == "id":
            def set_id(row: ImportedRow, value: str) -> None:
                row.record.id = normalize_id(value)
            return set_id
        if column == "updatedAt":
            def set_updated(row: ImportedRow, value: str) -> None:
                row.record.last_modified = value.strip() or None
            return set_updated
        if column == "photoCount":
            def set_legacy_count(row: ImportedRow, value: str) -> None:
                row.attachment_counts[LEGACY_PHOTO_CATEGORY] = _parse_count(value)
            return set_legacy_count
        if column in _SCALAR_COLUMNS:
            attr = _SCALAR_COLUMNS[column]
            if attr in _NUMERIC_ATTRS:
                def set_number(row: ImportedRow, value: str) -> None:
                    setattr(row.record, attr, parse_number(value))
                return set_number

            def set_text(row: ImportedRow, value: str) -> None:
                setattr(row.record, attr, value)
            return set_text
        for name in CATEGORIES:
            if column == f"{name}Notes":
                def set_notes(row: ImportedRow, value: str, category: str = name) -> None:
                    row.record.section(category).notes = value
                return set_notes
            if column == f"{name}PhotoCount":
                def set_count(row: ImportedRow, value: str, category: str = name) -> None:
                    row.attachment_counts[category] = _parse_count(value)
                return set_count
        return None
