"""Display view over the stored records."""

from __future__ import annotations

import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.survey_record import CATEGORIES, SurveyRecord


def _char_class(ch: str) -> int:
    kind = unicodedata.category(ch)
    if kind.startswith("Z") or ch.isspace():
        return 0
    if kind.startswith(("P", "S")):
        return 1
    if kind.startswith("N"):
        return 2
    return 3


def collation_key(text: str) -> Tuple[Any, ...]:
    """Sort key ordering identifiers the way a locale-aware compare does.

    Characters compare first by class (whitespace, punctuation and symbols,
    digits, letters), then ignoring accents and case. Ties fall back to the
    accented form and finally put lowercase before uppercase, so the order
    does not depend on the process's LC_COLLATE.
    """
    folded = text.casefold()
    base = "".join(
        ch for ch in unicodedata.normalize("NFKD", folded) if not unicodedata.combining(ch)
    )
    primary = tuple((_char_class(ch), ch) for ch in base)
    return primary, folded, text.swapcase()


def list_records(all_records: Iterable[SurveyRecord], query: Optional[str] = "") -> List[SurveyRecord]:
    """Filter by identifier substring (case-insensitive) and sort by identifier.

    A blank query keeps every record. The sort is stable.
    """
    needle = (query or "").strip().upper()
    matches = [r for r in all_records if not needle or needle in (r.id or "").upper()]
    return sorted(matches, key=lambda r: collation_key(r.id or ""))


def format_percentage(value: Optional[float]) -> str:
    """Render a stored percentage with a `%` suffix, without rounding it."""
    if value is None:
        return ""
    if float(value).is_integer():
        return f"{int(value)}%"
    return f"{value!r}%"


def summarize(record: SurveyRecord) -> Dict[str, Any]:
    """Return the table row shown for a record in the listing."""
    return {
        "id": record.id,
        "height": record.height,
        "status": record.status,
        "species": record.species,
        "treatment": record.treatment,
        "calc_dia_pct": format_percentage(record.calc_dia_pct),
        "lat": record.lat,
        "lng": record.lng,
        "acc": record.acc,
        "photo_counts": {name: record.attachment_count(name) for name in CATEGORIES},
        "photo_count": record.attachment_count(),
        "last_modified": record.last_modified,
    }
