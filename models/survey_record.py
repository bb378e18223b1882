"""Survey record domain models.

A record is stored as one JSON document per identifier. Every field is
optional when read back: documents written by older schema generations are
rehydrated by `SurveyRecord.from_dict`, which defaults whatever is missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

CATEGORIES = ("traditional", "acoustic", "resistance", "elemental")

# Flat-generation documents kept photos in one list; they belong to the
# traditional assessment now.
LEGACY_PHOTO_CATEGORY = "traditional"


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass
class Attachment:
    """One embedded image payload.

    Attributes:
        data_url: Self-describing `data:<mime>;base64,...` payload.
        created_at: ISO-8601 timestamp of when the attachment was produced.
    """

    data_url: str
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, str]:
        return {"data_url": self.data_url, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: Any, default_created_at: str = "") -> Optional["Attachment"]:
        """Build an Attachment, accepting the flat-generation `dataUrl` key.

        Entries without a timestamp get `default_created_at`, so rereading
        the same document always yields the same value. Returns None for
        entries that carry no payload.
        """
        if isinstance(data, str):
            return cls(data_url=data, created_at=default_created_at) if data else None
        if not isinstance(data, Mapping):
            return None
        data_url = data.get("data_url") or data.get("dataUrl")
        if not data_url:
            return None
        created_at = data.get("created_at") or data.get("createdAt") or default_created_at
        return cls(data_url=str(data_url), created_at=str(created_at))


@dataclass
class CategorySection:
    """Notes and photographic evidence for one inspection method."""

    notes: str = ""
    attachments: List[Attachment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"notes": self.notes, "attachments": [a.to_dict() for a in self.attachments]}

    @classmethod
    def from_dict(cls, data: Any, default_created_at: str = "") -> "CategorySection":
        if not isinstance(data, Mapping):
            return cls()
        raw_attachments = data.get("attachments")
        attachments: List[Attachment] = []
        if isinstance(raw_attachments, list):
            for item in raw_attachments:
                attachment = Attachment.from_dict(item, default_created_at)
                if attachment is not None:
                    attachments.append(attachment)
        return cls(notes=_as_text(data.get("notes")), attachments=attachments)


def _default_sections() -> Dict[str, CategorySection]:
    return {name: CategorySection() for name in CATEGORIES}


@dataclass
class SurveyRecord:
    """In-memory representation of one inspected pole.

    Attributes:
        id: Normalized identifier (trimmed, uppercased); the store key.
        species: Wood species.
        height: Pole height.
        status: Inspection status.
        treatment: Preservative treatment applied.
        calc_dia_pct: Calculated remaining diameter, as a percentage.
        lat: Latitude in decimal degrees.
        lng: Longitude in decimal degrees.
        acc: Geolocation accuracy in metres.
        notes: General free-text notes.
        sections: Per-category notes and attachments, one entry per name in
            `CATEGORIES`.
        last_modified: ISO-8601 timestamp of the last successful save.
    """

    id: str
    species: str = ""
    height: Optional[float] = None
    status: str = ""
    treatment: str = ""
    calc_dia_pct: Optional[float] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    acc: Optional[float] = None
    notes: str = ""
    sections: Dict[str, CategorySection] = field(default_factory=_default_sections)
    last_modified: Optional[str] = None

    def section(self, category: str) -> CategorySection:
        """Return the section for `category`, materializing it if absent.

        Raises:
            ValueError: If `category` is not a known category name.
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category!r}")
        existing = self.sections.get(category)
        if not isinstance(existing, CategorySection):
            existing = CategorySection()
            self.sections[category] = existing
        return existing

    def ensure_sections(self) -> None:
        """Coerce every category into a well-formed section with a list of attachments."""
        for name in CATEGORIES:
            section = self.section(name)
            if not isinstance(section.attachments, list):
                section.attachments = []
            section.attachments = [a for a in section.attachments if isinstance(a, Attachment)]
            section.notes = _as_text(section.notes)

    def attachment_count(self, category: Optional[str] = None) -> int:
        """Number of attachments in one category, or across all of them."""
        if category is not None:
            return len(self.section(category).attachments)
        return sum(len(self.section(name).attachments) for name in CATEGORIES)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "species": self.species,
            "height": self.height,
            "status": self.status,
            "treatment": self.treatment,
            "calc_dia_pct": self.calc_dia_pct,
            "lat": self.lat,
            "lng": self.lng,
            "acc": self.acc,
            "notes": self.notes,
            "sections": {name: self.section(name).to_dict() for name in CATEGORIES},
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SurveyRecord":
        """Rehydrate a stored document of any schema generation."""
        modified = data.get("last_modified") or data.get("updatedAt")
        # Undated photos take the document timestamp.
        fallback = str(modified) if modified else ""

        raw_sections = data.get("sections")
        if not isinstance(raw_sections, Mapping):
            raw_sections = {}
        sections = {name: CategorySection.from_dict(raw_sections.get(name), fallback) for name in CATEGORIES}

        legacy_photos = data.get("photos")
        if isinstance(legacy_photos, list):
            for item in legacy_photos:
                attachment = Attachment.from_dict(item, fallback)
                if attachment is not None:
                    sections[LEGACY_PHOTO_CATEGORY].attachments.append(attachment)

        calc = data.get("calc_dia_pct", data.get("calcDiaPct"))

        return cls(
            id=_as_text(data.get("id")),
            species=_as_text(data.get("species")),
            height=_as_float(data.get("height")),
            status=_as_text(data.get("status")),
            treatment=_as_text(data.get("treatment")),
            calc_dia_pct=_as_float(calc),
            lat=_as_float(data.get("lat")),
            lng=_as_float(data.get("lng")),
            acc=_as_float(data.get("acc")),
            notes=_as_text(data.get("notes")),
            sections=sections,
            last_modified=fallback or None,
        )
