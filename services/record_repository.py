"""Record-level rules on top of `RecordStore`.

The repository normalizes identifiers, materializes default records for
unknown keys, stamps `last_modified` on save and edits attachment
collections positionally. It holds no "current record": every mutating
call takes the record the caller intends to change.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional

from dal.record_store import RecordStore
from models.survey_record import CATEGORIES, Attachment, SurveyRecord, utc_now_iso
from utils.errors import SoftValidationWarning, ValidationError

LOGGER = logging.getLogger(__name__)

SCAN_PATTERN = re.compile(r"^NS-\d{4}-\d{3}$", re.IGNORECASE)

_TEXT_FIELDS = ("species", "status", "treatment", "notes")
_NUMERIC_FIELDS = ("height", "calc_dia_pct", "lat", "lng", "acc")


def normalize_id(value: Optional[str]) -> str:
    """Trim and uppercase an identifier; None becomes an empty string."""
    return (value or "").strip().upper()


def matches_scan_pattern(value: Optional[str]) -> bool:
    """Return True if `value` looks like a scanned code (NS-####-###)."""
    return bool(SCAN_PATTERN.match(normalize_id(value)))


def parse_number(value: Any) -> Optional[float]:
    """Parse a form or CSV value as a float, returning None for blank or malformed input."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class RecordRepository:
    """Enforce record invariants around a `RecordStore`."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    @property
    def store(self) -> RecordStore:
        return self._store

    async def load(self, key: Optional[str]) -> SurveyRecord:
        """Return the stored record for `key` or a fresh default one. Never None."""
        record_id = normalize_id(key)
        record = await self._store.get(record_id) if record_id else None
        if record is None:
            return SurveyRecord(id=record_id)
        record.ensure_sections()
        return record

    def apply_form_state(self, record: SurveyRecord, form: Mapping[str, Any]) -> SurveyRecord:
        """Copy raw form values onto `record` and return it.

        Only keys present in `form` are applied. Numeric values that are blank
        or malformed become None. Category notes use `<category>_notes` keys.
        Attachments are left alone.
        """
        if "id" in form:
            record.id = normalize_id(form.get("id"))
        for name in _TEXT_FIELDS:
            if name in form:
                value = form.get(name)
                setattr(record, name, "" if value is None else str(value))
        for name in _NUMERIC_FIELDS:
            if name in form:
                setattr(record, name, parse_number(form.get(name)))
        for category in CATEGORIES:
            key = f"{category}_notes"
            if key in form:
                value = form.get(key)
                record.section(category).notes = "" if value is None else str(value)
        return record

    async def save(self, record: SurveyRecord, *, confirm_nonconforming: bool = False) -> SurveyRecord:
        """Validate, timestamp and persist `record`.

        Raises:
            ValidationError: If the identifier is empty.
            SoftValidationWarning: If the identifier fails the scan pattern and
                `confirm_nonconforming` is False.
            StorageError: If the store write fails.
        """
        record.id = normalize_id(record.id)
        if not record.id:
            raise ValidationError("Code is required.")
        if not confirm_nonconforming and not matches_scan_pattern(record.id):
            raise SoftValidationWarning(record.id)
        return await self._persist(record)

    async def delete(self, key: Optional[str]) -> None:
        """Remove the record and every attachment it holds."""
        record_id = normalize_id(key)
        if not record_id:
            return
        removed = await self._store.delete(record_id)
        if removed:
            LOGGER.info("Deleted record %s", record_id)

    async def append_attachment(self, record: SurveyRecord, category: str, attachment: Attachment) -> SurveyRecord:
        """Append `attachment` to a category and re-persist the whole record."""
        record.section(category).attachments.append(attachment)
        return await self._persist(record)

    async def remove_attachment_at(self, record: SurveyRecord, category: str, index: int) -> SurveyRecord:
        """Remove the attachment at `index` in a category and re-persist.

        Raises:
            IndexError: If `index` is outside the collection.
        """
        attachments = record.section(category).attachments
        if index < 0 or index >= len(attachments):
            raise IndexError(f"No {category} attachment at index {index} (have {len(attachments)})")
        del attachments[index]
        return await self._persist(record)

    async def merge_import(self, imported: SurveyRecord) -> SurveyRecord:
        """Persist an imported record without losing stored attachments.

        Imported rows never carry image payloads, so the attachment
        collections of any record already stored under the same identifier
        are copied onto `imported` first. The row's own timestamp is kept;
        "now" is used only when it has none. The scan pattern is not checked.
        """
        imported.id = normalize_id(imported.id)
        if not imported.id:
            raise ValidationError("Code is required.")
        existing = await self._store.get(imported.id)
        if existing is not None:
            existing.ensure_sections()
            for category in CATEGORIES:
                imported.section(category).attachments = list(existing.section(category).attachments)
        imported.ensure_sections()
        if not imported.last_modified:
            imported.last_modified = utc_now_iso()
        await self._store.put(imported)
        return imported

    async def list_all(self) -> List[SurveyRecord]:
        """Return every stored record."""
        records = await self._store.list_all()
        for record in records:
            record.ensure_sections()
        return records

    async def _persist(self, record: SurveyRecord) -> SurveyRecord:
        if not normalize_id(record.id):
            raise ValidationError("Code is required.")
        record.id = normalize_id(record.id)
        record.ensure_sections()
        record.last_modified = utc_now_iso()
        await self._store.put(record)
        return record
