"""Bulk CSV export and merge-preserving import."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from services.csv_codec import CSVCodec, ImportedRow
from services.listing import list_records
from services.record_repository import RecordRepository

LOGGER = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    """Outcome of one CSV import.

    Attributes:
        imported: Number of records written.
        skipped: Rows dropped because they had no identifier.
        duplicates: Rows superseded by a later row with the same identifier.
        ids: Identifiers written, in file order of their winning row.
    """

    imported: int = 0
    skipped: int = 0
    duplicates: int = 0
    ids: List[str] = field(default_factory=list)


async def export_csv(repo: RecordRepository, codec: CSVCodec) -> str:
    """Encode every stored record, sorted by identifier."""
    records = list_records(await repo.list_all())
    return codec.encode(records)


async def import_csv(repo: RecordRepository, codec: CSVCodec, text: str) -> ImportSummary:
    """Decode `text` and merge each row into the store.

    Rows without an identifier are dropped. When one file lists the same
    identifier more than once, the last row wins. Attachments already
    stored under an identifier are kept.
    """
    summary = ImportSummary()
    latest: Dict[str, ImportedRow] = {}
    for row in codec.decode(text):
        if not row.record.id:
            summary.skipped += 1
            continue
        if row.record.id in latest:
            summary.duplicates += 1
            # Re-insert so ordering follows the winning row.
            del latest[row.record.id]
        latest[row.record.id] = row

    for record_id, row in latest.items():
        await repo.merge_import(row.record)
        summary.ids.append(record_id)
    summary.imported = len(summary.ids)

    LOGGER.info(
        "CSV import wrote %d records (%d skipped, %d duplicates)",
        summary.imported, summary.skipped, summary.duplicates,
    )
    return summary
