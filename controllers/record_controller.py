"""Single-record commands used by the HTTP routes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from models.survey_record import CATEGORIES, Attachment, SurveyRecord
from services.attachment_pipeline import AttachmentPipeline
from services.listing import list_records, summarize
from services.record_repository import RecordRepository, normalize_id
from utils.errors import ValidationError

ATTACH = "attach"
INSERT = "insert"


def embed_in_notes(notes: Optional[str], attachment: Attachment) -> str:
    """Append a Markdown image reference for `attachment` on a new line."""
    try:
        stamp = datetime.fromisoformat(attachment.created_at).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        stamp = attachment.created_at
    return f"{notes or ''}\n![photo {stamp}]({attachment.data_url})"


async def get_record(repo: RecordRepository, record_id: str) -> Dict[str, Any]:
    """Return the stored record, or a default one for an unknown identifier."""
    record = await repo.load(record_id)
    return record.to_dict()


async def list_summaries(repo: RecordRepository, query: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return listing rows for every record whose identifier contains `query`."""
    records = list_records(await repo.list_all(), query)
    return [summarize(r) for r in records]


async def save_record(repo: RecordRepository, form: Mapping[str, Any], *, confirm: bool = False) -> Dict[str, Any]:
    """Apply submitted form values to the stored record and save it.

    The record is re-read from the store first so edits land on its current
    state, including attachments added since the form was rendered.

    Raises:
        ValidationError: If the form carries no identifier.
        SoftValidationWarning: If the identifier is non-conforming and
            `confirm` is False.
    """
    record_id = normalize_id(form.get("id"))
    if not record_id:
        raise ValidationError("Code is required.")
    record = await repo.load(record_id)
    repo.apply_form_state(record, form)
    saved = await repo.save(record, confirm_nonconforming=confirm)
    return saved.to_dict()


async def delete_record(repo: RecordRepository, record_id: str) -> None:
    await repo.delete(record_id)


async def add_attachment(
    repo: RecordRepository,
    pipeline: AttachmentPipeline,
    record_id: str,
    category: str,
    data: bytes,
    mode: str = ATTACH,
) -> Dict[str, Any]:
    """Run an uploaded image through the pipeline and store it on a record.

    In "attach" mode the image joins the category's attachments; in "insert"
    mode it is embedded as a Markdown image in that category's notes.

    Raises:
        AttachmentError: If the image cannot be processed. The record is untouched.
        ValueError: If `category` or `mode` is unknown.
    """
    if mode not in (ATTACH, INSERT):
        raise ValueError(f"Unknown attachment mode: {mode!r}")
    if category not in CATEGORIES:
        raise ValueError(f"Unknown category: {category!r}")
    if not normalize_id(record_id):
        raise ValidationError("Code is required.")

    attachment = await pipeline.process(data)

    # Load after the decode so the update applies to the latest stored state.
    record: SurveyRecord = await repo.load(record_id)
    if mode == INSERT:
        section = record.section(category)
        section.notes = embed_in_notes(section.notes, attachment)
        saved = await repo.save(record, confirm_nonconforming=True)
    else:
        saved = await repo.append_attachment(record, category, attachment)
    return saved.to_dict()


async def remove_attachment(repo: RecordRepository, record_id: str, category: str, index: int) -> Dict[str, Any]:
    """Delete one attachment by position.

    Raises:
        IndexError: If there is no attachment at `index`.
    """
    record = await repo.load(record_id)
    saved = await repo.remove_attachment_at(record, category, index)
    return saved.to_dict()
