"""FastAPI routes for survey records and their photos."""

from typing import Optional, Union

from fastapi import APIRouter, File, HTTPException, Query, Request, Response, UploadFile
from pydantic import BaseModel

from controllers.record_controller import (
    ATTACH,
    add_attachment,
    delete_record,
    get_record,
    list_summaries,
    remove_attachment,
    save_record,
)
from routes.dependencies import get_pipeline, get_repository, to_http_error
from utils.media_validation import read_image_bytes

router = APIRouter(prefix="/records", tags=["records"])

FormValue = Optional[Union[float, str]]


class RecordForm(BaseModel):
    """Raw form values; numeric fields may arrive as text and are parsed leniently."""

    species: Optional[str] = None
    height: FormValue = None
    status: Optional[str] = None
    treatment: Optional[str] = None
    calc_dia_pct: FormValue = None
    lat: FormValue = None
    lng: FormValue = None
    acc: FormValue = None
    notes: Optional[str] = None
    traditional_notes: Optional[str] = None
    acoustic_notes: Optional[str] = None
    resistance_notes: Optional[str] = None
    elemental_notes: Optional[str] = None


@router.get("")
async def list_records_route(request: Request, q: Optional[str] = None):
    try:
        return await list_summaries(get_repository(request), q)
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc


@router.get("/{record_id}")
async def get_record_route(request: Request, record_id: str):
    """Return the record for `record_id`; unknown codes yield an empty record."""
    try:
        return await get_record(get_repository(request), record_id)
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc


@router.put("/{record_id}")
async def save_record_route(request: Request, record_id: str, payload: RecordForm, confirm: bool = False):
    """Save form values. Non-conforming codes answer 409 until resent with `confirm=true`."""
    form = payload.model_dump(exclude_unset=True)
    form["id"] = record_id
    try:
        return await save_record(get_repository(request), form, confirm=confirm)
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc


@router.delete("/{record_id}", status_code=204)
async def delete_record_route(request: Request, record_id: str):
    try:
        await delete_record(get_repository(request), record_id)
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc
    return Response(status_code=204)


@router.post("/{record_id}/attachments/{category}")
async def upload_attachment_route(
    request: Request,
    record_id: str,
    category: str,
    image: UploadFile = File(...),
    mode: str = Query(ATTACH, pattern="^(attach|insert)$"),
):
    """Attach a photo to a category, or embed it in that category's notes."""
    image_bytes = await read_image_bytes(image)
    try:
        return await add_attachment(
            get_repository(request), get_pipeline(request), record_id, category, image_bytes, mode
        )
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc


@router.delete("/{record_id}/attachments/{category}/{index}")
async def delete_attachment_route(request: Request, record_id: str, category: str, index: int):
    try:
        return await remove_attachment(get_repository(request), record_id, category, index)
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc
