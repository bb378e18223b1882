"""FastAPI routes for CSV export and import."""

from dataclasses import asdict

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response

from controllers.csv_controller import export_csv, import_csv
from routes.dependencies import get_repository, to_http_error
from services.csv_codec import CSVCodec
from utils.media_validation import read_csv_text

router = APIRouter(tags=["csv"])


@router.get("/export.csv")
async def export_route(request: Request, generation: str = Query("current", pattern="^(current|legacy)$")):
    """Download every record as CSV. Photo columns hold counts, not images."""
    try:
        text = await export_csv(get_repository(request), CSVCodec(generation))
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="poles.csv"'},
    )


@router.post("/import")
async def import_route(request: Request, file: UploadFile = File(...)):
    """Merge an uploaded CSV into the store, keeping existing photos."""
    text = await read_csv_text(file)
    try:
        summary = await import_csv(get_repository(request), CSVCodec(), text)
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_error(exc) from exc
    return asdict(summary)
