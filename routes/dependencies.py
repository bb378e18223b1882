"""Shared lookups and error translation for the FastAPI routes."""

from fastapi import HTTPException, Request

from services.attachment_pipeline import AttachmentPipeline
from services.record_repository import RecordRepository
from utils.errors import AttachmentError, SoftValidationWarning, StorageError, ValidationError


def get_repository(request: Request) -> RecordRepository:
    """Retrieve the shared record repository from the app state."""
    repo = getattr(request.app.state, "repository", None)
    if repo is None:
        raise HTTPException(status_code=500, detail="Record store not initialized.")
    return repo


def get_pipeline(request: Request) -> AttachmentPipeline:
    """Retrieve the shared attachment pipeline from the app state."""
    pipeline = getattr(request.app.state, "attachment_pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=500, detail="Attachment pipeline not initialized.")
    return pipeline


def to_http_error(exc: Exception) -> HTTPException:
    """Map a record store error onto the HTTP status the client should see."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, SoftValidationWarning):
        return HTTPException(
            status_code=409,
            detail={"message": str(exc), "id": exc.record_id, "confirm_required": True},
        )
    if isinstance(exc, AttachmentError):
        return HTTPException(status_code=400, detail=f"Failed to process photo: {exc}")
    if isinstance(exc, StorageError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, IndexError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
