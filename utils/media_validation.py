"""Validation helpers for uploaded images and CSV files."""

from fastapi import HTTPException, UploadFile

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/bmp",
    "image/tiff",
}

ALLOWED_CSV_TYPES = {
    "text/csv",
    "text/plain",
    "application/csv",
    "application/vnd.ms-excel",
    "application/octet-stream",
}


def _content_type(upload: UploadFile) -> str:
    return (upload.content_type or "").lower().split(";", 1)[0].strip()


def validate_image_file(image_file: UploadFile) -> None:
    """Validate that the uploaded file claims a supported image type.

    Phones sometimes send photos without a content type; those are accepted
    when the filename has a known image extension, and the pipeline makes
    the final call when it decodes the bytes.
    """
    content_type = _content_type(image_file)
    if content_type:
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported image content type: {image_file.content_type}")
    else:
        name = (image_file.filename or "").lower()
        if not name.endswith((".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff")):
            raise HTTPException(status_code=415, detail="Unsupported or missing image content type.")


async def read_image_bytes(image_file: UploadFile) -> bytes:
    """Read validated image bytes, ensuring the upload is not empty."""
    validate_image_file(image_file)
    image_bytes = await image_file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")
    return image_bytes


async def read_csv_text(csv_file: UploadFile) -> str:
    """Read an uploaded CSV file as UTF-8 text."""
    content_type = _content_type(csv_file)
    if content_type and content_type not in ALLOWED_CSV_TYPES:
        raise HTTPException(status_code=415, detail=f"Unsupported CSV content type: {csv_file.content_type}")
    raw = await csv_file.read()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded.") from exc
