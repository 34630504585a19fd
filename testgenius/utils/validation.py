"""Validation utilities."""
from fastapi import HTTPException, UploadFile

from testgenius.config import MAX_FILE_SIZE_BYTES, MAX_FILE_SIZE_MB


def validate_id(name: str, value: str) -> str:
    """Validate ID string (hex/uuid-like, no path characters)."""
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{name} is required")
    cleaned = value.strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail=f"{name} is required")
    if not all(ch.isalnum() or ch in "-_" for ch in cleaned):
        raise HTTPException(status_code=400, detail=f"Invalid {name}")
    return cleaned


def read_upload_limited(upload: UploadFile) -> bytes:
    """Read an uploaded file, rejecting anything above the size limit."""
    data = upload.file.read(MAX_FILE_SIZE_BYTES + 1)
    if len(data) > MAX_FILE_SIZE_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File size exceeds {MAX_FILE_SIZE_MB}MB.",
        )
    return data
