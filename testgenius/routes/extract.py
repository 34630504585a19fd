"""Document text extraction."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from testgenius.dependencies.auth import get_current_user
from testgenius.dependencies.services import get_gemini_client
from testgenius.errors import DocumentError
from testgenius.models.db.user import User
from testgenius.services.document_service import EMPTY_DOCUMENT_MESSAGE, ingest_document
from testgenius.services.generation_service import extract_text_from_inline_data
from testgenius.utils import read_upload_limited

router = APIRouter(prefix="/api/extract", tags=["extract"])


@router.post("")
def extract_document(
    file: UploadFile,
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict[str, str]:
    """
    Read the text of an uploaded document.

    Text and Word files are read locally; PDFs and images go through the AI.
    """
    data = read_upload_limited(file)
    try:
        document = ingest_document(file.filename or "", file.content_type, data)
        text = document.content
        if document.needs_extraction:
            client = get_gemini_client(request)
            text = extract_text_from_inline_data(client, document.content, document.mime_type)
        if not text.strip():
            raise DocumentError(EMPTY_DOCUMENT_MESSAGE)
    except DocumentError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return {
        "fileName": document.file_name,
        "mimeType": document.mime_type,
        "text": text,
    }
