"""
Router that resolves an OpenAI file_id to its filename.
Used by clients to turn citation markers into "Source: <filename>".
"""
from fastapi import APIRouter, Depends, HTTPException
from starlette.status import HTTP_404_NOT_FOUND

from assistant_hub.dependencies import get_openai_service
from assistant_hub.security import get_api_key
from assistant_hub.services.openai_svc import OpenAIService

router = APIRouter(prefix="/api", tags=["file-metadata"], dependencies=[Depends(get_api_key)])


@router.get("/file_metadata/{file_id}")
async def get_file_metadata(file_id: str, openai_service: OpenAIService = Depends(get_openai_service)):
    """
    Example response: {"filename": "my_document.pdf"}.
    404 when the file does not exist.
    """
    meta = await openai_service.retrieve_file(file_id)
    if not meta:
        raise HTTPException(HTTP_404_NOT_FOUND, detail="File not found in OpenAI")
    return meta
