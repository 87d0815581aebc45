from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
import structlog

from flashquiz.deps import get_extractor
from flashquiz.errors import DocumentError
from flashquiz.middleware.rate_limit import general_api_limit
from flashquiz.services.extraction import DocumentExtractor, UploadedDocument

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["documents"])


@router.post("/extract-text")
@general_api_limit()
async def extract_text(request: Request, file: Optional[UploadFile] = File(None),
                       extractor: DocumentExtractor = Depends(get_extractor)):
    """Extract plain text from an uploaded TXT, PDF or DOCX file"""
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()
    document = UploadedDocument(name=file.filename or "", content=content, media_type=file.content_type)
    try:
        text = await extractor.extract(document)
    except DocumentError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except Exception as e:
        logger.error("extract_text_unexpected_error", filename=document.name, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to extract text from document")
    return {"text": text}
