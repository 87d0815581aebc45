from fastapi import APIRouter, Depends, HTTPException, Request

from flashquiz.config import Settings
from flashquiz.deps import get_app_settings, get_generation_client
from flashquiz.errors import ProviderNotConfigured
from flashquiz.middleware.rate_limit import ai_generation_limit
from flashquiz.schemas import GenerateRequest
from flashquiz.services.llm import KINDS, GenerationClient


router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/generate-ai")
@ai_generation_limit()
async def generate_ai(request: Request, body: GenerateRequest,
                      generator: GenerationClient = Depends(get_generation_client),
                      settings: Settings = Depends(get_app_settings)):
    """Generate flashcards or quiz questions from document text"""
    if not body.text or not body.text.strip():
        raise HTTPException(status_code=400, detail="No text provided")
    if body.type not in KINDS:
        raise HTTPException(status_code=400, detail="Type must be 'flashcards' or 'quiz'")

    text = body.text[: settings.max_input_chars]
    try:
        items = await generator.generate(body.type, text, body.count)
    except ProviderNotConfigured as e:
        raise HTTPException(status_code=503, detail=e.message)
    return {body.type: [item.to_wire() for item in items]}
