"""
Upload flow: document -> extracted text -> generated set -> session state.
"""
from __future__ import annotations

from typing import Union

import structlog

from flashquiz.errors import ExtractionFailed, GenerationFailed
from flashquiz.schemas import FlashcardSet, Quiz
from flashquiz.services.app_state import AppState
from flashquiz.services.extraction import DocumentExtractor, UploadedDocument
from flashquiz.services.llm import FLASHCARDS, GenerationClient

logger = structlog.get_logger()

MIN_DOCUMENT_TEXT = 50


async def create_study_set(
    state: AppState,
    extractor: DocumentExtractor,
    generator: GenerationClient,
    document: UploadedDocument,
    kind: str,
    count: int = 10,
) -> Union[FlashcardSet, Quiz]:
    text = await extractor.extract(document)
    if len(text.strip()) < MIN_DOCUMENT_TEXT:
        raise ExtractionFailed("Could not extract enough text from the document. Please try a different file.")

    items = await generator.generate(kind, text, count)
    if not items:
        raise GenerationFailed(f"Failed to generate {kind}. Please try again.")

    if kind == FLASHCARDS:
        study_set = FlashcardSet(title=f"Flashcards from {document.name}", flashcards=items,
                                 document_name=document.name)
        state.add_flashcard_set(study_set)
        state.set_current_flashcards(study_set)
        state.add_activity(type="upload", title="Created Flashcards",
                           description=f"Generated {len(items)} flashcards from {document.name}")
    else:
        study_set = Quiz(title=f"Quiz from {document.name}", questions=items, document_name=document.name)
        state.add_quiz(study_set)
        state.set_current_quiz(study_set)
        state.add_activity(type="upload", title="Created Quiz",
                           description=f"Generated {len(items)} questions from {document.name}")

    logger.info("study_set_created", kind=kind, items=len(items), document=document.name)
    return study_set
