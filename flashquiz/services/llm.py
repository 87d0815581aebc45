"""
Generation client: turns extracted document text into flashcards or quiz questions.

Provider replies are decoded through a strict schema. Any failure in any chunk
discards the whole run and the canned sample content is returned instead.
"""
from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from flashquiz.config import Settings
from flashquiz.errors import GenerationFailed, ProviderNotConfigured
from flashquiz.schemas import Flashcard, QuizQuestion
from flashquiz.services.logging import log_performance
from flashquiz.services.mock_content import mock_items
from flashquiz.services.monitoring import AI_GENERATION_REQUESTS
from flashquiz.utils import chunk_text, per_chunk_count

logger = structlog.get_logger()

FLASHCARDS = "flashcards"
QUIZ = "quiz"
KINDS = (FLASHCARDS, QUIZ)

# async (prompt, kind) -> raw reply text
Provider = Callable[[str, str], Awaitable[str]]
GeneratedItems = Union[List[Flashcard], List[QuizQuestion]]

SYSTEM_PROMPTS = {
    FLASHCARDS: "You are a helpful educational assistant that generates flashcards. "
                "Always respond with valid JSON only.",
    QUIZ: "You are a helpful educational assistant that generates quiz questions. "
          "Always respond with valid JSON only.",
}


class OpenAIProvider:
    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 30.0,
                 client: Optional[AsyncOpenAI] = None):
        if client is None:
            if not api_key:
                raise ProviderNotConfigured("OPENAI_API_KEY not set")
            client = AsyncOpenAI(api_key=api_key)
        self.client = client.with_options(timeout=timeout)
        self.model = model

    async def __call__(self, prompt: str, kind: str = FLASHCARDS) -> str:
        rsp = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPTS.get(kind, SYSTEM_PROMPTS[FLASHCARDS])},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
        )
        content = rsp.choices[0].message.content if rsp.choices else None
        if not content:
            raise GenerationFailed("Empty response from provider")
        return content


# ----------------- Reply schema -----------------

class FlashcardDraft(BaseModel):
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)


class QuizDraft(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=4, max_length=4)
    correct_answer: str = Field(alias="correctAnswer")
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "QuizDraft":
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must match one of the options exactly")
        return self


class FlashcardReply(BaseModel):
    flashcards: List[FlashcardDraft]


class QuizReply(BaseModel):
    quiz: List[QuizDraft]


@dataclass
class ParseResult:
    ok: bool
    items: list = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(ok=False, error=error)


CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _clean_json_like(content: str) -> Optional[str]:
    # Strip ```json ... ``` fences, then keep the outermost {...} span
    text = CODE_FENCE_RE.sub("", content or "").strip()
    match = JSON_OBJECT_RE.search(text)
    return match.group(0) if match else None


def parse_reply(kind: str, content: str) -> ParseResult:
    span = _clean_json_like(content)
    if span is None:
        return ParseResult.failure("No JSON object found in reply")
    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        return ParseResult.failure(f"Invalid JSON: {e.msg}")

    try:
        if kind == FLASHCARDS:
            drafts = FlashcardReply.model_validate(data).flashcards
            items = [Flashcard(question=d.question, answer=d.answer) for d in drafts]
        else:
            drafts = QuizReply.model_validate(data).quiz
            items = [
                QuizQuestion(question=d.question, options=d.options, correct_answer=d.correct_answer,
                             explanation=d.explanation)
                for d in drafts
            ]
    except ValidationError as e:
        return ParseResult.failure(f"Reply does not match schema: {e.error_count()} error(s)")

    if not items:
        return ParseResult.failure("Reply contained no items")
    return ParseResult(ok=True, items=items)


def build_prompt(kind: str, text: str, count: int) -> str:
    if kind == FLASHCARDS:
        return (
            f"You are an expert educator. Based on the following text, generate exactly {count} "
            "flashcards for studying.\n\n"
            f"TEXT:\n{text}\n\n"
            "Generate flashcards in the following JSON format ONLY (no markdown, no explanation, no code blocks):\n"
            '{\n  "flashcards": [\n    { "question": "Question text here?", "answer": "Clear, concise answer here" }\n  ]\n}\n\n'
            "Requirements:\n"
            "- Questions should test key concepts\n"
            "- Answers should be clear and educational\n"
            "- Cover different topics from the text\n"
            "- Output ONLY valid JSON, nothing else"
        )
    return (
        f"You are an expert educator. Based on the following text, generate exactly {count} "
        "multiple choice questions for a quiz.\n\n"
        f"TEXT:\n{text}\n\n"
        "Generate quiz questions in the following JSON format ONLY (no markdown, no explanation, no code blocks):\n"
        '{\n  "quiz": [\n    {\n      "question": "Question text here?",\n'
        '      "options": ["Option A", "Option B", "Option C", "Option D"],\n'
        '      "correctAnswer": "Option B",\n'
        '      "explanation": "Brief explanation why this is correct"\n    }\n  ]\n}\n\n'
        "Requirements:\n"
        "- Each question must have exactly 4 options\n"
        "- Only ONE option should be correct\n"
        "- The correctAnswer must match one of the options exactly\n"
        "- Output ONLY valid JSON, nothing else"
    )


class GenerationClient:
    def __init__(self, settings: Settings, provider: Optional[Provider] = None):
        self.settings = settings
        self.provider = provider
        if self.provider is None and settings.provider_configured:
            self.provider = OpenAIProvider(
                settings.openai_api_key,
                model=settings.openai_model,
                timeout=settings.provider_timeout,
            )

    @property
    def use_mock_data(self) -> bool:
        return self.settings.use_mock_data

    async def _call_provider(self, kind: str, prompt: str) -> str:
        return await asyncio.wait_for(self.provider(prompt, kind), timeout=self.settings.provider_timeout)

    async def _generate_chunks(self, kind: str, text: str, count: int) -> GeneratedItems:
        chunks = chunk_text(text, self.settings.max_chunk_chars)
        if not chunks:
            raise GenerationFailed("No text provided")
        wanted = per_chunk_count(count, len(chunks))

        items: list = []
        for index, chunk in enumerate(chunks):
            reply = await self._call_provider(kind, build_prompt(kind, chunk, wanted))
            result = parse_reply(kind, reply)
            if not result.ok:
                raise GenerationFailed(f"Chunk {index + 1}/{len(chunks)}: {result.error}")
            items.extend(result.items)
        return items[:count]

    @log_performance("generate_study_material")
    async def generate(self, kind: str, text: str, count: int = 10) -> GeneratedItems:
        """Return up to ``count`` items; mock content replaces any failed run."""
        if kind not in KINDS:
            raise ValueError(f"Unknown generation type: {kind}")

        if self.use_mock_data:
            logger.info("generation_mock_mode", type=kind, count=count)
            AI_GENERATION_REQUESTS.labels(type=kind, status="mock").inc()
            return mock_items(kind, count)

        if self.provider is None:
            AI_GENERATION_REQUESTS.labels(type=kind, status="not_configured").inc()
            raise ProviderNotConfigured()

        try:
            items = await self._generate_chunks(kind, text, count)
        except Exception as e:
            logger.warning("generation_fell_back", type=kind, count=count, error=str(e) or type(e).__name__)
            AI_GENERATION_REQUESTS.labels(type=kind, status="fallback").inc()
            return mock_items(kind, count)

        logger.info("generation_completed", type=kind, requested=count, produced=len(items))
        AI_GENERATION_REQUESTS.labels(type=kind, status="success").inc()
        return items

    async def generate_flashcards(self, text: str, count: int = 10) -> List[Flashcard]:
        return await self.generate(FLASHCARDS, text, count)

    async def generate_quiz(self, text: str, count: int = 10) -> List[QuizQuestion]:
        return await self.generate(QUIZ, text, count)
