"""
Domain types exchanged between the server, the session core and the local cache.

Everything is serialised with camelCase keys (``documentName``, ``createdAt``)
so the wire format and the cached format are the same.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from flashquiz.utils import as_utc, generate_id, utcnow

ActivityType = Literal["quiz", "flashcard", "upload"]

# Always timezone-aware UTC; naive input is read as UTC.
Timestamp = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class User(CamelModel):
    id: str
    name: str
    email: str
    avatar: Optional[str] = None
    created_at: Timestamp = Field(default_factory=utcnow)


class Flashcard(CamelModel):
    id: str = Field(default_factory=generate_id)
    question: str
    answer: str


class QuizQuestion(CamelModel):
    id: str = Field(default_factory=generate_id)
    question: str
    options: List[str]
    correct_answer: str
    explanation: Optional[str] = None


class Quiz(CamelModel):
    id: str = Field(default_factory=generate_id)
    title: str
    questions: List[QuizQuestion]
    document_name: str
    created_at: Timestamp = Field(default_factory=utcnow)


class FlashcardSet(CamelModel):
    id: str = Field(default_factory=generate_id)
    title: str
    flashcards: List[Flashcard]
    document_name: str
    created_at: Timestamp = Field(default_factory=utcnow)


class QuizAttempt(CamelModel):
    id: str = Field(default_factory=generate_id)
    quiz_id: str
    quiz_title: str
    answers: Dict[str, str] = Field(default_factory=dict)
    score: int
    total_questions: int
    completed_at: Timestamp = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _score_within_total(self) -> "QuizAttempt":
        if not 0 <= self.score <= self.total_questions:
            raise ValueError("score must be between 0 and totalQuestions")
        return self


class ActivityItem(CamelModel):
    id: str = Field(default_factory=generate_id)
    type: ActivityType
    title: str
    description: str
    score: Optional[int] = None
    timestamp: Timestamp = Field(default_factory=utcnow)


class UserStats(CamelModel):
    total_quizzes: int = 0
    total_flashcards: int = 0
    average_score: int = 0
    quizzes_this_week: int = 0
    flashcards_studied: int = 0
    streak_days: int = 0


class UserData(CamelModel):
    quizzes: List[Quiz] = Field(default_factory=list)
    flashcard_sets: List[FlashcardSet] = Field(default_factory=list)
    quiz_attempts: List[QuizAttempt] = Field(default_factory=list)
    activities: List[ActivityItem] = Field(default_factory=list)


# ----------------- Request bodies -----------------

class AuthRequest(CamelModel):
    action: str
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    user_id: Optional[str] = None
    updates: Optional[Dict[str, Any]] = None


class UserDataRequest(CamelModel):
    action: str
    user_id: str
    data: Optional[Dict[str, Any]] = None


class GenerateRequest(CamelModel):
    text: Optional[str] = None
    type: str = "flashcards"
    count: int = Field(default=10, ge=1, le=50)
