from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON

from flashquiz.utils import utcnow


class UserRecord(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    avatar: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class QuizRecord(SQLModel, table=True):
    __tablename__ = "quizzes"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    title: str
    questions: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    document_name: str
    created_at: datetime = Field(default_factory=utcnow)


class FlashcardSetRecord(SQLModel, table=True):
    __tablename__ = "flashcard_sets"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    title: str
    flashcards: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    document_name: str
    created_at: datetime = Field(default_factory=utcnow)


class QuizAttemptRecord(SQLModel, table=True):
    __tablename__ = "quiz_attempts"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    quiz_id: str
    quiz_title: str
    answers: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    score: int
    total_questions: int
    completed_at: datetime = Field(default_factory=utcnow)


class ActivityRecord(SQLModel, table=True):
    __tablename__ = "activities"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    type: str = Field(description="quiz, flashcard or upload")
    title: str
    description: str
    score: Optional[int] = None
    timestamp: datetime = Field(default_factory=utcnow)
