"""
Server side of the persistence gateway: accounts and study data over SQLModel.

Lookups that may legitimately find nothing use ``.first()`` / ``session.get``
so "not found" never surfaces as a store error.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from flashquiz.auth import get_password_hash, verify_password
from flashquiz.errors import AlreadyExists, InvalidCredentials, NotFound, StoreError, StoreWriteFailed
from flashquiz.models import (
    ActivityRecord,
    FlashcardSetRecord,
    QuizAttemptRecord,
    QuizRecord,
    UserRecord,
)
from flashquiz.schemas import (
    ActivityItem,
    FlashcardSet,
    Quiz,
    QuizAttempt,
    User,
    UserData,
)
from flashquiz.utils import generate_id

logger = structlog.get_logger()

UPDATABLE_USER_FIELDS = ("name", "email", "avatar")
ACTIVITY_LOAD_LIMIT = 50


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def user_from_record(record: UserRecord) -> User:
    return User(
        id=record.id,
        name=record.name,
        email=record.email,
        avatar=record.avatar,
        created_at=record.created_at,
    )


class StudyStore:
    def __init__(self, session: Session):
        self.session = session

    # ----------------- Accounts -----------------

    def _find_user_by_email(self, email: str) -> Optional[UserRecord]:
        return self.session.exec(select(UserRecord).where(UserRecord.email == email)).first()

    def authenticate(self, email: str, password: str) -> User:
        try:
            record = self._find_user_by_email(_normalize_email(email))
        except SQLAlchemyError as e:
            logger.error("authenticate_lookup_failed", error=str(e))
            raise StoreError() from e
        if record is None or not verify_password(password or "", record.password_hash):
            logger.info("authentication_rejected")
            raise InvalidCredentials()
        return user_from_record(record)

    def create_account(self, name: str, email: str, password: str) -> User:
        email = _normalize_email(email)
        try:
            existing = self._find_user_by_email(email)
        except SQLAlchemyError as e:
            logger.error("signup_lookup_failed", error=str(e))
            raise StoreError("Failed to create user") from e
        if existing is not None:
            raise AlreadyExists()

        record = UserRecord(
            id=generate_id(),
            name=name,
            email=email,
            password_hash=get_password_hash(password),
        )
        try:
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        except IntegrityError as e:
            # lost a race with a concurrent signup for the same email
            self.session.rollback()
            raise AlreadyExists() from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("signup_insert_failed", error=str(e))
            raise StoreError("Failed to create user") from e

        logger.info("account_created", user_id=record.id)
        return user_from_record(record)

    def update_account(self, user_id: str, fields: Dict[str, Any]) -> User:
        updates = {k: v for k, v in (fields or {}).items() if k in UPDATABLE_USER_FIELDS and v is not None}
        if "email" in updates:
            updates["email"] = _normalize_email(updates["email"])
        try:
            record = self.session.get(UserRecord, user_id)
            if record is None:
                raise NotFound("User not found")
            for key, value in updates.items():
                setattr(record, key, value)
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        except IntegrityError as e:
            self.session.rollback()
            raise AlreadyExists("Email already in use") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("update_account_failed", user_id=user_id, error=str(e))
            raise StoreError("Failed to update user") from e
        return user_from_record(record)

    # ----------------- Study data -----------------

    def _commit(self, record, action: str) -> None:
        try:
            self.session.add(record)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("store_write_failed", action=action, error=str(e))
            raise StoreWriteFailed(f"Failed to {action.replace('_', ' ')}") from e

    def _owned(self, model, record_id: str, user_id: str):
        record = self.session.get(model, record_id)
        if record is not None and record.user_id != user_id:
            raise StoreWriteFailed("Record belongs to another user")
        return record

    def upsert_quiz(self, user_id: str, quiz: Quiz) -> None:
        questions = [q.to_wire() for q in quiz.questions]
        record = self._owned(QuizRecord, quiz.id, user_id)
        if record is None:
            record = QuizRecord(id=quiz.id, user_id=user_id, title=quiz.title, questions=questions,
                                document_name=quiz.document_name, created_at=quiz.created_at)
        else:
            record.title = quiz.title
            record.questions = questions
            record.document_name = quiz.document_name
        self._commit(record, "save_quiz")

    def upsert_flashcard_set(self, user_id: str, flashcard_set: FlashcardSet) -> None:
        cards = [c.to_wire() for c in flashcard_set.flashcards]
        record = self._owned(FlashcardSetRecord, flashcard_set.id, user_id)
        if record is None:
            record = FlashcardSetRecord(id=flashcard_set.id, user_id=user_id, title=flashcard_set.title,
                                        flashcards=cards, document_name=flashcard_set.document_name,
                                        created_at=flashcard_set.created_at)
        else:
            record.title = flashcard_set.title
            record.flashcards = cards
            record.document_name = flashcard_set.document_name
        self._commit(record, "save_flashcard_set")

    def insert_quiz_attempt(self, user_id: str, attempt: QuizAttempt) -> None:
        record = QuizAttemptRecord(
            id=attempt.id or generate_id(),
            user_id=user_id,
            quiz_id=attempt.quiz_id,
            quiz_title=attempt.quiz_title,
            answers=dict(attempt.answers),
            score=attempt.score,
            total_questions=attempt.total_questions,
            completed_at=attempt.completed_at,
        )
        self._commit(record, "save_quiz_attempt")

    def insert_activity(self, user_id: str, activity: ActivityItem) -> None:
        record = ActivityRecord(
            id=activity.id or generate_id(),
            user_id=user_id,
            type=activity.type,
            title=activity.title,
            description=activity.description,
            score=activity.score,
            timestamp=activity.timestamp,
        )
        self._commit(record, "save_activity")

    def list_user_data(self, user_id: str, activity_limit: int = ACTIVITY_LOAD_LIMIT) -> UserData:
        try:
            quizzes = self.session.exec(
                select(QuizRecord).where(QuizRecord.user_id == user_id).order_by(QuizRecord.created_at.desc())
            ).all()
            sets = self.session.exec(
                select(FlashcardSetRecord)
                .where(FlashcardSetRecord.user_id == user_id)
                .order_by(FlashcardSetRecord.created_at.desc())
            ).all()
            attempts = self.session.exec(
                select(QuizAttemptRecord)
                .where(QuizAttemptRecord.user_id == user_id)
                .order_by(QuizAttemptRecord.completed_at.desc())
            ).all()
            activities = self.session.exec(
                select(ActivityRecord)
                .where(ActivityRecord.user_id == user_id)
                .order_by(ActivityRecord.timestamp.desc())
                .limit(activity_limit)
            ).all()
        except SQLAlchemyError as e:
            logger.error("load_user_data_failed", user_id=user_id, error=str(e))
            raise StoreError("Failed to load user data") from e

        return UserData(
            quizzes=[
                Quiz(id=q.id, title=q.title, questions=q.questions, document_name=q.document_name,
                     created_at=q.created_at)
                for q in quizzes
            ],
            flashcard_sets=[
                FlashcardSet(id=f.id, title=f.title, flashcards=f.flashcards, document_name=f.document_name,
                             created_at=f.created_at)
                for f in sets
            ],
            quiz_attempts=[
                QuizAttempt(id=a.id, quiz_id=a.quiz_id, quiz_title=a.quiz_title, answers=a.answers or {},
                            score=a.score, total_questions=a.total_questions, completed_at=a.completed_at)
                for a in attempts
            ],
            activities=[
                ActivityItem(id=a.id, type=a.type, title=a.title, description=a.description, score=a.score,
                             timestamp=a.timestamp)
                for a in activities
            ],
        )
