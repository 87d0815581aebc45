"""
Study-progress analytics derived from quiz attempts and flashcard sets
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from flashquiz.schemas import FlashcardSet, Quiz, QuizAttempt, UserStats
from flashquiz.utils import as_utc, calculate_percentage, format_date, generate_id, utcnow

STREAK_CAP = 7
CARDS_STUDIED_PER_SET = 5

SCORE_RANGES = (
    ("90-100%", 90, 100),
    ("70-89%", 70, 89),
    ("50-69%", 50, 69),
    ("0-49%", 0, 49),
)

GRADES = (
    (90, "A", "Excellent!"),
    (80, "B", "Great job!"),
    (70, "C", "Good effort!"),
    (60, "D", "Keep practicing!"),
)

WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def attempt_percentage(attempt: QuizAttempt) -> int:
    return calculate_percentage(attempt.score, attempt.total_questions)


def compute_stats(
    flashcard_sets: Sequence[FlashcardSet],
    attempts: Sequence[QuizAttempt],
    now: Optional[datetime] = None,
) -> UserStats:
    now = as_utc(now) if now else utcnow()
    week_ago = now - timedelta(days=7)

    average = 0
    if attempts:
        total = sum(a.score / a.total_questions * 100 if a.total_questions else 0 for a in attempts)
        average = round(total / len(attempts))

    return UserStats(
        total_quizzes=len(attempts),
        total_flashcards=sum(len(s.flashcards) for s in flashcard_sets),
        average_score=average,
        quizzes_this_week=sum(1 for a in attempts if a.completed_at > week_ago),
        # approximation: every set counts as five studied cards
        flashcards_studied=len(flashcard_sets) * CARDS_STUDIED_PER_SET,
        streak_days=min(len(attempts), STREAK_CAP),
    )


def score_attempt(quiz: Quiz, answers: Dict[str, str]) -> QuizAttempt:
    score = sum(1 for q in quiz.questions if answers.get(q.id) == q.correct_answer)
    return QuizAttempt(
        id=generate_id(),
        quiz_id=quiz.id,
        quiz_title=quiz.title,
        answers=dict(answers),
        score=score,
        total_questions=len(quiz.questions),
        completed_at=utcnow(),
    )


def grade_for(percent: int) -> Dict[str, str]:
    for threshold, grade, message in GRADES:
        if percent >= threshold:
            return {"grade": grade, "message": message}
    return {"grade": "F", "message": "Don't give up!"}


def performance_series(
    attempts: Sequence[QuizAttempt], days: int = 7, now: Optional[datetime] = None
) -> List[Dict]:
    """One point per day, oldest first; ``score`` is None on days without attempts."""
    now = as_utc(now) if now else utcnow()
    by_day: Dict[str, List[QuizAttempt]] = {}
    for a in attempts:
        by_day.setdefault(a.completed_at.date().isoformat(), []).append(a)

    series = []
    for offset in range(days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date()
        day_attempts = by_day.get(day.isoformat(), [])
        score = None
        if day_attempts:
            score = round(sum(attempt_percentage(a) for a in day_attempts) / len(day_attempts))
        series.append({"date": day.isoformat(), "label": f"{day.strftime('%b')} {day.day}",
                       "score": score, "quizzes": len(day_attempts)})
    return series


def score_distribution(attempts: Sequence[QuizAttempt]) -> List[Dict]:
    counts = {name: 0 for name, _, _ in SCORE_RANGES}
    for a in attempts:
        percent = attempt_percentage(a)
        for name, low, high in SCORE_RANGES:
            if low <= percent <= high:
                counts[name] += 1
                break
    return [{"name": name, "count": counts[name]} for name, _, _ in SCORE_RANGES if counts[name]]


def weekly_activity(attempts: Sequence[QuizAttempt]) -> List[Dict]:
    counts = [0] * 7
    for a in attempts:
        # isoweekday: Monday=1 .. Sunday=7
        counts[a.completed_at.isoweekday() % 7] += 1
    return [{"day": day, "quizzes": counts[i]} for i, day in enumerate(WEEKDAYS)]


def recent_attempts(attempts: Sequence[QuizAttempt], limit: int = 10) -> List[Dict]:
    rows = []
    for a in list(attempts)[:limit]:
        percent = attempt_percentage(a)
        rows.append({
            "id": a.id,
            "quizTitle": a.quiz_title,
            "score": a.score,
            "totalQuestions": a.total_questions,
            "percentage": percent,
            "grade": grade_for(percent)["grade"],
            "completedOn": format_date(a.completed_at),
        })
    return rows
