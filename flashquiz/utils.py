from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import List


def generate_id() -> str:
    return uuid.uuid4().hex


def chunk_text(text: str, max_chars: int) -> List[str]:
    """Split text into sequential slices of at most max_chars characters."""
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    text = text or ""
    if not text:
        return []
    return [text[i : i + max_chars] for i in range(0, len(text), max_chars)]


def per_chunk_count(count: int, chunks: int) -> int:
    if chunks <= 0:
        return count
    return math.ceil(count / chunks)


def calculate_percentage(value: int, total: int) -> int:
    if not total:
        return 0
    return round(value / total * 100)


def format_date(value: datetime) -> str:
    # e.g. "Mar 4, 2025"
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
