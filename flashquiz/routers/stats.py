from fastapi import APIRouter, Depends, HTTPException, Query

from flashquiz.deps import current_user_id, get_store
from flashquiz.errors import StoreError
from flashquiz.services.analytics import (
    compute_stats, performance_series, recent_attempts, score_distribution, weekly_activity,
)
from flashquiz.services.store import StudyStore


router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/progress")
def progress(user_id: str, days: int = Query(7, ge=1, le=365),
             subject: str = Depends(current_user_id), store: StudyStore = Depends(get_store)):
    if subject != user_id:
        raise HTTPException(status_code=401, detail="Not authorized for this user")
    try:
        data = store.list_user_data(user_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=e.message)

    attempts = data.quiz_attempts
    return {
        "user_id": user_id,
        "window_days": days,
        "stats": compute_stats(data.flashcard_sets, attempts).to_wire(),
        "performance": performance_series(attempts, days),
        "distribution": score_distribution(attempts),
        "weekly": weekly_activity(attempts),
        "recent": recent_attempts(attempts),
    }
