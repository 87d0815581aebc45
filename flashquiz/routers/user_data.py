from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from flashquiz.deps import current_user_id, get_store, require_api_key
from flashquiz.errors import StoreError
from flashquiz.schemas import ActivityItem, FlashcardSet, Quiz, QuizAttempt, UserDataRequest
from flashquiz.services.store import StudyStore


router = APIRouter(prefix="/api", tags=["user-data"], dependencies=[Depends(require_api_key)])

SAVE_ACTIONS = {
    "save_quiz": (Quiz, StudyStore.upsert_quiz),
    "save_flashcard_set": (FlashcardSet, StudyStore.upsert_flashcard_set),
    "save_quiz_attempt": (QuizAttempt, StudyStore.insert_quiz_attempt),
    "save_activity": (ActivityItem, StudyStore.insert_activity),
}


@router.post("/user-data")
def user_data_action(body: UserDataRequest, user_id: str = Depends(current_user_id),
                     store: StudyStore = Depends(get_store)):
    if body.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized for this user")

    if body.action == "load_user_data":
        try:
            return store.list_user_data(user_id).to_wire()
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    if body.action not in SAVE_ACTIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    if body.data is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No data provided")

    model, save = SAVE_ACTIONS[body.action]
    try:
        item = model.model_validate(body.data)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {body.action} payload: {e.error_count()} error(s)")

    try:
        save(store, user_id, item)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
    return {"success": True}
