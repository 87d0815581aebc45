from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from flashquiz.auth import create_access_token
from flashquiz.deps import bearer_subject, get_store, require_api_key
from flashquiz.errors import AlreadyExists, InvalidCredentials, NotFound, StoreError
from flashquiz.schemas import AuthRequest, User
from flashquiz.services.store import StudyStore


router = APIRouter(prefix="/api", tags=["auth"], dependencies=[Depends(require_api_key)])


def _session_payload(user: User) -> dict:
    token = create_access_token(user.id)
    return {"access_token": token, "token_type": "bearer", "user": user.to_wire()}


@router.post("/auth")
def auth_action(body: AuthRequest, authorization: Optional[str] = Header(None),
                store: StudyStore = Depends(get_store)):
    if body.action == "signup":
        if not (body.name and body.email and body.password):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name, email and password are required")
        try:
            user = store.create_account(body.name, body.email, body.password)
        except AlreadyExists:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")
        except StoreError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create user")
        return _session_payload(user)

    if body.action == "login":
        try:
            user = store.authenticate(body.email or "", body.password or "")
        except InvalidCredentials:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
        except StoreError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
        return _session_payload(user)

    if body.action == "update":
        if not body.user_id or bearer_subject(authorization) != body.user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
        try:
            user = store.update_account(body.user_id, body.updates or {})
        except NotFound:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        except AlreadyExists:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")
        except StoreError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update user")
        return {"user": user.to_wire()}

    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
