from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlmodel import Session

from flashquiz.auth import decode_token
from flashquiz.config import Settings
from flashquiz.db import get_session
from flashquiz.services.extraction import DocumentExtractor
from flashquiz.services.llm import GenerationClient
from flashquiz.services.store import StudyStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(session: Session = Depends(get_session)) -> StudyStore:
    return StudyStore(session)


def get_generation_client(request: Request) -> GenerationClient:
    return request.app.state.generation_client


def get_extractor(request: Request) -> DocumentExtractor:
    return request.app.state.extractor


def require_api_key(request: Request, apikey: Optional[str] = Header(None)) -> None:
    expected = request.app.state.settings.store_key
    if expected and apikey != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def bearer_subject(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return decode_token(token.strip())


def current_user_id(authorization: Optional[str] = Header(None)) -> str:
    user_id = bearer_subject(authorization)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user_id
