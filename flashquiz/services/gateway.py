"""
Async HTTP client for the persistence gateway (``/api/auth`` and ``/api/user-data``).

Status codes are mapped back onto the flashquiz error taxonomy; transport
failures surface as ``StoreError``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import structlog

from flashquiz.errors import AlreadyExists, InvalidCredentials, NotFound, StoreError, StoreWriteFailed
from flashquiz.schemas import ActivityItem, FlashcardSet, Quiz, QuizAttempt, User, UserData

logger = structlog.get_logger()

AUTH_PATH = "/api/auth"
USER_DATA_PATH = "/api/user-data"


class GatewayClient:
    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"apikey": api_key},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any], authorized: bool = False) -> httpx.Response:
        headers = {}
        if authorized and self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            return await self._client.post(path, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("gateway_unreachable", path=path, error=str(e))
            raise StoreError(f"Gateway unreachable: {e}") from e

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("detail") or body.get("error") or body)
        return str(body)

    def _user_from(self, response: httpx.Response) -> User:
        body = response.json()
        if body.get("access_token"):
            self.access_token = body["access_token"]
        return User.model_validate(body["user"])

    # ----------------- Accounts -----------------

    async def authenticate(self, email: str, password: str) -> User:
        response = await self._post(AUTH_PATH, {"action": "login", "email": email, "password": password})
        if response.status_code == 200:
            return self._user_from(response)
        if response.status_code in (400, 401):
            raise InvalidCredentials()
        raise StoreError(self._detail(response))

    async def create_account(self, name: str, email: str, password: str) -> User:
        response = await self._post(
            AUTH_PATH, {"action": "signup", "name": name, "email": email, "password": password}
        )
        if response.status_code == 200:
            return self._user_from(response)
        if response.status_code == 400:
            raise AlreadyExists(self._detail(response))
        raise StoreError(self._detail(response))

    async def update_account(self, user_id: str, fields: Dict[str, Any]) -> User:
        response = await self._post(
            AUTH_PATH, {"action": "update", "userId": user_id, "updates": fields}, authorized=True
        )
        if response.status_code == 200:
            return self._user_from(response)
        if response.status_code == 404:
            raise NotFound(self._detail(response))
        if response.status_code == 400:
            raise AlreadyExists(self._detail(response))
        raise StoreError(self._detail(response))

    # ----------------- Study data -----------------

    async def _save(self, action: str, user_id: str, data: Dict[str, Any]) -> None:
        response = await self._post(
            USER_DATA_PATH, {"action": action, "userId": user_id, "data": data}, authorized=True
        )
        if response.status_code != 200:
            raise StoreWriteFailed(f"{action}: {self._detail(response)}")

    async def save_quiz(self, user_id: str, quiz: Quiz) -> None:
        await self._save("save_quiz", user_id, quiz.to_wire())

    async def save_flashcard_set(self, user_id: str, flashcard_set: FlashcardSet) -> None:
        await self._save("save_flashcard_set", user_id, flashcard_set.to_wire())

    async def save_quiz_attempt(self, user_id: str, attempt: QuizAttempt) -> None:
        await self._save("save_quiz_attempt", user_id, attempt.to_wire())

    async def save_activity(self, user_id: str, activity: ActivityItem) -> None:
        await self._save("save_activity", user_id, activity.to_wire())

    async def load_user_data(self, user_id: str) -> UserData:
        response = await self._post(USER_DATA_PATH, {"action": "load_user_data", "userId": user_id},
                                    authorized=True)
        if response.status_code != 200:
            raise StoreError(f"load_user_data: {self._detail(response)}")
        return UserData.model_validate(response.json())
