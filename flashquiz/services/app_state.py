"""
Application state container for one user session.

Owns the signed-in user, the study collections and the current selections.
Every mutation updates memory and the local cache before anything is awaited;
the remote copy is mirrored by detached best-effort tasks whose failures are
logged and counted but never roll back local state.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import httpx
import structlog
from pydantic import ValidationError

from flashquiz.config import Settings
from flashquiz.errors import AlreadyExists, InvalidCredentials, StoreError
from flashquiz.schemas import ActivityItem, FlashcardSet, Quiz, QuizAttempt, User, UserData, UserStats
from flashquiz.services.analytics import attempt_percentage, compute_stats, score_attempt
from flashquiz.services.cache import CacheService
from flashquiz.services.gateway import GatewayClient
from flashquiz.services.monitoring import STORE_WRITE_FAILURES
from flashquiz.utils import utcnow

logger = structlog.get_logger()

USER_KEY = "flashquiz_user"
TOKEN_KEY = "flashquiz_token"
QUIZZES_KEY = "flashquiz_quizzes"
FLASHCARDS_KEY = "flashquiz_flashcards"
ATTEMPTS_KEY = "flashquiz_attempts"
ACTIVITIES_KEY = "flashquiz_activities"
COLLECTION_KEYS = (QUIZZES_KEY, FLASHCARDS_KEY, ATTEMPTS_KEY, ACTIVITIES_KEY)
CACHE_KEYS = (USER_KEY, TOKEN_KEY) + COLLECTION_KEYS

ACTIVITY_LIMIT = 20
PROFILE_FIELDS = ("name", "email", "avatar")
REMOTE_PROFILE_FIELDS = ("name", "email")

DEMO_ACCOUNTS = (
    {"email": "demo@flashquiz.com", "password": "demo123", "name": "Demo User"},
)

LOCAL_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "flashquiz.local")


@dataclass(frozen=True)
class BestEffortResult:
    action: str
    ok: bool
    error: Optional[str] = None


def local_user_id(email: str) -> str:
    """Stable id for accounts that only exist on this device."""
    return uuid.uuid5(LOCAL_ID_NAMESPACE, email.strip().lower()).hex


class AppState:
    def __init__(
        self,
        settings: Settings,
        cache: CacheService,
        gateway: Optional[GatewayClient] = None,
        on_write_failure: Optional[Callable[[BestEffortResult], None]] = None,
        local_accounts: Optional[List[Dict[str, Any]]] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.gateway = gateway
        self.on_write_failure = on_write_failure
        accounts = DEMO_ACCOUNTS if local_accounts is None else local_accounts
        self._local_accounts: List[Dict[str, Any]] = [dict(a) for a in accounts]

        self.user: Optional[User] = None
        self.is_loading = True
        self.quizzes: List[Quiz] = []
        self.flashcard_sets: List[FlashcardSet] = []
        self.quiz_attempts: List[QuizAttempt] = []
        self.activities: List[ActivityItem] = []
        self.current_quiz: Optional[Quiz] = None
        self.current_flashcards: Optional[FlashcardSet] = None

        self.last_auth_error: Optional[Exception] = None
        self.write_failures: List[BestEffortResult] = []
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: CacheService,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ) -> "AppState":
        """Wire a gateway client only when both store settings are present."""
        gateway = None
        if settings.remote_enabled:
            gateway = GatewayClient(settings.store_url, settings.store_key,
                                    timeout=settings.remote_timeout, transport=transport)
        return cls(settings, cache, gateway=gateway, **kwargs)

    @property
    def remote_enabled(self) -> bool:
        return self.gateway is not None

    @property
    def stats(self) -> UserStats:
        return compute_stats(self.flashcard_sets, self.quiz_attempts)

    # ----------------- Local cache -----------------

    def _persist(self, key: str, items: list) -> None:
        self.cache.set(key, [item.to_wire() for item in items], expire=None)

    def _persist_session(self) -> None:
        if self.user is None:
            return
        self.cache.set(USER_KEY, self.user.to_wire(), expire=None)
        if self.gateway is not None and self.gateway.access_token:
            self.cache.set(TOKEN_KEY, self.gateway.access_token, expire=None)

    def _persist_all(self) -> None:
        self._persist(QUIZZES_KEY, self.quizzes)
        self._persist(FLASHCARDS_KEY, self.flashcard_sets)
        self._persist(ATTEMPTS_KEY, self.quiz_attempts)
        self._persist(ACTIVITIES_KEY, self.activities)

    def _read(self, key: str, model) -> list:
        raw = self.cache.get(key) or []
        try:
            return [model.model_validate(item) for item in raw]
        except ValidationError as e:
            logger.warning("cache_entry_invalid", key=key, errors=e.error_count())
            return []

    def _load_local(self) -> None:
        self.quizzes = self._read(QUIZZES_KEY, Quiz)
        self.flashcard_sets = self._read(FLASHCARDS_KEY, FlashcardSet)
        self.quiz_attempts = self._read(ATTEMPTS_KEY, QuizAttempt)
        self.activities = self._read(ACTIVITIES_KEY, ActivityItem)[:ACTIVITY_LIMIT]

    def _cached_user(self) -> Optional[User]:
        raw = self.cache.get(USER_KEY)
        if not raw:
            return None
        try:
            return User.model_validate(raw)
        except ValidationError as e:
            logger.warning("cached_session_invalid", errors=e.error_count())
            return None

    # ----------------- Remote plumbing -----------------

    async def _remote(self, call: Awaitable):
        return await asyncio.wait_for(call, timeout=self.settings.remote_timeout)

    async def _best_effort(self, action: str, call: Callable[[], Awaitable]) -> BestEffortResult:
        try:
            await self._remote(call())
        except Exception as e:
            return self._record_failure(action, str(e) or type(e).__name__)
        return BestEffortResult(action=action, ok=True)

    def _record_failure(self, action: str, error: str) -> BestEffortResult:
        result = BestEffortResult(action=action, ok=False, error=error)
        logger.warning("store_write_failed", action=action, error=error)
        STORE_WRITE_FAILURES.labels(action=action).inc()
        self.write_failures.append(result)
        if self.on_write_failure is not None:
            self.on_write_failure(result)
        return result

    def _dispatch(self, action: str, call: Callable[[], Awaitable]) -> Optional[asyncio.Task]:
        # The write itself is never awaited here.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._record_failure(action, "No running event loop")
            return None
        task = loop.create_task(self._best_effort(action, call))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _mirror(self, action: str, call: Callable[[str], Awaitable]) -> Optional[asyncio.Task]:
        if not self.remote_enabled or self.user is None:
            return None
        user_id = self.user.id
        return self._dispatch(action, lambda: call(user_id))

    async def drain(self) -> List[BestEffortResult]:
        """Wait for every best-effort write dispatched so far."""
        results: List[BestEffortResult] = []
        while self._pending:
            results.extend(await asyncio.gather(*list(self._pending)))
        return results

    async def _load_user_data(self, user_id: str) -> bool:
        try:
            data: UserData = await self._remote(self.gateway.load_user_data(user_id))
        except Exception as e:
            logger.warning("load_user_data_failed", user_id=user_id, error=str(e) or type(e).__name__,
                           fallback="local_cache")
            self._load_local()
            return False
        self.quizzes = list(data.quizzes)
        self.flashcard_sets = list(data.flashcard_sets)
        self.quiz_attempts = list(data.quiz_attempts)
        self.activities = list(data.activities)[:ACTIVITY_LIMIT]
        self._persist_all()
        logger.info("user_data_loaded", user_id=user_id, quizzes=len(self.quizzes),
                    flashcard_sets=len(self.flashcard_sets), attempts=len(self.quiz_attempts))
        return True

    # ----------------- Session -----------------

    async def initialize(self) -> None:
        """Restore the cached session; the container is loading until this returns."""
        self.is_loading = True
        try:
            user = self._cached_user()
            if user is None:
                self._clear_memory()
                return
            self.user = user
            if self.remote_enabled:
                self.gateway.access_token = self.cache.get(TOKEN_KEY)
                await self._load_user_data(user.id)
            else:
                self._load_local()
        finally:
            self.is_loading = False

    def _start_session(self, user: User) -> None:
        previous = self.user or self._cached_user()
        if previous is None or previous.id != user.id:
            # cached collections belong to whoever was signed in before
            self._clear_memory()
            for key in COLLECTION_KEYS:
                self.cache.delete(key)
        self.user = user
        self._persist_session()
        logger.info("session_started", user_id=user.id, remote=self.remote_enabled)

    def _find_local_account(self, email: str) -> Optional[Dict[str, Any]]:
        wanted = (email or "").strip().lower()
        return next((a for a in self._local_accounts if a["email"].lower() == wanted), None)

    def _local_account_for(self, user_id: str) -> Optional[Dict[str, Any]]:
        return next((a for a in self._local_accounts if a.get("id") == user_id), None)

    @staticmethod
    def _local_user(account: Dict[str, Any]) -> User:
        # the id is fixed at first sign-in so a later email change keeps it
        return User(
            id=account.setdefault("id", local_user_id(account["email"])),
            name=account["name"],
            email=account["email"],
            avatar=account.get("avatar"),
            created_at=account.get("created_at") or utcnow(),
        )

    async def login(self, email: str, password: str) -> bool:
        self.last_auth_error = None
        if self.remote_enabled:
            try:
                user = await self._remote(self.gateway.authenticate(email, password))
            except Exception as e:
                self.last_auth_error = e
                logger.info("login_failed", reason=type(e).__name__)
                return False
            self._start_session(user)
            await self._load_user_data(user.id)
            return True

        await asyncio.sleep(self.settings.local_auth_delay)
        account = self._find_local_account(email)
        if account is None or account["password"] != password:
            self.last_auth_error = InvalidCredentials()
            logger.info("login_failed", reason="InvalidCredentials")
            return False
        self._start_session(self._local_user(account))
        self._load_local()
        return True

    async def signup(self, name: str, email: str, password: str) -> bool:
        self.last_auth_error = None
        if self.remote_enabled:
            try:
                user = await self._remote(self.gateway.create_account(name, email, password))
            except AlreadyExists as e:
                self.last_auth_error = e
                logger.info("signup_rejected", reason="already_exists")
                return False
            except Exception as e:
                self.last_auth_error = e if isinstance(e, StoreError) else StoreError(str(e) or type(e).__name__)
                logger.warning("signup_failed", error=str(self.last_auth_error))
                return False
            self._start_session(user)
            return True

        await asyncio.sleep(self.settings.local_auth_delay)
        if self._find_local_account(email) is not None:
            self.last_auth_error = AlreadyExists()
            logger.info("signup_rejected", reason="already_exists")
            return False
        account = {"email": email.strip(), "password": password, "name": name, "created_at": utcnow()}
        self._local_accounts.append(account)
        self._start_session(self._local_user(account))
        return True

    def _clear_memory(self) -> None:
        self.user = None
        self.quizzes = []
        self.flashcard_sets = []
        self.quiz_attempts = []
        self.activities = []
        self.current_quiz = None
        self.current_flashcards = None

    def logout(self) -> None:
        user_id = self.user.id if self.user else None
        self._clear_memory()
        if self.gateway is not None:
            self.gateway.access_token = None
        for key in CACHE_KEYS:
            self.cache.delete(key)
        logger.info("session_ended", user_id=user_id)

    def update_profile(self, **fields) -> Optional[asyncio.Task]:
        """Apply profile changes locally first; a local account rejects an email another one uses."""
        if self.user is None:
            return None
        # avatar may be cleared; name and email may not
        updates = {k: v for k, v in fields.items() if k in PROFILE_FIELDS and (v is not None or k == "avatar")}
        if not self.remote_enabled:
            self._update_local_account(updates)
        self.user = self.user.model_copy(update=updates)
        self._persist_session()

        remote_fields = {k: updates[k] for k in REMOTE_PROFILE_FIELDS if k in updates}
        if not remote_fields:
            return None
        return self._mirror("update_profile", lambda uid: self.gateway.update_account(uid, remote_fields))

    def _update_local_account(self, updates: Dict[str, Any]) -> None:
        account = self._local_account_for(self.user.id)
        if account is None:
            return
        new_email = updates.get("email")
        if new_email is not None:
            owner = self._find_local_account(new_email)
            if owner is not None and owner is not account:
                raise AlreadyExists("Email already in use")
        account.update(updates)

    # ----------------- Collections -----------------

    def add_quiz(self, quiz: Union[Quiz, Dict[str, Any]]) -> Optional[asyncio.Task]:
        quiz = quiz if isinstance(quiz, Quiz) else Quiz.model_validate(quiz)
        self.quizzes = [quiz] + self.quizzes
        self._persist(QUIZZES_KEY, self.quizzes)
        return self._mirror("save_quiz", lambda uid: self.gateway.save_quiz(uid, quiz))

    def add_flashcard_set(self, flashcard_set: Union[FlashcardSet, Dict[str, Any]]) -> Optional[asyncio.Task]:
        if not isinstance(flashcard_set, FlashcardSet):
            flashcard_set = FlashcardSet.model_validate(flashcard_set)
        self.flashcard_sets = [flashcard_set] + self.flashcard_sets
        self._persist(FLASHCARDS_KEY, self.flashcard_sets)
        return self._mirror("save_flashcard_set", lambda uid: self.gateway.save_flashcard_set(uid, flashcard_set))

    def add_quiz_attempt(self, attempt: Union[QuizAttempt, Dict[str, Any]]) -> Optional[asyncio.Task]:
        attempt = attempt if isinstance(attempt, QuizAttempt) else QuizAttempt.model_validate(attempt)
        self.quiz_attempts = [attempt] + self.quiz_attempts
        self._persist(ATTEMPTS_KEY, self.quiz_attempts)
        return self._mirror("save_quiz_attempt", lambda uid: self.gateway.save_quiz_attempt(uid, attempt))

    def add_activity(self, **fields) -> Optional[asyncio.Task]:
        """Record a feed entry; ``id`` and ``timestamp`` are generated when absent."""
        activity = ActivityItem(**fields)
        self.activities = ([activity] + self.activities)[:ACTIVITY_LIMIT]
        self._persist(ACTIVITIES_KEY, self.activities)
        return self._mirror("save_activity", lambda uid: self.gateway.save_activity(uid, activity))

    def set_current_quiz(self, quiz: Optional[Quiz]) -> None:
        self.current_quiz = quiz

    def set_current_flashcards(self, flashcard_set: Optional[FlashcardSet]) -> None:
        self.current_flashcards = flashcard_set

    # ----------------- Quiz flow -----------------

    def submit_quiz(self, answers: Dict[str, str]) -> QuizAttempt:
        """Score the current quiz and record the attempt plus a feed entry."""
        if self.current_quiz is None:
            raise ValueError("No quiz selected")
        attempt = score_attempt(self.current_quiz, answers)
        self.add_quiz_attempt(attempt)
        self.add_activity(
            type="quiz",
            title="Completed Quiz",
            description=self.current_quiz.title,
            score=attempt_percentage(attempt),
        )
        return attempt

    def latest_attempt(self, quiz_id: Optional[str] = None) -> Optional[QuizAttempt]:
        for attempt in self.quiz_attempts:
            if quiz_id is None or attempt.quiz_id == quiz_id:
                return attempt
        return None
