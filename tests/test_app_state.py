"""
Tests for the per-session application state container
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from flashquiz.config import Settings
from flashquiz.errors import AlreadyExists, InvalidCredentials, StoreError, StoreWriteFailed
from flashquiz.schemas import Flashcard, FlashcardSet, Quiz, QuizQuestion, User, UserData
from flashquiz.services.app_state import (
    ACTIVITIES_KEY, ATTEMPTS_KEY, CACHE_KEYS, QUIZZES_KEY, TOKEN_KEY, USER_KEY, AppState, local_user_id,
)

DEMO_EMAIL = "demo@flashquiz.com"
DEMO_PASSWORD = "demo123"


def make_quiz(quiz_id="quiz-1", n=4):
    questions = [
        QuizQuestion(id=f"q{i}", question=f"Question {i}?", options=["a", "b", "c", "d"], correct_answer="a")
        for i in range(n)
    ]
    return Quiz(id=quiz_id, title="Quiz from notes.txt", questions=questions, document_name="notes.txt")


def make_set(set_id="set-1"):
    return FlashcardSet(id=set_id, title="Flashcards from notes.txt", document_name="notes.txt",
                        flashcards=[Flashcard(question="Q?", answer="A")])


@pytest.fixture
def state(local_settings, cache):
    return AppState(local_settings, cache)


@pytest.fixture
def gateway():
    gw = AsyncMock()
    gw.access_token = None
    gw.authenticate.return_value = User(id="remote-user", name="Remote", email="remote@example.com")
    gw.create_account.return_value = User(id="remote-user", name="Remote", email="remote@example.com")
    gw.load_user_data.return_value = UserData()
    return gw


@pytest.fixture
def remote_state(remote_settings, cache, gateway):
    return AppState(remote_settings, cache, gateway=gateway)


class TestLocalSession:
    @pytest.mark.anyio
    async def test_initialize_without_session(self, state):
        assert state.is_loading
        await state.initialize()
        assert not state.is_loading
        assert state.user is None
        assert state.quizzes == []

    @pytest.mark.anyio
    async def test_demo_login_has_stable_id(self, state):
        assert await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        first_id = state.user.id
        state.logout()
        assert await state.login(DEMO_EMAIL.upper(), DEMO_PASSWORD)
        assert state.user.id == first_id == local_user_id(DEMO_EMAIL)
        assert state.user.name == "Demo User"

    @pytest.mark.anyio
    async def test_wrong_password(self, state):
        assert not await state.login(DEMO_EMAIL, "wrong")
        assert state.user is None
        assert isinstance(state.last_auth_error, InvalidCredentials)

    @pytest.mark.anyio
    async def test_signup(self, state):
        assert await state.signup("Lin", "lin@example.com", "secret")
        assert state.user.email == "lin@example.com"
        state.logout()
        assert await state.login("lin@example.com", "secret")

    @pytest.mark.anyio
    async def test_signup_existing_email(self, state):
        assert not await state.signup("Someone", DEMO_EMAIL, "x")
        assert isinstance(state.last_auth_error, AlreadyExists)
        assert state.user is None

    @pytest.mark.anyio
    async def test_signup_collision_keeps_first_account(self, state):
        assert await state.signup("A", "dup@x.com", "pw-a")
        first_id = state.user.id
        state.logout()

        assert not await state.signup("B", "dup@x.com", "pw-b")
        assert await state.login("dup@x.com", "pw-a")
        assert state.user.name == "A"
        assert state.user.id == first_id

    @pytest.mark.anyio
    async def test_logout_clears_memory_and_cache(self, state, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        state.add_quiz(make_quiz())
        state.add_activity(type="upload", title="Created Quiz", description="notes.txt")
        state.set_current_quiz(state.quizzes[0])

        state.logout()

        assert state.user is None
        assert state.quizzes == []
        assert state.activities == []
        assert state.current_quiz is None
        for key in CACHE_KEYS:
            assert cache.get(key) is None

    @pytest.mark.anyio
    async def test_session_survives_reload(self, state, local_settings, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        state.add_quiz(make_quiz())
        state.add_flashcard_set(make_set())

        reloaded = AppState(local_settings, cache)
        await reloaded.initialize()

        assert reloaded.user == state.user
        assert reloaded.quizzes == state.quizzes
        assert reloaded.flashcard_sets == state.flashcard_sets
        assert reloaded.current_quiz is None

    @pytest.mark.anyio
    async def test_corrupt_cache_entry_is_dropped(self, state, local_settings, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        cache.set(QUIZZES_KEY, [{"title": "missing fields"}], expire=None)

        reloaded = AppState(local_settings, cache)
        await reloaded.initialize()

        assert reloaded.user is not None
        assert reloaded.quizzes == []

    @pytest.mark.anyio
    async def test_update_profile(self, state, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        assert state.update_profile(name="Demo Person", avatar="https://example.com/a.png") is None
        assert state.user.name == "Demo Person"
        assert cache.get(USER_KEY)["avatar"] == "https://example.com/a.png"

    def test_update_profile_signed_out(self, state):
        assert state.update_profile(name="Nobody") is None
        assert state.user is None


class TestLocalCollections:
    @pytest.mark.anyio
    async def test_newest_first_and_cached(self, state, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        assert state.add_quiz(make_quiz("first")) is None
        state.add_quiz(make_quiz("second").to_wire())
        assert [q.id for q in state.quizzes] == ["second", "first"]
        assert [q["id"] for q in cache.get(QUIZZES_KEY)] == ["second", "first"]

    @pytest.mark.anyio
    async def test_activity_feed_is_capped(self, state, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        for i in range(25):
            state.add_activity(type="upload", title=f"Upload {i}", description="doc.txt")
        assert len(state.activities) == 20
        assert state.activities[0].title == "Upload 24"
        assert state.activities[-1].title == "Upload 5"
        assert len(cache.get(ACTIVITIES_KEY)) == 20
        assert len({a.id for a in state.activities}) == 20

    @pytest.mark.anyio
    async def test_submit_quiz(self, state):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        quiz = make_quiz(n=4)
        state.add_quiz(quiz)
        state.set_current_quiz(quiz)

        attempt = state.submit_quiz({f"q{i}": "a" for i in range(4)})

        assert attempt.score == 4
        assert state.latest_attempt(quiz.id) == attempt
        assert state.stats.average_score == 100
        assert state.stats.total_quizzes == 1
        assert state.activities[0].type == "quiz"
        assert state.activities[0].title == "Completed Quiz"
        assert state.activities[0].score == 100

    @pytest.mark.anyio
    async def test_partial_score(self, state):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        state.set_current_quiz(make_quiz(n=4))
        attempt = state.submit_quiz({"q0": "a", "q1": "b"})
        assert attempt.score == 1
        assert state.activities[0].score == 25

    def test_submit_without_quiz(self, state):
        with pytest.raises(ValueError):
            state.submit_quiz({})

    def test_latest_attempt_none(self, state):
        assert state.latest_attempt() is None


class TestRemoteSession:
    @pytest.mark.anyio
    async def test_login_loads_remote_data(self, remote_state, gateway, cache):
        gateway.access_token = "token-123"
        gateway.load_user_data.return_value = UserData(quizzes=[make_quiz()])

        assert await remote_state.login("remote@example.com", "pw")

        assert remote_state.user.id == "remote-user"
        assert [q.id for q in remote_state.quizzes] == ["quiz-1"]
        assert cache.get(TOKEN_KEY) == "token-123"
        assert cache.get(QUIZZES_KEY)[0]["id"] == "quiz-1"
        gateway.load_user_data.assert_awaited_once_with("remote-user")

    @pytest.mark.anyio
    async def test_login_rejected(self, remote_state, gateway):
        gateway.authenticate.side_effect = InvalidCredentials()
        assert not await remote_state.login("remote@example.com", "bad")
        assert remote_state.user is None
        assert isinstance(remote_state.last_auth_error, InvalidCredentials)

    @pytest.mark.anyio
    async def test_signup_already_exists(self, remote_state, gateway):
        gateway.create_account.side_effect = AlreadyExists()
        assert not await remote_state.signup("R", "remote@example.com", "pw")
        assert isinstance(remote_state.last_auth_error, AlreadyExists)

    @pytest.mark.anyio
    async def test_signup_store_failure_is_distinct(self, remote_state, gateway):
        gateway.create_account.side_effect = StoreError("Gateway unreachable")
        assert not await remote_state.signup("R", "remote@example.com", "pw")
        assert isinstance(remote_state.last_auth_error, StoreError)
        assert not isinstance(remote_state.last_auth_error, AlreadyExists)

    @pytest.mark.anyio
    async def test_signup_unexpected_error_becomes_store_error(self, remote_state, gateway):
        gateway.create_account.side_effect = RuntimeError("boom")
        assert not await remote_state.signup("R", "remote@example.com", "pw")
        assert isinstance(remote_state.last_auth_error, StoreError)

    @pytest.mark.anyio
    async def test_load_failure_falls_back_to_cache(self, remote_state, gateway, cache):
        cache.set(USER_KEY, User(id="remote-user", name="Remote", email="remote@example.com").to_wire(),
                  expire=None)
        cache.set(QUIZZES_KEY, [make_quiz("cached").to_wire()], expire=None)
        gateway.load_user_data.side_effect = StoreError("down")

        assert await remote_state.login("remote@example.com", "pw")
        assert [q.id for q in remote_state.quizzes] == ["cached"]

    @pytest.mark.anyio
    async def test_login_as_other_user_ignores_previous_cache(self, remote_state, gateway, cache):
        cache.set(USER_KEY, User(id="someone-else", name="Other", email="other@example.com").to_wire(),
                  expire=None)
        cache.set(QUIZZES_KEY, [make_quiz("not-yours").to_wire()], expire=None)
        gateway.load_user_data.side_effect = StoreError("down")

        assert await remote_state.login("remote@example.com", "pw")

        assert remote_state.user.id == "remote-user"
        assert remote_state.quizzes == []
        assert cache.get(QUIZZES_KEY) is None

    @pytest.mark.anyio
    async def test_initialize_restores_token(self, remote_settings, cache, gateway):
        cache.set(USER_KEY, User(id="remote-user", name="Remote", email="remote@example.com").to_wire(),
                  expire=None)
        cache.set(TOKEN_KEY, "saved-token", expire=None)
        state = AppState(remote_settings, cache, gateway=gateway)

        await state.initialize()

        assert gateway.access_token == "saved-token"
        assert state.user.id == "remote-user"
        assert not state.is_loading
        gateway.load_user_data.assert_awaited_once_with("remote-user")

    @pytest.mark.anyio
    async def test_mutation_mirrors_remotely(self, remote_state, gateway):
        await remote_state.login("remote@example.com", "pw")
        quiz = make_quiz()

        task = remote_state.add_quiz(quiz)
        assert remote_state.quizzes == [quiz]
        result = await task

        assert result.ok
        gateway.save_quiz.assert_awaited_once_with("remote-user", quiz)

    @pytest.mark.anyio
    async def test_write_failure_keeps_local_state(self, remote_settings, cache, gateway):
        failures = []
        state = AppState(remote_settings, cache, gateway=gateway, on_write_failure=failures.append)
        gateway.save_flashcard_set.side_effect = StoreWriteFailed("save_flashcard_set: 500")
        await state.login("remote@example.com", "pw")

        result = await state.add_flashcard_set(make_set())

        assert not result.ok
        assert result.action == "save_flashcard_set"
        assert [s.id for s in state.flashcard_sets] == ["set-1"]
        assert state.write_failures == [result]
        assert failures == [result]

    @pytest.mark.anyio
    async def test_write_timeout(self, cache, gateway):
        settings = Settings(store_url="http://flashquiz.test", store_key="k", remote_timeout=0.05,
                            local_auth_delay=0)
        state = AppState(settings, cache, gateway=gateway)
        await state.login("remote@example.com", "pw")

        async def never_answers(*args):
            await asyncio.sleep(5)

        gateway.save_activity.side_effect = never_answers
        result = await state.add_activity(type="upload", title="Created Quiz", description="notes.txt")

        assert not result.ok
        assert len(state.activities) == 1

    @pytest.mark.anyio
    async def test_submit_quiz_and_drain(self, remote_state, gateway):
        await remote_state.login("remote@example.com", "pw")
        remote_state.set_current_quiz(make_quiz())
        remote_state.submit_quiz({"q0": "a"})

        results = await remote_state.drain()

        assert sorted(r.action for r in results) == ["save_activity", "save_quiz_attempt"]
        assert all(r.ok for r in results)

    @pytest.mark.anyio
    async def test_update_profile_mirrors_name_and_email_only(self, remote_state, gateway):
        await remote_state.login("remote@example.com", "pw")
        assert remote_state.update_profile(avatar="https://example.com/a.png") is None

        result = await remote_state.update_profile(name="Renamed", avatar="https://example.com/b.png")

        assert result.ok
        gateway.update_account.assert_awaited_once_with("remote-user", {"name": "Renamed"})
        assert remote_state.user.avatar == "https://example.com/b.png"

    @pytest.mark.anyio
    async def test_logout_drops_token(self, remote_state, gateway, cache):
        gateway.access_token = "token-123"
        await remote_state.login("remote@example.com", "pw")
        remote_state.logout()
        assert gateway.access_token is None
        assert cache.get(TOKEN_KEY) is None

    def test_from_settings_wires_gateway_only_when_configured(self, local_settings, remote_settings, cache):
        assert not AppState.from_settings(local_settings, cache).remote_enabled
        assert AppState.from_settings(remote_settings, cache).remote_enabled

    def test_write_without_event_loop_is_recorded(self, remote_settings, cache, gateway):
        failures = []
        state = AppState(remote_settings, cache, gateway=gateway, on_write_failure=failures.append)
        state.user = User(id="remote-user", name="Remote", email="remote@example.com")

        assert state.add_quiz(make_quiz()) is None

        assert [q.id for q in state.quizzes] == ["quiz-1"]
        assert [r.action for r in state.write_failures] == ["save_quiz"]
        assert not state.write_failures[0].ok
        assert failures == state.write_failures
        gateway.save_quiz.assert_not_called()


class TestAccountSwitching:
    @pytest.fixture
    def accounts(self):
        return [
            {"email": "a@x.com", "password": "pw-a", "name": "A"},
            {"email": "b@x.com", "password": "pw-b", "name": "B"},
        ]

    @pytest.fixture
    def multi_state(self, local_settings, cache, accounts):
        return AppState(local_settings, cache, local_accounts=accounts)

    @pytest.mark.anyio
    async def test_signup_starts_empty(self, state, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        state.add_quiz(make_quiz("demo-private"))

        assert await state.signup("Bob", "bob@example.com", "pw")

        assert state.user.email == "bob@example.com"
        assert state.quizzes == []
        assert cache.get(QUIZZES_KEY) is None

    @pytest.mark.anyio
    async def test_login_as_another_user_does_not_leak_data(self, multi_state, cache):
        await multi_state.login("a@x.com", "pw-a")
        multi_state.add_quiz(make_quiz("a-private"))
        multi_state.add_activity(type="upload", title="Created Quiz", description="notes.txt")

        assert await multi_state.login("b@x.com", "pw-b")

        assert multi_state.user.email == "b@x.com"
        assert multi_state.quizzes == []
        assert multi_state.activities == []
        assert cache.get(QUIZZES_KEY) is None

    @pytest.mark.anyio
    async def test_same_user_keeps_cached_data(self, state, local_settings, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        state.add_quiz(make_quiz("mine"))

        again = AppState(local_settings, cache)
        assert await again.login(DEMO_EMAIL, DEMO_PASSWORD)

        assert [q.id for q in again.quizzes] == ["mine"]

    @pytest.mark.anyio
    async def test_invalid_cached_attempts_are_dropped(self, state, local_settings, cache):
        await state.login(DEMO_EMAIL, DEMO_PASSWORD)
        cache.set(ATTEMPTS_KEY, [{"quizId": "q", "quizTitle": "Quiz", "score": 9, "totalQuestions": 4}],
                  expire=None)

        reloaded = AppState(local_settings, cache)
        await reloaded.initialize()

        assert reloaded.quiz_attempts == []
        assert reloaded.stats.average_score == 0

    @pytest.mark.anyio
    async def test_local_profile_change_survives_relogin(self, multi_state):
        await multi_state.login("a@x.com", "pw-a")
        user_id = multi_state.user.id
        multi_state.update_profile(name="Alice", email="alice@x.com")
        multi_state.logout()

        assert not await multi_state.login("a@x.com", "pw-a")
        assert await multi_state.login("alice@x.com", "pw-a")
        assert multi_state.user.name == "Alice"
        assert multi_state.user.id == user_id

    @pytest.mark.anyio
    async def test_local_email_must_stay_unique(self, multi_state):
        await multi_state.login("a@x.com", "pw-a")

        with pytest.raises(AlreadyExists):
            multi_state.update_profile(name="Renamed", email="B@x.com")

        assert multi_state.user.email == "a@x.com"
        assert multi_state.user.name == "A"
