"""Integration tests for the trivia API endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from tests.conftest import ALICE_SECRET, SignedClient, nip98_header, set_config


@pytest.fixture
def answers(questions) -> dict[int, int]:
    return {q.id: q.correct_index for q in questions}


@pytest.mark.asyncio
class TestAuthentication:
    """NIP-98 is required on every trivia route."""

    async def test_missing_header(self, client: AsyncClient, questions):
        response = await client.post("/api/trivia/session/start", json={"level": 1})
        assert response.status_code == 401
        assert "Missing" in response.json()["detail"]

    async def test_event_signed_for_another_url(self, client: AsyncClient, questions):
        header = nip98_header(ALICE_SECRET, "POST", "http://test/api/trivia/session/answer")
        response = await client.post(
            "/api/trivia/session/start", json={"level": 1}, headers={"Authorization": header}
        )
        assert response.status_code == 401

    async def test_forwarded_host_is_used_for_url_check(self, client: AsyncClient, questions):
        """Behind the proxy the client signs the public URL, not the internal one."""
        header = nip98_header(ALICE_SECRET, "GET", "https://island.example/api/trivia/progress")
        response = await client.get(
            "/api/trivia/progress",
            headers={
                "Authorization": header,
                "X-Forwarded-Proto": "https",
                "X-Forwarded-Host": "island.example",
            },
        )
        assert response.status_code == 200


@pytest.mark.asyncio
class TestSessionFlow:
    """POST /api/trivia/session/start and /answer."""

    async def test_full_session_unlocks_level_two(self, alice: SignedClient, answers, small_sessions):
        """Two correct answers complete level 1 and pay 10 + 15 sats."""
        response = await alice.post("/api/trivia/session/start", json={"level": 1})
        assert response.status_code == 200
        started = response.json()
        assert set(started) == {"sessionId", "questions", "level", "expiresAt"}
        assert all("correctIndex" not in q and "explanation" not in q for q in started["questions"])

        results = []
        for q in started["questions"]:
            response = await alice.post(
                "/api/trivia/session/answer",
                json={"sessionId": started["sessionId"], "questionId": q["id"], "answer": answers[q["id"]]},
            )
            assert response.status_code == 200
            results.append(response.json())

        assert [r["satsEarned"] for r in results] == [10, 15]
        assert results[-1]["levelCompleted"] is True
        assert results[-1]["levelUnlocked"] is True
        assert results[-1]["currentLevel"] == 2
        assert results[-1]["questionsRemaining"] == 0

        progress = (await alice.get("/api/trivia/progress")).json()
        assert progress["currentLevel"] == 2
        assert progress["satsEarned"] == 25
        assert progress["bestStreak"] == 2

        balance = (await alice.get("/api/wallet/balance")).json()
        assert balance["balance"] == 25

    async def test_wrong_answer_reveals_correct_option(self, alice: SignedClient, answers):
        started = (await alice.post("/api/trivia/session/start", json={"level": 1})).json()
        qid = started["questions"][0]["id"]
        response = await alice.post(
            "/api/trivia/session/answer",
            json={"sessionId": started["sessionId"], "questionId": qid, "answer": (answers[qid] + 1) % 4},
        )
        data = response.json()
        assert data["correct"] is False
        assert data["correctAnswer"] == answers[qid]
        assert data["satsEarned"] == 0
        assert data["streak"] == 0

    async def test_duplicate_answer_is_rejected(self, alice: SignedClient, answers):
        started = (await alice.post("/api/trivia/session/start", json={"level": 1})).json()
        qid = started["questions"][0]["id"]
        body = {"sessionId": started["sessionId"], "questionId": qid, "answer": answers[qid]}

        assert (await alice.post("/api/trivia/session/answer", json=body)).status_code == 200
        response = await alice.post("/api/trivia/session/answer", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "question_already_answered"

    async def test_superseded_session_returns_410(self, alice: SignedClient, answers):
        old = (await alice.post("/api/trivia/session/start", json={"level": 1})).json()
        await alice.post("/api/trivia/session/start", json={"level": 1})
        qid = old["questions"][0]["id"]

        response = await alice.post(
            "/api/trivia/session/answer",
            json={"sessionId": old["sessionId"], "questionId": qid, "answer": answers[qid]},
        )
        assert response.status_code == 410
        assert response.json()["code"] == "session_superseded"

    async def test_other_users_session_is_hidden(self, alice: SignedClient, bob: SignedClient, answers):
        started = (await alice.post("/api/trivia/session/start", json={"level": 1})).json()
        qid = started["questions"][0]["id"]

        response = await bob.post(
            "/api/trivia/session/answer",
            json={"sessionId": started["sessionId"], "questionId": qid, "answer": answers[qid]},
        )
        assert response.status_code == 404
        assert (await bob.get(f"/api/trivia/session/{started['sessionId']}")).status_code == 404

    async def test_locked_level(self, alice: SignedClient, questions):
        response = await alice.post("/api/trivia/session/start", json={"level": 2})
        assert response.status_code == 400
        assert response.json()["code"] == "level_locked"

    async def test_out_of_range_level(self, alice: SignedClient, questions):
        response = await alice.post("/api/trivia/session/start", json={"level": 9})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_level"

    async def test_answer_index_out_of_range(self, alice: SignedClient, questions):
        started = (await alice.post("/api/trivia/session/start", json={"level": 1})).json()
        response = await alice.post(
            "/api/trivia/session/answer",
            json={"sessionId": started["sessionId"], "questionId": started["questions"][0]["id"], "answer": 7},
        )
        assert response.status_code == 422

    async def test_start_rate_limited(self, alice: SignedClient, db_session, questions):
        await set_config(db_session, triviaPerHour=1)
        assert (await alice.post("/api/trivia/session/start", json={"level": 1})).status_code == 200
        response = await alice.post("/api/trivia/session/start", json={"level": 1})
        assert response.status_code == 429
        assert response.json()["code"] == "rate_limited"
        assert int(response.headers["retry-after"]) > 0


@pytest.mark.asyncio
class TestSessionState:
    """GET /api/trivia/session/{id}."""

    async def test_reports_remaining_questions(self, alice: SignedClient, answers, small_sessions):
        started = (await alice.post("/api/trivia/session/start", json={"level": 1})).json()
        first = started["questions"][0]["id"]
        await alice.post(
            "/api/trivia/session/answer",
            json={"sessionId": started["sessionId"], "questionId": first, "answer": answers[first]},
        )

        state = (await alice.get(f"/api/trivia/session/{started['sessionId']}")).json()
        assert state["answeredQuestionIds"] == [first]
        assert state["remainingQuestionIds"] == [started["questions"][1]["id"]]
        assert state["active"] is True

    async def test_new_user_progress(self, bob: SignedClient, database):
        progress = (await bob.get("/api/trivia/progress")).json()
        assert progress == {
            "currentLevel": 1,
            "questionsAnswered": 0,
            "correct": 0,
            "streak": 0,
            "bestStreak": 0,
            "satsEarned": 0,
            "levelCompleted": False,
        }
