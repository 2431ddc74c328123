from fastapi.testclient import TestClient

from api.routes import set_manager
from api_server import app
from question_source import GenerationFailure
from services.sessions import SessionManager


def test_full_interview_over_http(store, fake_source, fake_scoring):
    fake_source.error = GenerationFailure("provider offline")
    fake_scoring.scores = [8, 6, 7, 9, 5, 10]
    set_manager(SessionManager(store, fake_source, fake_scoring))

    with TestClient(app) as client:
        created = client.post("/api/candidates", json={"name": "Alice"})
        assert created.status_code == 200
        candidate_id = created.json()["candidate"]["id"]

        view = client.get(f"/api/candidates/{candidate_id}").json()
        assert [n["kind"] for n in view["notices"]] == ["generation_failure"]
        assert [q["time_limit"] for q in view["candidate"]["questions"]] == [20, 20, 60, 60, 120, 120]
        assert view["candidate"]["time_left"] == 20
        assert view["timer_running"] is True

        for index in range(6):
            client.put(f"/api/candidates/{candidate_id}/draft", json={"text": f"Answer {index + 1}"})
            view = client.post(f"/api/candidates/{candidate_id}/submit", json={"index": index}).json()
            assert len(view["candidate"]["answers"]) == index + 1

        candidate = view["candidate"]
        assert candidate["interview_status"] == "completed"
        assert candidate["score"] == 75
        assert candidate["summary"] == "Solid fundamentals."
        assert [a["text"] for a in candidate["answers"]] == [f"Answer {i}" for i in range(1, 7)]
        assert view["timer_running"] is False

        stale = client.post(f"/api/candidates/{candidate_id}/submit", json={"index": 5, "text": "late"}).json()
        assert len(stale["candidate"]["answers"]) == 6

    assert store.get(candidate_id).score == 75


def test_health_reports_routes(monkeypatch):
    monkeypatch.delenv("PERPLEXITY_API_KEY", raising=False)
    with TestClient(app) as client:
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "api_keys": {"perplexity-json": False, "perplexity-text": False},
        }

        assert client.post("/api/health/llm/missing").status_code == 404
        probe = client.post("/api/health/llm/perplexity-json").json()
        assert probe["success"] is False
