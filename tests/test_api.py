from redis.exceptions import ConnectionError as RedisConnectionError

from examcore.api import submissions as submissions_api
from examcore.core.config import settings


def _paper(client, auth, **body):
    body.setdefault("title", "Practice")
    r = client.post("/v1/papers", json=body, headers=auth("author1", "author"))
    assert r.status_code == 201, r.text
    return r.json()


def _start(client, auth, paper_id, user="u1"):
    r = client.post("/v1/submissions", json={"paper_id": paper_id}, headers=auth(user))
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_mock_login_issues_usable_token(client, catalog):
    r = client.post("/v1/auth/mock-login", json={"user_id": "u1", "roles": ["student"]})
    assert r.status_code == 200
    token = r.json()["access_token"]
    r = client.get("/v1/analytics/summary", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200


def test_requests_without_token_are_rejected(client):
    assert client.get("/v1/analytics/summary").status_code in (401, 403)


def test_invalid_token(client):
    r = client.get("/v1/analytics/summary", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json()["error"]["type"] == "http_error"


def test_students_cannot_author_papers(client, catalog, auth):
    r = client.post("/v1/papers", json={"title": "Nope"}, headers=auth("u1"))
    assert r.status_code == 403


def test_paper_validation_error_envelope(client, catalog, auth):
    r = client.post("/v1/papers", json={"title": ""}, headers=auth("author1", "author"))
    assert r.status_code == 422
    body = r.json()["error"]
    assert body["type"] == "validation_error"
    assert body["details"]


def test_paper_crud(client, catalog, auth):
    created = _paper(client, auth, title="Algebra", subject_ids=["math"], topic_ids=["algebra"], time_limit_min=30)
    assert created["question_count"] == 0
    r = client.get(f"/v1/papers/{created['id']}", headers=auth("u1"))
    assert r.status_code == 200
    assert r.json()["subject_ids"] == ["math"]

    r = client.get("/v1/papers", params={"subject_id": "math"}, headers=auth("u1"))
    assert r.json()["total"] == 1


def test_unknown_paper_envelope(client, catalog, auth):
    r = client.post("/v1/submissions", json={"paper_id": "missing"}, headers=auth("u1"))
    assert r.status_code == 404
    assert r.json() == {"error": {"message": "Exam paper missing not found", "type": "not_found", "status_code": 404}}


def test_full_attempt(client, catalog, auth):
    paper = _paper(client, auth, question_ids=["q1", "q2"])
    started = _start(client, auth, paper["id"])
    assert started["question_ids"] == ["q1", "q2"]
    assert started["total_questions"] == 2
    sid = started["submission_id"]

    r = client.put(f"/v1/submissions/{sid}/answers/q1", json={"selected_option_id": "q1-a"}, headers=auth("u1"))
    assert r.status_code == 200
    assert r.json()["is_correct"] is True
    r = client.put(f"/v1/submissions/{sid}/answers/q2", json={"selected_option_id": "q2-c"}, headers=auth("u1"))
    assert r.json()["is_correct"] is False

    r = client.post(f"/v1/submissions/{sid}/finalize", headers=auth("u1"))
    assert r.status_code == 200
    result = r.json()
    assert result["status"] == "finalized"
    assert result["correct_count"] == 1
    assert result["score_percent"] == 50.0

    detail = client.get(f"/v1/submissions/{sid}", headers=auth("u1")).json()
    assert [a["question_id"] for a in detail["answers"]] == ["q1", "q2"]

    latest = client.get(f"/v1/papers/{paper['id']}/result", headers=auth("u1")).json()
    assert latest["id"] == sid
    assert latest["paper_title"] == "Practice"
    assert [(a["question_id"], a["selected_option"]["id"], a["correct_option"]["id"]) for a in latest["answers"]] == [
        ("q1", "q1-a", "q1-a"),
        ("q2", "q2-c", "q2-a"),
    ]

    history = client.get("/v1/submissions", params={"kind": "practice"}, headers=auth("u1")).json()
    assert history["total"] == 1

    subjects = client.get("/v1/analytics/subject", headers=auth("u1")).json()
    assert subjects == [{"dimension_id": "math", "dimension_name": "Mathematics", "total": 2, "correct": 1, "score_percent": 50.0}]

    summary = client.get("/v1/analytics/summary", headers=auth("u1")).json()
    assert summary == {"exams_taken": 1, "average_score": 50.0, "questions_answered": 2, "correct_answers": 1}


def test_answer_after_finalize_conflicts(client, catalog, auth):
    paper = _paper(client, auth, question_ids=["q1"])
    sid = _start(client, auth, paper["id"])["submission_id"]
    client.post(f"/v1/submissions/{sid}/finalize", headers=auth("u1"))
    r = client.put(f"/v1/submissions/{sid}/answers/q1", json={"selected_option_id": "q1-a"}, headers=auth("u1"))
    assert r.status_code == 409
    assert r.json()["error"]["type"] == "invalid_state"


def test_unknown_question_is_404(client, catalog, auth):
    paper = _paper(client, auth, question_ids=["q1"])
    sid = _start(client, auth, paper["id"])["submission_id"]
    r = client.put(f"/v1/submissions/{sid}/answers/nope", json={"selected_option_id": "x"}, headers=auth("u1"))
    assert r.status_code == 404


def test_submissions_are_private(client, catalog, auth):
    paper = _paper(client, auth, question_ids=["q1"])
    sid = _start(client, auth, paper["id"])["submission_id"]
    for method, url, kwargs in [
        ("get", f"/v1/submissions/{sid}", {}),
        ("get", f"/v1/submissions/{sid}/questions", {}),
        ("put", f"/v1/submissions/{sid}/answers/q1", {"json": {"selected_option_id": "q1-a"}}),
        ("post", f"/v1/submissions/{sid}/finalize", {}),
    ]:
        r = getattr(client, method)(url, headers=auth("intruder"), **kwargs)
        assert r.status_code == 403, url
        assert r.json()["error"]["message"] == "You do not have access to this submission"


def test_questions_hide_answers_until_finalized(client, catalog, auth):
    paper = _paper(client, auth, question_ids=["q2", "q1"])
    sid = _start(client, auth, paper["id"])["submission_id"]

    questions = client.get(f"/v1/submissions/{sid}/questions", headers=auth("u1")).json()
    assert [q["id"] for q in questions] == ["q2", "q1"]
    assert [o["id"] for o in questions[0]["options"]] == ["q2-a", "q2-b", "q2-c"]
    assert all(o["is_correct"] is None for q in questions for o in q["options"])
    assert all(q["explanation"] is None for q in questions)

    client.post(f"/v1/submissions/{sid}/finalize", headers=auth("u1"))
    questions = client.get(f"/v1/submissions/{sid}/questions", headers=auth("u1")).json()
    assert questions[0]["options"][0]["is_correct"] is True
    assert questions[0]["explanation"] == "Because q2"


def test_unknown_dimension_is_422(client, catalog, auth):
    assert client.get("/v1/analytics/chapter", headers=auth("u1")).status_code == 422


def test_timed_paper_schedules_auto_finalize(client, catalog, auth, monkeypatch):
    calls = []
    monkeypatch.setattr(settings, "AUTO_FINALIZE_ENABLED", True)
    monkeypatch.setattr(submissions_api, "schedule_auto_finalize", lambda sid, minutes: calls.append((sid, minutes)))

    timed = _paper(client, auth, question_ids=["q1"], time_limit_min=15)
    sid = _start(client, auth, timed["id"])["submission_id"]
    untimed = _paper(client, auth, question_ids=["q1"])
    _start(client, auth, untimed["id"])

    assert calls == [(sid, 15)]


def test_scheduling_failure_does_not_block_start(client, catalog, auth, monkeypatch):
    def unavailable(sid, minutes):
        raise RedisConnectionError("redis down")

    monkeypatch.setattr(settings, "AUTO_FINALIZE_ENABLED", True)
    monkeypatch.setattr(submissions_api, "schedule_auto_finalize", unavailable)

    timed = _paper(client, auth, question_ids=["q1"], time_limit_min=15)
    started = _start(client, auth, timed["id"])
    assert started["time_limit_min"] == 15


def test_mock_login_is_disabled_in_production(client, monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    r = client.post("/v1/auth/mock-login", json={"user_id": "u1", "roles": ["student"]})
    assert r.status_code == 404


def test_mock_login_rejects_unknown_roles(client):
    r = client.post("/v1/auth/mock-login", json={"user_id": "u1", "roles": ["superuser"]})
    assert r.status_code == 422


def test_submission_result_view(client, catalog, auth):
    paper = _paper(client, auth, question_ids=["q1", "q2"])
    sid = _start(client, auth, paper["id"])["submission_id"]
    client.put(f"/v1/submissions/{sid}/answers/q2", json={"selected_option_id": "q2-a"}, headers=auth("u1"))

    r = client.get(f"/v1/submissions/{sid}/result", headers=auth("u1"))
    assert r.status_code == 409

    client.post(f"/v1/submissions/{sid}/finalize", headers=auth("u1"))
    r = client.get(f"/v1/submissions/{sid}/result", headers=auth("u1"))
    assert r.status_code == 200
    body = r.json()
    assert body["score_percent"] == 50.0
    assert body["answers"] == [{
        "question_id": "q2",
        "stem": "Stem q2",
        "selected_option": {"id": "q2-a", "text": "A"},
        "correct_option": {"id": "q2-a", "text": "A"},
        "is_correct": True,
    }]
    assert client.get(f"/v1/submissions/{sid}/result", headers=auth("intruder")).status_code == 403


def test_paper_statistics_route(client, catalog, auth):
    paper = _paper(client, auth, question_ids=["q1", "q2"])
    sid = _start(client, auth, paper["id"])["submission_id"]
    client.put(f"/v1/submissions/{sid}/answers/q1", json={"selected_option_id": "q1-a"}, headers=auth("u1"))
    client.post(f"/v1/submissions/{sid}/finalize", headers=auth("u1"))
    _start(client, auth, paper["id"], user="u2")

    assert client.get(f"/v1/papers/{paper['id']}/statistics", headers=auth("u1")).status_code == 403
    r = client.get(f"/v1/papers/{paper['id']}/statistics", headers=auth("author1", "author"))
    assert r.status_code == 200
    assert r.json() == {
        "paper_id": paper["id"],
        "total_submissions": 2,
        "completed_count": 1,
        "average_score": 50.0,
        "highest_score": 50.0,
        "lowest_score": 50.0,
        "completion_rate": 50.0,
    }


def test_difficulty_and_recent_trend_routes(client, catalog, auth):
    paper = _paper(client, auth, title="Mixed", question_ids=["q1", "q2"])
    sid = _start(client, auth, paper["id"])["submission_id"]
    client.put(f"/v1/submissions/{sid}/answers/q1", json={"selected_option_id": "q1-a"}, headers=auth("u1"))
    client.put(f"/v1/submissions/{sid}/answers/q2", json={"selected_option_id": "q2-b"}, headers=auth("u1"))
    client.post(f"/v1/submissions/{sid}/finalize", headers=auth("u1"))

    rows = client.get("/v1/analytics/difficulty", headers=auth("u1")).json()
    assert {(r["dimension_id"], r["total"], r["correct"]) for r in rows} == {("easy", 1, 1), ("hard", 1, 0)}

    trend = client.get("/v1/analytics/recent", headers=auth("u1")).json()
    assert [(p["submission_id"], p["paper_title"], p["score_percent"]) for p in trend] == [(sid, "Mixed", 50.0)]
