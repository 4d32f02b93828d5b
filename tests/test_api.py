import uuid
from datetime import timedelta

from conftest import CORRECT_ANSWERS, NOW, auth_headers


def start(client, session_id, headers):
    response = client.post(f"/api/exam-sessions/{session_id}/start", headers=headers)
    assert response.status_code == 200, response.json()
    return response.json()["data"]


def answer(client, session_id, record_id, question_id, value, headers, time_spent=10):
    return client.post(
        f"/api/exam-sessions/{session_id}/answer",
        json={"examId": record_id, "questionId": question_id, "answer": value, "timeSpent": time_spent},
        headers=headers,
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_token_is_unauthorized(client, make_session):
    session = make_session()
    response = client.post(f"/api/exam-sessions/{session.id}/start")
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"


def test_invalid_token_is_unauthorized(client, make_session):
    session = make_session()
    response = client.post(
        f"/api/exam-sessions/{session.id}/start",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


def test_full_attempt_all_correct(client, make_session, student_headers, clock):
    session = make_session()

    join = client.post(f"/api/exam-sessions/{session.id}/join", headers=student_headers)
    assert join.status_code == 200
    assert join.json() == {"success": True, "message": "Joined exam session", "data": {}}

    started = start(client, session.id, student_headers)
    record_id = started["examRecordId"]
    assert started["status"] == "in_progress"
    assert started["timeRemaining"] == 30 * 60
    assert [q["questionId"] for q in started["questions"]] == ["q1", "q2", "q3"]
    assert all("correctAnswer" not in q for q in started["questions"])

    for question_id, value in CORRECT_ANSWERS.items():
        clock.advance(seconds=20)
        response = answer(client, session.id, record_id, question_id, value, student_headers)
        assert response.status_code == 200, response.json()

    progress = client.get(f"/api/exam-sessions/{session.id}/progress", headers=student_headers)
    assert progress.json()["data"]["answeredCount"] == 3
    assert progress.json()["data"]["timeRemaining"] == 30 * 60 - 60

    clock.advance(seconds=30)
    submitted = client.post(
        f"/api/exam-sessions/{session.id}/submit",
        json={"recordId": record_id},
        headers=student_headers,
    )
    assert submitted.status_code == 200, submitted.json()
    result = submitted.json()["data"]
    assert result["score"] == result["totalPoints"] == 15
    assert result["accuracy"] == 100
    assert result["isPassed"] is True
    assert result["grade"] == "A"
    assert result["status"] == "completed"
    assert result["timeUsed"] == 90

    again = client.get(f"/api/exam/result/{record_id}", headers=student_headers)
    assert again.json()["data"] == result


def test_start_twice_returns_same_record(client, make_session, student_headers):
    session = make_session()
    first = start(client, session.id, student_headers)
    second = start(client, session.id, student_headers)
    assert second["examRecordId"] == first["examRecordId"]
    assert second["resumed"] is True


def test_start_before_window(client, make_session, student_headers):
    session = make_session(start_time=NOW + timedelta(minutes=10))
    response = client.post(f"/api/exam-sessions/{session.id}/start", headers=student_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "NOT_STARTED_YET"


def test_join_after_attempts_used_up(client, make_session, student_headers):
    session = make_session()
    record_id = start(client, session.id, student_headers)["examRecordId"]
    client.post("/api/exam/complete", json={"recordId": record_id}, headers=student_headers)

    response = client.post(f"/api/exam-sessions/{session.id}/join", headers=student_headers)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "MAX_ATTEMPTS_EXCEEDED"


def test_other_students_record_is_forbidden(client, make_session, student_headers):
    session = make_session()
    record_id = start(client, session.id, student_headers)["examRecordId"]
    intruder = auth_headers(uuid.uuid4())

    response = answer(client, session.id, record_id, "q1", "A", intruder)
    assert response.status_code == 403

    response = client.post(
        f"/api/exam-sessions/{session.id}/submit", json={"recordId": record_id}, headers=intruder
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_participant_list_is_enforced(client, make_session, student_id, student_headers):
    session = make_session(settings={"participants": [str(uuid.uuid4())]})
    response = client.post(f"/api/exam-sessions/{session.id}/join", headers=student_headers)
    assert response.status_code == 403


def test_teacher_cannot_start_graded_attempt(client, make_session, teacher_headers):
    session = make_session()
    response = client.post(f"/api/exam-sessions/{session.id}/start", headers=teacher_headers)
    assert response.status_code == 403


def test_late_answer_expires_and_submit_returns_expired_result(client, make_session, student_headers, clock):
    session = make_session()
    record_id = start(client, session.id, student_headers)["examRecordId"]
    assert answer(client, session.id, record_id, "q1", "A", student_headers).status_code == 200

    clock.advance(minutes=31)
    late = answer(client, session.id, record_id, "q2", ["A", "C"], student_headers)
    assert late.status_code == 400
    assert late.json()["error"]["code"] == "EXPIRED"

    progress = client.get(f"/api/exam-sessions/{session.id}/progress", headers=student_headers)
    assert progress.json()["data"]["status"] == "expired"
    assert progress.json()["data"]["timeRemaining"] == 0

    submitted = client.post(
        f"/api/exam-sessions/{session.id}/submit", json={"recordId": record_id}, headers=student_headers
    )
    assert submitted.status_code == 200
    assert submitted.json()["data"]["status"] == "expired"
    assert submitted.json()["data"]["score"] == 5


def test_hidden_results_return_receipt(client, make_session, student_headers):
    session = make_session(settings={"showResults": False})
    record_id = start(client, session.id, student_headers)["examRecordId"]

    response = client.post("/api/exam/complete", json={"recordId": record_id}, headers=student_headers)
    assert response.status_code == 200
    assert response.json()["data"] == {
        "examRecordId": record_id,
        "status": "completed",
        "resultsHidden": True,
    }


def test_review_disabled_hides_answers(client, make_session, student_headers, admin_headers):
    session = make_session(settings={"allowReview": False})
    record_id = start(client, session.id, student_headers)["examRecordId"]
    answer(client, session.id, record_id, "q1", "A", student_headers)

    result = client.post("/api/exam/complete", json={"recordId": record_id}, headers=student_headers)
    assert result.json()["data"]["answers"] == []
    assert result.json()["data"]["score"] == 5

    as_admin = client.get(f"/api/exam/result/{record_id}", headers=admin_headers)
    assert len(as_admin.json()["data"]["answers"]) == 3


def test_validation_error_envelope(client, make_session, student_headers):
    session = make_session()
    response = client.post(
        f"/api/exam-sessions/{session.id}/answer",
        json={"questionId": "q1", "answer": "A"},
        headers=student_headers,
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_unknown_session_is_not_found(client, student_headers):
    response = client.post(f"/api/exam-sessions/{uuid.uuid4()}/join", headers=student_headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_history_and_statistics(client, make_session, student_headers, teacher_headers):
    first = make_session(name="Quiz 1")
    second = make_session(name="Quiz 2")

    for session, value in ((first, "A"), (second, "B")):
        record_id = start(client, session.id, student_headers)["examRecordId"]
        answer(client, session.id, record_id, "q1", value, student_headers)
        client.post("/api/exam/complete", json={"recordId": record_id}, headers=student_headers)

    history = client.get("/api/exam/history?page=1&limit=1", headers=student_headers).json()["data"]
    assert len(history["records"]) == 1
    assert history["pagination"]["totalItems"] == 2
    assert history["pagination"]["totalPages"] == 2
    assert history["pagination"]["hasNextPage"] is True

    stats = client.get("/api/exam/statistics", headers=student_headers).json()["data"]
    assert stats["completedExams"] == 2
    assert stats["highestScore"] == 5
    assert stats["lowestScore"] == 0
    assert stats["averageScore"] == 2.5

    session_stats = client.get(f"/api/exam-sessions/{first.id}/statistics", headers=teacher_headers)
    assert session_stats.status_code == 200
    assert session_stats.json()["data"]["completedCount"] == 1

    denied = client.get(f"/api/exam-sessions/{first.id}/statistics", headers=student_headers)
    assert denied.status_code == 403


def test_preview_endpoints(client, make_session, teacher_headers, student_headers):
    session = make_session()
    started = client.post(f"/api/exam-sessions/{session.id}/preview-start", headers=teacher_headers)
    assert started.status_code == 200, started.json()
    preview_id = started.json()["data"]["previewRecord"]["previewId"]

    batch = client.post(
        f"/api/exam-sessions/{session.id}/preview-batch-answer",
        json={"previewId": preview_id, "answers": [
            {"questionId": qid, "answer": value, "timeSpent": 5} for qid, value in CORRECT_ANSWERS.items()
        ]},
        headers=teacher_headers,
    )
    assert batch.status_code == 200, batch.json()

    progress = client.get(
        f"/api/exam-sessions/{session.id}/preview-progress/{preview_id}", headers=teacher_headers
    )
    assert progress.json()["data"]["answeredCount"] == 3

    submitted = client.post(
        f"/api/exam-sessions/{session.id}/preview-submit",
        json={"previewId": preview_id},
        headers=teacher_headers,
    )
    assert submitted.json()["data"]["score"] == 15
    assert submitted.json()["data"]["isPreview"] is True

    result = client.get(f"/api/exam-sessions/{session.id}/preview-result/{preview_id}", headers=teacher_headers)
    assert result.json()["data"] == submitted.json()["data"]

    forbidden = client.post(f"/api/exam-sessions/{session.id}/preview-start", headers=student_headers)
    assert forbidden.status_code == 403


def test_progress_is_first_access_after_deadline(client, make_session, student_headers, clock):
    session = make_session()
    record_id = start(client, session.id, student_headers)["examRecordId"]
    answer(client, session.id, record_id, "q1", "A", student_headers)

    clock.advance(hours=2)
    progress = client.get(f"/api/exam-sessions/{session.id}/progress", headers=student_headers)
    assert progress.status_code == 200
    assert progress.json()["data"]["status"] == "expired"

    stored = client.get(f"/api/exam/result/{record_id}", headers=student_headers).json()["data"]
    assert stored["status"] == "expired"
    assert stored["score"] == 5

    clock.advance(minutes=5)
    submitted = client.post(
        f"/api/exam-sessions/{session.id}/submit", json={"recordId": record_id}, headers=student_headers
    )
    assert submitted.status_code == 200
    assert submitted.json()["data"] == stored


def test_history_seals_abandoned_attempt(client, make_session, student_headers, clock):
    session = make_session()
    record_id = start(client, session.id, student_headers)["examRecordId"]
    answer(client, session.id, record_id, "q1", "A", student_headers)

    clock.advance(minutes=45)
    history = client.get("/api/exam/history", headers=student_headers).json()["data"]
    item = history["records"][0]
    assert item["examRecordId"] == record_id
    assert item["status"] == "expired"
    assert item["score"] == 5
    assert item["endTime"] == (NOW + timedelta(minutes=30)).isoformat()

    stats = client.get("/api/exam/statistics", headers=student_headers).json()["data"]
    assert stats["completedExams"] == 1
    assert stats["highestScore"] == 5


def test_session_statistics_seal_abandoned_attempts(client, make_session, student_headers, teacher_headers, clock):
    session = make_session()
    start(client, session.id, student_headers)

    clock.advance(minutes=31)
    stats = client.get(f"/api/exam-sessions/{session.id}/statistics", headers=teacher_headers).json()["data"]
    assert stats["totalParticipants"] == 1
    assert stats["completedCount"] == 1
    assert stats["averageTime"] == 30 * 60
