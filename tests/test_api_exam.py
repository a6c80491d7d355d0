from datetime import timedelta

from exam_engine.database import utcnow


def _import_standalone(client, correct_index, module="general", org=None, prefix="q"):
    response = client.post("/api/questions", json={
        "text": f"{prefix} prompt",
        "choices": [f"{prefix}-{i}" for i in range(4)],
        "correctIndex": correct_index,
        "module": module,
        "organizationId": org,
        "tags": ["api"],
    })
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _flatten(series):
    blocks = []
    for block in series:
        blocks.extend(block["children"] if block.get("type") == "comprehension" else [block])
    return blocks


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["cache"] == "disabled"
    assert (body["resubmissionPolicy"], body["passThreshold"]) == ("reject", 60)


def test_import_comprehension_passage(client):
    response = client.post("/api/questions", json={
        "variant": "comprehension",
        "text": "Passage title",
        "passage": "Long passage text.",
        "module": "reading",
        "children": [
            {"text": "c1", "choices": ["a", "b"], "correctIndex": 1},
            {"text": "c2", "choices": ["a", "b", "c"], "correctIndex": 0},
        ],
    })

    assert response.status_code == 201
    body = response.json()
    assert body["variant"] == "comprehension"
    assert len(body["childIds"]) == 2


def test_import_rejects_bad_correct_index(client):
    response = client.post("/api/questions", json={
        "text": "broken", "choices": ["a", "b"], "correctIndex": 5,
    })
    assert response.status_code == 422


def test_sampled_exam_shape_hides_answers(client):
    for i in range(3):
        _import_standalone(client, i, module="Ethics", prefix=f"q{i}")

    response = client.get("/api/exam", params={"count": 5, "module": "ethics"})

    assert response.status_code == 200
    body = response.json()
    assert body["examId"]
    assert len(body["series"]) == 3
    assert set(body["series"][0]) == {"id", "text", "choices", "tags", "difficulty"}
    assert "correct" not in response.text.lower()


def test_sampling_empty_pool_is_404(client):
    response = client.get("/api/exam", params={"module": "nothing-here"})

    assert response.status_code == 404
    assert response.json()["error"] == "no_questions_available"


def test_unknown_exam_is_404(client):
    response = client.get("/api/exam", params={"examId": "missing"})

    assert response.status_code == 404
    assert response.json()["error"] == "exam_not_found"


def test_assign_render_submit_review_flow(client):
    correct = {}
    ids = []
    for i, correct_index in enumerate([1, 0, 3]):
        qid = _import_standalone(client, correct_index, org="org-a", prefix=f"q{i}")
        correct[qid] = f"q{i}-{correct_index}"
        ids.append(qid)

    assigned = client.post("/api/exam/assign", json={
        "organizationId": "org-a", "userIds": ["alice"], "questionIds": ids,
    })
    assert assigned.status_code == 201, assigned.text
    exam_id = assigned.json()["assigned"][0]["examId"]
    assert assigned.json()["questionCount"] == 3

    exam = client.get("/api/exam", params={"examId": exam_id}).json()
    assert exam["submittable"] is True
    answers = [
        {"questionId": block["id"], "choiceIndex": [c["text"] for c in block["choices"]].index(correct[block["id"]])}
        for block in _flatten(exam["series"])
    ]

    submitted = client.post("/api/exam/submit", json={"examId": exam_id, "answers": answers})
    assert submitted.status_code == 200, submitted.text
    report = submitted.json()
    assert (report["score"], report["total"], report["percentage"], report["passed"]) == (3, 3, 100, True)
    assert report["passThreshold"] == 60

    again = client.post("/api/exam/submit", json={"examId": exam_id, "answers": answers})
    assert again.status_code == 409
    assert again.json()["error"] == "already_submitted"

    review = client.get(f"/api/exam/{exam_id}/attempt")
    assert review.status_code == 200
    attempt = review.json()
    assert attempt["status"] == "finished"
    assert attempt["userId"] == "alice"
    assert [a["correctIndex"] for a in attempt["answers"]] == [1, 0, 3]

    rendered_after = client.get("/api/exam", params={"examId": exam_id}).json()
    assert rendered_after["submittable"] is False
    assert rendered_after["series"] == exam["series"]


def test_comprehension_exam_via_api(client):
    created = client.post("/api/questions", json={
        "variant": "comprehension",
        "text": "Passage",
        "passage": "Body",
        "organizationId": "org-a",
        "children": [
            {"text": "c1", "choices": ["x", "y"], "correctIndex": 1},
            {"text": "c2", "choices": ["x", "y"], "correctIndex": 0},
        ],
    }).json()

    assigned = client.post("/api/exam/assign", json={
        "organizationId": "org-a", "userIds": ["bob"], "passageId": created["id"],
    }).json()
    exam_id = assigned["assigned"][0]["examId"]
    assert assigned["questionCount"] == 2
    assert assigned["passageAssigned"] == created["id"]

    exam = client.get("/api/exam", params={"examId": exam_id}).json()
    assert len(exam["series"]) == 1
    block = exam["series"][0]
    assert block["type"] == "comprehension"
    assert [c["id"] for c in block["children"]] == created["childIds"]


def test_expired_exam_submit_is_410(client, db):
    qid = _import_standalone(client, 0)
    exam_id = client.post("/api/exam/assign", json={"userIds": ["carol"], "questionIds": [qid]}).json()["assigned"][0]["examId"]

    from exam_engine.models import ExamInstance
    row = db.query(ExamInstance).filter(ExamInstance.exam_id == exam_id).one()
    row.expires_at = utcnow() - timedelta(minutes=5)
    db.commit()

    response = client.post("/api/exam/submit", json={
        "examId": exam_id, "answers": [{"questionId": qid, "choiceIndex": 0}],
    })

    assert response.status_code == 410
    assert response.json()["error"] == "exam_expired"


def test_submit_requires_answers(client):
    response = client.post("/api/exam/submit", json={"examId": "x", "answers": []})
    assert response.status_code == 422
