from datetime import datetime, timezone


def _ts(value):
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def test_admin_routes_require_token(test_client):
    response = test_client.get("/admin/years")
    assert response.status_code in (401, 403)


def test_admin_routes_reject_non_admin_token(test_client):
    from harvi.core.auth import create_access_token

    token = create_access_token(data={"sub": 7, "type": "student"})
    response = test_client.get("/admin/years", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403


def test_create_and_read_year(test_client, admin_headers):
    response = test_client.post("/admin/years", json={"id": "Y1", "name": "Year 1", "icon": "1"},
                                headers=admin_headers)
    assert response.status_code == 201
    body = response.json()
    assert body["id"] == "Y1"

    response = test_client.get("/admin/years/Y1", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "Year 1"


def test_create_with_missing_fields_is_rejected(test_client, admin_headers):
    response = test_client.post("/admin/modules", json={"id": "M1", "name": "  "}, headers=admin_headers)
    assert response.status_code == 422
    body = response.json()
    assert body["kind"] == "ValidationError"
    assert body["code"] == "MissingField"
    assert body["fields"] == ["name", "yearId"]
    assert body["retryable"] is False


def test_create_with_missing_parent_is_rejected(test_client, admin_headers):
    response = test_client.post("/admin/modules", json={"id": "M1", "name": "Cardio", "yearId": "nope"},
                                headers=admin_headers)
    assert response.status_code == 422
    body = response.json()
    assert body["kind"] == "ReferenceError"
    assert body["code"] == "MissingParent"
    assert body["field"] == "yearId"
    assert body["id"] == "nope"
    assert body["parentKind"] == "year"

    assert test_client.get("/admin/modules", headers=admin_headers).json() == []


def test_duplicate_id_is_rejected(seed, admin_headers):
    response = seed.post("/admin/subjects", json={"id": "S1", "name": "Again", "moduleId": "M1"},
                         headers=admin_headers)
    assert response.status_code == 409
    body = response.json()
    assert body["kind"] == "ConflictError"
    assert body["code"] == "DuplicateId"
    assert body["id"] == "S1"

    assert seed.get("/admin/subjects/S1", headers=admin_headers).json()["name"] == "Anatomy"


def test_invalid_question_is_rejected(test_client, admin_headers):
    response = test_client.post("/admin/lectures", json={
        "id": "L1",
        "title": "Bad",
        "questions": [{"id": "q1", "text": "?", "options": ["a", "b"], "correctAnswer": 2}],
    }, headers=admin_headers)
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "InvalidQuestion"
    assert body["field"] == "questions[0].correctAnswer"


def test_non_integer_correct_answer_is_rejected_at_request_level(test_client, admin_headers):
    response = test_client.post("/admin/lectures", json={
        "id": "L1",
        "title": "Bad",
        "questions": [{"id": "q1", "text": "?", "options": ["a", "b"], "correctAnswer": "1"}],
    }, headers=admin_headers)
    assert response.status_code == 422
    body = response.json()
    assert body["kind"] == "ValidationError"
    assert body["code"] == "InvalidRequest"
    assert body["field"].startswith("questions.0.correctAnswer")


def test_list_filters_by_parent(seed, admin_headers):
    subjects = seed.get("/admin/subjects", params={"moduleId": "M1"}, headers=admin_headers).json()
    assert [s["id"] for s in subjects] == ["S1", "S2"]

    assert seed.get("/admin/subjects", params={"moduleId": "other"}, headers=admin_headers).json() == []

    lectures = seed.get("/admin/lectures", params={"subjectId": "S1"}, headers=admin_headers).json()
    assert [lec["id"] for lec in lectures] == ["L1"]
    # Admin reads keep the answer key
    assert lectures[0]["questions"][0]["correctAnswer"] == 1


def test_update_name_keeps_created_at_and_advances_updated_at(seed, admin_headers):
    before = seed.get("/admin/subjects/S1", headers=admin_headers).json()

    response = seed.put("/admin/subjects/S1", json={"name": "Gross anatomy"}, headers=admin_headers)
    assert response.status_code == 200
    after = response.json()

    assert after["name"] == "Gross anatomy"
    assert after["moduleId"] == "M1"
    assert _ts(after["createdAt"]) == _ts(before["createdAt"])
    assert _ts(after["updatedAt"]) > _ts(before["updatedAt"])


def test_update_with_blank_required_field_is_rejected(seed, admin_headers):
    response = seed.put("/admin/years/Y1", json={"name": ""}, headers=admin_headers)
    assert response.status_code == 422
    assert response.json()["fields"] == ["name"]


def test_move_subject_to_missing_module_is_rejected(seed, admin_headers):
    response = seed.put("/admin/subjects/S1", json={"moduleId": "ghost"}, headers=admin_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "MissingParent"
    assert seed.get("/admin/subjects/S1", headers=admin_headers).json()["moduleId"] == "M1"


def test_rename_module_repoints_subjects(test_client, admin_headers):
    test_client.post("/admin/years", json={"id": "Y1", "name": "Year 1"}, headers=admin_headers)
    test_client.post("/admin/modules", json={"id": "M1", "name": "Cardio", "yearId": "Y1"}, headers=admin_headers)
    test_client.post("/admin/subjects", json={"id": "S1", "name": "Anatomy", "moduleId": "M1"},
                     headers=admin_headers)

    response = test_client.put("/admin/modules/M1", json={"id": "M1-renamed"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["id"] == "M1-renamed"

    subject = test_client.get("/admin/subjects/S1", headers=admin_headers).json()
    assert subject["moduleId"] == "M1-renamed"

    missing = test_client.get("/admin/modules/M1", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["kind"] == "NotFoundError"


def test_rename_subject_repoints_lectures_and_touches_them(seed, admin_headers):
    before = seed.get("/admin/lectures/L1", headers=admin_headers).json()

    response = seed.put("/admin/subjects/S1", json={"id": "S1-new"}, headers=admin_headers)
    assert response.status_code == 200

    lecture = seed.get("/admin/lectures/L1", headers=admin_headers).json()
    assert lecture["subjectId"] == "S1-new"
    assert _ts(lecture["updatedAt"]) > _ts(before["updatedAt"])
    # Other lectures are untouched
    assert seed.get("/admin/lectures/L2", headers=admin_headers).json()["subjectId"] == "S2"


def test_rename_year_repoints_modules(seed, admin_headers):
    response = seed.put("/admin/years/Y1", json={"id": "Y2026", "name": "Year one"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "Year one"

    module = seed.get("/admin/modules/M1", headers=admin_headers).json()
    assert module["yearId"] == "Y2026"


def test_rename_onto_existing_id_changes_nothing(seed, admin_headers):
    response = seed.put("/admin/subjects/S1", json={"id": "S2", "name": "Clobber"}, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "DuplicateId"

    s1 = seed.get("/admin/subjects/S1", headers=admin_headers).json()
    assert s1["name"] == "Anatomy"
    lectures = seed.get("/admin/lectures", params={"subjectId": "S1"}, headers=admin_headers).json()
    assert [lec["id"] for lec in lectures] == ["L1"]


def test_rename_lecture_is_allowed(seed, admin_headers):
    response = seed.put("/admin/lectures/L2", json={"id": "L2b"}, headers=admin_headers)
    assert response.status_code == 200
    assert seed.get("/admin/lectures/L2", headers=admin_headers).status_code == 404
    assert seed.get("/admin/lectures/L2b", headers=admin_headers).json()["subjectId"] == "S2"


def test_lecture_can_be_detached_from_subject(seed, admin_headers):
    response = seed.put("/admin/lectures/L2", json={"subjectId": None}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["subjectId"] is None


def test_delete_year_cascades_everything_below(test_client, admin_headers):
    test_client.post("/admin/years", json={"id": "Y1", "name": "Year 1"}, headers=admin_headers)
    test_client.post("/admin/modules", json={"id": "M1", "name": "Cardio", "yearId": "Y1"}, headers=admin_headers)
    test_client.post("/admin/subjects", json={"id": "S1", "name": "Anatomy", "moduleId": "M1"},
                     headers=admin_headers)
    test_client.post("/admin/lectures", json={
        "id": "L1",
        "title": "Heart",
        "subjectId": "S1",
        "questions": [{"id": "q1", "text": "?", "options": ["a", "b"], "correctAnswer": 0}],
    }, headers=admin_headers)

    response = test_client.delete("/admin/years/Y1", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["deleted"] == {"year": 1, "module": 1, "subject": 1, "lecture": 1}

    assert test_client.get("/api/years").json() == []
    missing = test_client.get("/api/lectures/L1")
    assert missing.status_code == 404
    assert missing.json()["kind"] == "NotFoundError"


def test_delete_subject_only_removes_its_own_lectures(seed, admin_headers):
    response = seed.delete("/admin/subjects/S1", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["deleted"] == {"subject": 1, "lecture": 1}

    remaining = [lec["id"] for lec in seed.get("/admin/lectures", headers=admin_headers).json()]
    assert sorted(remaining) == ["L-free", "L2"]
    assert seed.get("/admin/subjects/S2", headers=admin_headers).status_code == 200


def test_delete_missing_entity_is_not_found(test_client, admin_headers):
    response = test_client.delete("/admin/modules/ghost", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["id"] == "ghost"


def test_add_question_appends_in_order(seed, admin_headers):
    response = seed.post("/admin/lectures/L1/questions", json={
        "id": "q2", "text": "Which side pumps to the lungs?", "options": ["Left", "Right"], "correctAnswer": 1,
    }, headers=admin_headers)
    assert response.status_code == 201
    assert [q["id"] for q in response.json()["questions"]] == ["q1", "q2"]


def test_add_question_with_duplicate_id_is_rejected(seed, admin_headers):
    response = seed.post("/admin/lectures/L1/questions", json={
        "id": "q1", "text": "Again?", "options": ["a", "b"], "correctAnswer": 0,
    }, headers=admin_headers)
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "DuplicateId"
    assert body["field"] == "questions.id"

    lecture = seed.get("/admin/lectures/L1", headers=admin_headers).json()
    assert len(lecture["questions"]) == 1


def test_replace_questions_on_update(seed, admin_headers):
    response = seed.put("/admin/lectures/L2", json={"questions": [
        {"id": "a", "text": "One?", "options": ["x", "y", "z"], "correctAnswer": 2},
        {"id": "b", "text": "Two?", "options": ["x", "y"], "correctAnswer": 0},
    ]}, headers=admin_headers)
    assert response.status_code == 200
    assert [q["id"] for q in response.json()["questions"]] == ["a", "b"]


def test_update_with_duplicate_question_ids_is_rejected(seed, admin_headers):
    question = {"id": "a", "text": "One?", "options": ["x", "y"], "correctAnswer": 0}
    response = seed.put("/admin/lectures/L2", json={"questions": [question, question]}, headers=admin_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "InvalidQuestion"


def test_explicit_null_questions_do_not_wipe_lecture(seed, admin_headers):
    response = seed.put("/admin/lectures/L1", json={"questions": None}, headers=admin_headers)
    assert response.status_code == 422
    body = response.json()
    assert body["field"] == "questions"
    assert body["code"] == "InvalidQuestion"

    lecture = seed.get("/admin/lectures/L1", headers=admin_headers).json()
    assert [q["id"] for q in lecture["questions"]] == ["q1"]


def test_empty_question_list_clears_lecture(seed, admin_headers):
    response = seed.put("/admin/lectures/L1", json={"questions": []}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["questions"] == []


def test_update_single_question_keeps_its_position(seed, admin_headers):
    seed.post("/admin/lectures/L1/questions", json={
        "id": "q2", "text": "Valves?", "options": ["2", "4"], "correctAnswer": 1,
    }, headers=admin_headers)

    response = seed.put("/admin/lectures/L1/questions/q1", json={
        "text": "How many chambers does the heart have?", "options": ["2", "3", "4"], "correctAnswer": 2,
    }, headers=admin_headers)
    assert response.status_code == 200
    questions = response.json()["questions"]
    assert [q["id"] for q in questions] == ["q1", "q2"]
    assert questions[0] == {
        "id": "q1",
        "text": "How many chambers does the heart have?",
        "options": ["2", "3", "4"],
        "correctAnswer": 2,
    }


def test_update_single_question_validates_merged_result(seed, admin_headers):
    # q1 has two options, so index 3 is out of range
    response = seed.put("/admin/lectures/L1/questions/q1", json={"correctAnswer": 3}, headers=admin_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "InvalidQuestion"

    question = seed.get("/admin/lectures/L1", headers=admin_headers).json()["questions"][0]
    assert question["correctAnswer"] == 1


def test_rename_question_onto_sibling_id_is_rejected(seed, admin_headers):
    seed.post("/admin/lectures/L1/questions", json={
        "id": "q2", "text": "Valves?", "options": ["2", "4"], "correctAnswer": 1,
    }, headers=admin_headers)

    response = seed.put("/admin/lectures/L1/questions/q2", json={"id": "q1"}, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["field"] == "questions.id"


def test_update_unknown_question_is_not_found(seed, admin_headers):
    response = seed.put("/admin/lectures/L1/questions/q9", json={"text": "?"}, headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["id"] == "q9"


def test_delete_single_question(seed, admin_headers):
    before = seed.get("/admin/lectures/L1", headers=admin_headers).json()

    response = seed.delete("/admin/lectures/L1/questions/q1", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["questions"] == []
    assert _ts(response.json()["updatedAt"]) > _ts(before["updatedAt"])

    missing = seed.delete("/admin/lectures/L1/questions/q1", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["kind"] == "NotFoundError"


def test_question_routes_on_unknown_lecture(test_client, admin_headers):
    response = test_client.delete("/admin/lectures/ghost/questions/q1", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["id"] == "ghost"
