import pytest
from pydantic import ValidationError

from candidate_management import Answer, CandidateSession, CandidateStore, CandidateUpdate
from question_source import default_questions


def _started(store: CandidateStore) -> CandidateSession:
    record = store.create_candidate("Alice")
    questions = default_questions()
    return store.merge(
        CandidateUpdate(
            id=record.id,
            questions=questions,
            current_question_index=0,
            time_left=questions[0].time_limit,
            interview_status="in_progress",
        )
    )


def test_create_candidate_defaults():
    store = CandidateStore()
    record = store.create_candidate("Alice")

    assert record.name == "Alice"
    assert record.interview_status == "not_started"
    assert record.questions == [] and record.answers == []
    assert record.current_question_index == 0
    assert record.time_left is None
    assert store.get(record.id) == record


def test_duplicate_id_is_rejected():
    store = CandidateStore()
    record = store.create_candidate("Alice")
    with pytest.raises(ValueError):
        store.create(CandidateSession(id=record.id, name="Bob"))


def test_partial_merge_keeps_other_fields():
    store = CandidateStore()
    record = _started(store)

    updated = store.merge({"id": record.id, "time_left": 5})

    assert updated.time_left == 5
    assert updated.questions == record.questions
    assert updated.answers == []
    assert updated.interview_status == "in_progress"


def test_explicit_none_clears_field():
    store = CandidateStore()
    record = _started(store)

    updated = store.merge(CandidateUpdate(id=record.id, time_left=None))

    assert updated.time_left is None
    assert updated.questions == record.questions


def test_merge_unknown_candidate_is_noop():
    store = CandidateStore()
    assert store.merge({"id": "ghost", "time_left": 3}) is None
    assert store.get("ghost") is None


def test_completed_record_keeps_results():
    store = CandidateStore()
    record = _started(store)
    store.merge({"id": record.id, "interview_status": "completed", "score": 80, "summary": "Good"})

    updated = store.merge(
        {"id": record.id, "score": 10, "summary": "Changed", "answers": [], "interview_status": "in_progress", "time_left": 0}
    )

    assert updated.interview_status == "completed"
    assert updated.score == 80
    assert updated.summary == "Good"
    assert updated.time_left == 0


def test_returned_records_are_copies():
    store = CandidateStore()
    record = _started(store)

    record.answers.append(Answer(question_id="x", text="sneaky"))
    record.questions.pop()

    stored = store.get(record.id)
    assert stored.answers == []
    assert len(stored.questions) == 6


def test_reset_clears_progress_but_keeps_identity():
    store = CandidateStore()
    record = _started(store)
    store.merge({"id": record.id, "interview_status": "completed", "score": 55})

    cleared = store.reset(record.id)

    assert cleared.id == record.id
    assert cleared.name == "Alice"
    assert cleared.interview_status == "not_started"
    assert cleared.questions == []
    assert cleared.score is None
    assert cleared.time_left is None
    assert store.reset("ghost") is None


def test_list_and_delete():
    store = CandidateStore()
    first = store.create_candidate("Alice")
    second = store.create_candidate("Bob")

    assert {c.id for c in store.list_candidates()} == {first.id, second.id}
    assert store.delete(first.id) is True
    assert store.delete(first.id) is False
    assert [c.id for c in store.list_candidates()] == [second.id]


@pytest.mark.parametrize("field", ["questions", "answers", "is_paused", "interview_status"])
def test_update_rejects_clearing_required_fields(field):
    with pytest.raises(ValidationError):
        CandidateUpdate(id="c1", **{field: None})


def test_merge_rejects_cleared_questions_and_keeps_record():
    store = CandidateStore()
    record = _started(store)

    with pytest.raises(ValidationError):
        store.merge({"id": record.id, "questions": None})

    assert store.get(record.id).questions == record.questions
