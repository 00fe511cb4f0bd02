from datetime import timedelta
from decimal import Decimal

import pytest

from exam_engine.models.attempts import AttemptStatus, EvaluationStatus
from exam_engine.services import attempt_store

from helpers import T10, at


def test_deadline_is_start_plus_duration():
    assert attempt_store.compute_deadline(at(10, 5), 1800, at(11, 0)) == at(10, 35)


def test_deadline_capped_by_window_end():
    assert attempt_store.compute_deadline(at(10, 45), 1800, at(11, 0)) == at(11, 0)


def test_insert_duplicate_returns_winner(make_quiz, session_factory, student_id):
    quiz = make_quiz()

    with session_factory() as s1:
        first, created1 = attempt_store.insert_attempt(s1, quiz, student_id, at(10, 5))
    with session_factory() as s2:
        second, created2 = attempt_store.insert_attempt(s2, quiz, student_id, at(10, 6))

    assert created1 is True
    assert created2 is False
    assert second.start_time.replace(tzinfo=None) == at(10, 5).replace(tzinfo=None)


def test_transition_only_once(make_quiz, db, student_id):
    quiz = make_quiz()
    attempt_store.insert_attempt(db, quiz, student_id, at(10, 5))

    assert attempt_store.transition_to_terminal(
        db, quiz.id, student_id, AttemptStatus.SUBMITTED, at(10, 20)
    ) is True
    assert attempt_store.transition_to_terminal(
        db, quiz.id, student_id, AttemptStatus.AUTO_SUBMITTED, at(10, 36)
    ) is False

    attempt = attempt_store.get_attempt(db, quiz.id, student_id)
    assert attempt.status == AttemptStatus.SUBMITTED.value
    assert attempt.submission_time.replace(tzinfo=None) == at(10, 20).replace(tzinfo=None)


def test_transition_rejects_non_terminal_target(make_quiz, db, student_id):
    quiz = make_quiz()
    attempt_store.insert_attempt(db, quiz, student_id, at(10, 5))
    with pytest.raises(ValueError):
        attempt_store.transition_to_terminal(db, quiz.id, student_id, AttemptStatus.IN_PROGRESS, at(10, 6))
    assert attempt_store.get_attempt(db, quiz.id, student_id).status == AttemptStatus.IN_PROGRESS.value


def test_list_expired_uses_deadline_and_auto_submit(make_quiz, db, student_id):
    auto_quiz = make_quiz(auto_submit=True)
    manual_quiz = make_quiz(auto_submit=False)
    attempt_store.insert_attempt(db, auto_quiz, student_id, at(10, 5))
    attempt_store.insert_attempt(db, manual_quiz, student_id, at(10, 5))

    assert attempt_store.list_expired_attempts(db, at(10, 30)) == []
    assert attempt_store.list_expired_attempts(db, at(10, 36)) == [(auto_quiz.id, student_id)]


def test_append_violation_only_while_in_progress(make_quiz, db, student_id):
    quiz = make_quiz()
    attempt_store.insert_attempt(db, quiz, student_id, at(10, 5))

    assert attempt_store.append_violation(db, quiz.id, student_id, "tab_switch", at(10, 6)) is True
    attempt_store.transition_to_terminal(db, quiz.id, student_id, AttemptStatus.SUBMITTED, at(10, 7))
    assert attempt_store.append_violation(db, quiz.id, student_id, "tab_switch", at(10, 8)) is False
    assert attempt_store.count_violations(db, quiz.id, student_id) == 1


def test_merge_response_blocked_after_submit(make_quiz, db, student_id):
    quiz = make_quiz()
    attempt, _ = attempt_store.insert_attempt(db, quiz, student_id, at(10, 5))

    assert attempt_store.merge_response(db, attempt, {"q1": "A"}, at(10, 6)) is True
    attempt = attempt_store.get_attempt(db, quiz.id, student_id)
    assert attempt_store.merge_response(db, attempt, {"q2": "B"}, at(10, 7)) is True
    assert attempt_store.get_attempt(db, quiz.id, student_id).response == {"q1": "A", "q2": "B"}

    attempt_store.transition_to_terminal(db, quiz.id, student_id, AttemptStatus.SUBMITTED, at(10, 8))
    assert attempt_store.merge_response(db, attempt, {"q3": "C"}, at(10, 9)) is False


def test_list_unscored_attempts(make_quiz, db, student_id):
    quiz = make_quiz()
    attempt_store.insert_attempt(db, quiz, student_id, at(10, 5))
    attempt_store.transition_to_terminal(db, quiz.id, student_id, AttemptStatus.SUBMITTED, at(10, 20))

    # 방금 제출된 건 아직 채점 중일 수 있으므로 제외
    assert attempt_store.list_unscored_attempts(db, at(10, 19), 10) == []
    assert attempt_store.list_unscored_attempts(db, at(10, 25), 10) == [(quiz.id, student_id)]

    attempt_store.mark_evaluation_failed(db, quiz.id, student_id)
    assert attempt_store.list_unscored_attempts(db, T10 - timedelta(days=1), 10) == [(quiz.id, student_id)]


def test_merge_response_from_stale_objects_keeps_both(make_quiz, session_factory, db, student_id):
    """두 탭이 각자 읽어 둔 attempt 로 자동 저장해도 먼저 저장된 답이 사라지지 않는다"""
    quiz = make_quiz()
    attempt_store.insert_attempt(db, quiz, student_id, at(10, 5))

    with session_factory() as tab_a, session_factory() as tab_b:
        seen_a = attempt_store.get_attempt(tab_a, quiz.id, student_id)
        seen_b = attempt_store.get_attempt(tab_b, quiz.id, student_id)

        assert attempt_store.merge_response(tab_a, seen_a, {"q1": "A"}, at(10, 6)) is True
        assert attempt_store.merge_response(tab_b, seen_b, {"q2": "B"}, at(10, 6, 1)) is True

    assert attempt_store.get_attempt(db, quiz.id, student_id).response == {"q1": "A", "q2": "B"}


def test_append_ip_from_stale_objects_keeps_history(make_quiz, session_factory, db, student_id):
    quiz = make_quiz()
    attempt_store.insert_attempt(db, quiz, student_id, at(10, 5), client_ip="10.0.0.1")

    with session_factory() as tab_a, session_factory() as tab_b:
        seen_a = attempt_store.get_attempt(tab_a, quiz.id, student_id)
        seen_b = attempt_store.get_attempt(tab_b, quiz.id, student_id)

        attempt_store.append_ip(tab_a, seen_a, "10.0.0.2")
        updated = attempt_store.append_ip(tab_b, seen_b, "10.0.0.3")
        assert updated.ip == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]

        # 이미 기록된 ip 는 다시 붙지 않는다
        attempt_store.append_ip(tab_b, attempt_store.get_attempt(tab_b, quiz.id, student_id), "10.0.0.2")

    assert attempt_store.get_attempt(db, quiz.id, student_id).ip == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]


def test_claim_for_scoring_once_until_stale(make_quiz, db, student_id):
    quiz = make_quiz()
    attempt_store.insert_attempt(db, quiz, student_id, at(10, 5))

    # 진행 중인 attempt 는 선점할 수 없다
    assert attempt_store.claim_for_scoring(db, quiz.id, student_id, at(10, 6), at(10, 1)) is False

    attempt_store.transition_to_terminal(db, quiz.id, student_id, AttemptStatus.SUBMITTED, at(10, 20))
    assert attempt_store.claim_for_scoring(db, quiz.id, student_id, at(10, 21), at(10, 16)) is True
    assert attempt_store.get_attempt(db, quiz.id, student_id).evaluation_status == EvaluationStatus.SCORING.value

    # 선점이 살아 있는 동안 두 번째 선점은 실패
    assert attempt_store.claim_for_scoring(db, quiz.id, student_id, at(10, 22), at(10, 17)) is False
    # 선점 시각이 reclaim_before 보다 이전이면 다시 잡을 수 있다
    assert attempt_store.claim_for_scoring(db, quiz.id, student_id, at(10, 30), at(10, 25)) is True

    attempt_store.record_score(db, quiz.id, student_id, Decimal("1"), Decimal("1"))
    assert attempt_store.claim_for_scoring(db, quiz.id, student_id, at(11, 0), at(10, 55)) is False
