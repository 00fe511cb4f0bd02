import uuid

from exam_engine.models.attempts import AttemptStatus
from exam_engine.services import attempt_service, attempt_store
from exam_engine.services.scoring import ScoringRunner
from exam_engine.services.submission import SubmissionCoordinator, SubmitOutcome, SubmitTrigger
from exam_engine.services.sweeper import ExpirySweeper
from exam_engine.timeutils import as_utc

from helpers import CountingHook, at


def test_sweeper_auto_submits_expired_attempt(make_quiz, coordinator, session_factory, hook, db, student_id):
    """10:05 시작, 10:35 deadline. 10:36 tick 에서 AUTO_SUBMITTED"""
    quiz = make_quiz()
    attempt_service.start_attempt(db, student_id, quiz.id, at(10, 5))
    sweeper = ExpirySweeper(coordinator, session_factory)

    assert sweeper.tick(at(10, 34)) == 0
    assert sweeper.tick(at(10, 36)) == 1

    attempt = attempt_store.get_attempt(db, quiz.id, student_id)
    assert attempt.status == AttemptStatus.AUTO_SUBMITTED.value
    assert as_utc(attempt.submission_time) == at(10, 36)
    assert hook.calls == [(quiz.id, student_id)]


def test_sweeper_handles_every_expired_attempt(make_quiz, coordinator, session_factory, db):
    quiz = make_quiz()
    students = [uuid.uuid4() for _ in range(7)]
    for i, sid in enumerate(students):
        attempt_service.start_attempt(db, sid, quiz.id, at(10, i))

    sweeper = ExpirySweeper(coordinator, session_factory)
    assert sweeper.tick(at(10, 45)) == len(students)
    # 두 번째 실행은 할 일이 없다
    assert sweeper.tick(at(10, 46)) == 0

    for sid in students:
        assert attempt_store.get_attempt(db, quiz.id, sid).status == AttemptStatus.AUTO_SUBMITTED.value


def test_sweeper_skips_quiz_without_auto_submit(make_quiz, coordinator, session_factory, db, student_id):
    quiz = make_quiz(auto_submit=False)
    attempt_service.start_attempt(db, student_id, quiz.id, at(10, 5))

    assert ExpirySweeper(coordinator, session_factory).tick(at(10, 50)) == 0
    assert attempt_store.get_attempt(db, quiz.id, student_id).status == AttemptStatus.IN_PROGRESS.value


def test_sweeper_does_not_override_user_submit(make_quiz, coordinator, session_factory, hook, db, student_id):
    quiz = make_quiz()
    attempt_service.start_attempt(db, student_id, quiz.id, at(10, 5))
    coordinator.submit(quiz.id, student_id, SubmitTrigger.USER, at(10, 34, 59))

    assert ExpirySweeper(coordinator, session_factory).tick(at(10, 35, 1)) == 0
    assert attempt_store.get_attempt(db, quiz.id, student_id).status == AttemptStatus.SUBMITTED.value
    assert len(hook.calls) == 1


def test_one_failure_does_not_stop_the_tick(make_quiz, coordinator, session_factory, db):
    quiz = make_quiz()
    broken, healthy = uuid.uuid4(), uuid.uuid4()
    attempt_service.start_attempt(db, broken, quiz.id, at(10, 1))
    attempt_service.start_attempt(db, healthy, quiz.id, at(10, 2))

    real_submit = coordinator.submit

    def flaky_submit(quiz_id, student_id, trigger, now=None, dispatch=None):
        if student_id == broken:
            raise RuntimeError("connection reset")
        return real_submit(quiz_id, student_id, trigger, now, dispatch)

    coordinator.submit = flaky_submit
    assert ExpirySweeper(coordinator, session_factory).tick(at(10, 40)) == 1

    assert attempt_store.get_attempt(db, quiz.id, broken).status == AttemptStatus.IN_PROGRESS.value
    assert attempt_store.get_attempt(db, quiz.id, healthy).status == AttemptStatus.AUTO_SUBMITTED.value

    # 다음 tick 에서 다시 시도된다
    coordinator.submit = real_submit
    assert ExpirySweeper(coordinator, session_factory).tick(at(10, 41)) == 1


def test_two_sweepers_race(make_quiz, coordinator, session_factory, db, student_id):
    quiz = make_quiz()
    attempt_service.start_attempt(db, student_id, quiz.id, at(10, 5))

    first = ExpirySweeper(coordinator, session_factory)
    second = ExpirySweeper(coordinator, session_factory)
    assert first.tick(at(10, 36)) + second.tick(at(10, 36)) == 1

    result = coordinator.submit(quiz.id, student_id, SubmitTrigger.AUTO, at(10, 37))
    assert result.outcome is SubmitOutcome.ALREADY_SUBMITTED


def test_sweeper_scores_after_all_transitions(make_quiz, session_factory, db):
    """채점 훅이 불릴 때는 이번 tick 의 만료 attempt 가 모두 이미 종료 상태"""
    quiz = make_quiz()
    first, second = uuid.uuid4(), uuid.uuid4()
    attempt_service.start_attempt(db, first, quiz.id, at(10, 1))
    attempt_service.start_attempt(db, second, quiz.id, at(10, 2))
    others = {first: second, second: first}
    seen = []

    class PeekingHook(CountingHook):
        def score(self, attempt_key, answers, bundle):
            quiz_id, student_id = attempt_key
            with session_factory() as s:
                seen.append(attempt_store.get_attempt(s, quiz_id, others[student_id]).status)
            return super().score(attempt_key, answers, bundle)

    hook = PeekingHook()
    coordinator = SubmissionCoordinator(
        scoring=ScoringRunner(hook, session_factory), session_factory=session_factory, grace_seconds=30
    )
    dispatched = []

    def dispatch(fn, *args):
        dispatched.append(args)
        fn(*args)

    assert ExpirySweeper(coordinator, session_factory, dispatch=dispatch).tick(at(10, 40)) == 2

    assert sorted(dispatched) == sorted([(quiz.id, first), (quiz.id, second)])
    assert len(hook.calls) == 2
    assert seen == [AttemptStatus.AUTO_SUBMITTED.value] * 2
