# exam_engine/services/attempt_store.py
"""
quiz_attempts / attempt_violations 접근 계층

- 상태 전이는 조건부 UPDATE (WHERE status = 'IN_PROGRESS') 한 문장으로만 한다
- 프로세스 로컬 락은 쓰지 않는다. 원자성은 DB 에 맡긴다
- 각 함수는 호출자가 넘긴 Session 으로 동작하고, 쓰기 함수는 직접 commit 한다
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update, insert, func, literal, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from exam_engine.models.attempts import Attempt, AttemptStatus, EvaluationStatus, TERMINAL_STATUSES
from exam_engine.models.quiz import Quiz
from exam_engine.models.violations import AttemptViolation
from exam_engine.timeutils import as_utc

logger = logging.getLogger(__name__)

IN_PROGRESS = AttemptStatus.IN_PROGRESS.value


def compute_deadline(start_time: datetime, duration_sec: int, window_end: datetime) -> datetime:
    """deadline = min(start + duration, window_end)"""
    return min(as_utc(start_time) + timedelta(seconds=duration_sec), as_utc(window_end))


# ----------------------------
# 조회
# ----------------------------
def get_attempt(db: Session, quiz_id: UUID, student_id: UUID) -> Optional[Attempt]:
    return (
        db.query(Attempt)
        .filter(Attempt.quiz_id == quiz_id, Attempt.student_id == student_id)
        .populate_existing()
        .first()
    )


def list_expired_attempts(db: Session, now: datetime) -> List[Tuple[UUID, UUID]]:
    """
    sweeper 대상: IN_PROGRESS 이고 deadline 이 지났고 auto_submit 이 켜진 퀴즈
    (status, deadline) 인덱스를 탄다.
    """
    rows = db.execute(
        select(Attempt.quiz_id, Attempt.student_id)
        .join(Quiz, Quiz.id == Attempt.quiz_id)
        .where(
            Attempt.status == IN_PROGRESS,
            Attempt.deadline < now,
            Quiz.auto_submit.is_(True),
        )
        .order_by(Attempt.deadline)
    ).all()
    return [(r.quiz_id, r.student_id) for r in rows]


def list_unscored_attempts(
    db: Session, stale_before: datetime, limit: int
) -> List[Tuple[UUID, UUID]]:
    """
    채점 재시도 대상: 종료 상태이면서
    FAILED, 오래도록 NOT_EVALUATED, 또는 선점 후 오래도록 끝나지 않은 SCORING
    """
    rows = db.execute(
        select(Attempt.quiz_id, Attempt.student_id)
        .where(
            Attempt.status.in_(TERMINAL_STATUSES),
            or_(
                Attempt.evaluation_status == EvaluationStatus.FAILED.value,
                and_(
                    Attempt.evaluation_status == EvaluationStatus.NOT_EVALUATED.value,
                    Attempt.submission_time < stale_before,
                ),
                and_(
                    Attempt.evaluation_status == EvaluationStatus.SCORING.value,
                    Attempt.scoring_claimed_at < stale_before,
                ),
            ),
        )
        .order_by(Attempt.submission_time)
        .limit(limit)
    ).all()
    return [(r.quiz_id, r.student_id) for r in rows]


# ----------------------------
# 생성 (start)
# ----------------------------
def insert_attempt(
    db: Session,
    quiz: Quiz,
    student_id: UUID,
    now: datetime,
    client_ip: Optional[str] = None,
) -> Tuple[Attempt, bool]:
    """
    새 attempt insert. PK 충돌이면 경쟁에서 이긴 row 를 돌려준다.

    Returns:
        (attempt, created)
    """
    attempt = Attempt(
        quiz_id=quiz.id,
        student_id=student_id,
        status=IN_PROGRESS,
        start_time=now,
        deadline=compute_deadline(now, quiz.duration_sec, quiz.window_end),
        duration_sec=quiz.duration_sec,
        ip=[client_ip] if client_ip else [],
        response={},
        evaluation_status=EvaluationStatus.NOT_EVALUATED.value,
    )
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError:
        # 같은 학생의 다른 탭이 먼저 insert 함
        db.rollback()
        winner = get_attempt(db, quiz.id, student_id)
        if winner is None:
            raise
        logger.info(
            "[ATTEMPT] start race lost quiz=%s student=%s, returning existing row",
            quiz.id, student_id,
        )
        return winner, False

    db.refresh(attempt)
    return attempt, True


def append_ip(db: Session, attempt: Attempt, client_ip: Optional[str]) -> Attempt:
    """재접속 시 ip 이력만 추가. 시간 정보는 건드리지 않는다."""
    if not client_ip or client_ip in (attempt.ip or []):
        return attempt

    # 다른 탭의 재접속과 겹쳐도 이력이 빠지지 않도록 잠근 채로 다시 읽는다
    row = db.execute(
        select(Attempt.ip)
        .where(Attempt.quiz_id == attempt.quiz_id, Attempt.student_id == attempt.student_id)
        .with_for_update()
    ).first()
    ips = list(row.ip or []) if row is not None else []
    if client_ip in ips:
        db.rollback()
        return get_attempt(db, attempt.quiz_id, attempt.student_id)
    ips.append(client_ip)
    db.execute(
        update(Attempt)
        .where(Attempt.quiz_id == attempt.quiz_id, Attempt.student_id == attempt.student_id)
        .values(ip=ips)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return get_attempt(db, attempt.quiz_id, attempt.student_id)


# ----------------------------
# 종료 전이 (CAS)
# ----------------------------
def transition_to_terminal(
    db: Session,
    quiz_id: UUID,
    student_id: UUID,
    terminal: AttemptStatus,
    now: datetime,
) -> bool:
    """
    IN_PROGRESS -> terminal 조건부 UPDATE.
    affected rows 가 1 이면 이번 호출이 전이를 수행한 것이다.
    """
    if not terminal.is_terminal:
        raise ValueError(f"not a terminal status: {terminal}")

    result = db.execute(
        update(Attempt)
        .where(
            Attempt.quiz_id == quiz_id,
            Attempt.student_id == student_id,
            Attempt.status == IN_PROGRESS,
        )
        .values(status=terminal.value, submission_time=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


# ----------------------------
# 답안 (answer store)
# ----------------------------
def merge_response(
    db: Session, attempt: Attempt, patch: Dict, now: datetime
) -> bool:
    """
    response JSON 에 patch 를 얕게 병합.
    IN_PROGRESS 조건을 같이 걸어 종료된 attempt 는 덮어쓰지 않는다.
    병합 기준은 넘겨받은 객체가 아니라 잠근 채로 다시 읽은 현재 값이다 (탭 두 개의 자동 저장).
    """
    row = db.execute(
        select(Attempt.response)
        .where(
            Attempt.quiz_id == attempt.quiz_id,
            Attempt.student_id == attempt.student_id,
            Attempt.status == IN_PROGRESS,
        )
        .with_for_update()
    ).first()
    if row is None:
        db.rollback()
        return False

    merged = dict(row.response or {})
    merged.update(patch)
    result = db.execute(
        update(Attempt)
        .where(
            Attempt.quiz_id == attempt.quiz_id,
            Attempt.student_id == attempt.student_id,
            Attempt.status == IN_PROGRESS,
        )
        .values(response=merged, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


# ----------------------------
# 채점 결과
# ----------------------------
def claim_for_scoring(
    db: Session,
    quiz_id: UUID,
    student_id: UUID,
    now: datetime,
    reclaim_before: datetime,
) -> bool:
    """
    채점 선점 (조건부 UPDATE). 제출 직후 채점과 reconciler 가 같은 attempt 를 동시에 잡아도
    affected rows 1 인 쪽만 훅을 호출한다.
    SCORING 인데 scoring_claimed_at 이 reclaim_before 이전이면 죽은 선점으로 보고 다시 잡는다.
    """
    result = db.execute(
        update(Attempt)
        .where(
            Attempt.quiz_id == quiz_id,
            Attempt.student_id == student_id,
            Attempt.status.in_(TERMINAL_STATUSES),
            or_(
                Attempt.evaluation_status.in_(
                    (EvaluationStatus.NOT_EVALUATED.value, EvaluationStatus.FAILED.value)
                ),
                and_(
                    Attempt.evaluation_status == EvaluationStatus.SCORING.value,
                    Attempt.scoring_claimed_at < reclaim_before,
                ),
            ),
        )
        .values(evaluation_status=EvaluationStatus.SCORING.value, scoring_claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def record_score(
    db: Session, quiz_id: UUID, student_id: UUID, score: Decimal, total_score: Decimal
) -> None:
    db.execute(
        update(Attempt)
        .where(
            Attempt.quiz_id == quiz_id,
            Attempt.student_id == student_id,
            Attempt.status.in_(TERMINAL_STATUSES),
        )
        .values(
            score=score,
            total_score=total_score,
            evaluation_status=EvaluationStatus.EVALUATED.value,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()


def mark_evaluation_failed(db: Session, quiz_id: UUID, student_id: UUID) -> None:
    db.execute(
        update(Attempt)
        .where(
            Attempt.quiz_id == quiz_id,
            Attempt.student_id == student_id,
            Attempt.evaluation_status != EvaluationStatus.EVALUATED.value,
        )
        .values(evaluation_status=EvaluationStatus.FAILED.value)
        .execution_options(synchronize_session=False)
    )
    db.commit()


# ----------------------------
# 부정행위 로그
# ----------------------------
def append_violation(
    db: Session,
    quiz_id: UUID,
    student_id: UUID,
    message: str,
    received_at: datetime,
    client_timestamp: Optional[datetime] = None,
) -> bool:
    """
    INSERT ... SELECT ... WHERE status = 'IN_PROGRESS'
    상태 확인과 append 가 한 문장이라 제출과 경합해도 종료 후 로그가 붙지 않는다.
    """
    source = select(
        Attempt.quiz_id,
        Attempt.student_id,
        literal(message),
        literal(received_at, type_=AttemptViolation.received_at.type),
        literal(client_timestamp, type_=AttemptViolation.client_timestamp.type),
    ).where(
        Attempt.quiz_id == quiz_id,
        Attempt.student_id == student_id,
        Attempt.status == IN_PROGRESS,
    )
    result = db.execute(
        insert(AttemptViolation).from_select(
            ["quiz_id", "student_id", "message", "received_at", "client_timestamp"],
            source,
        )
    )
    db.commit()
    return result.rowcount == 1


def count_violations(db: Session, quiz_id: UUID, student_id: UUID) -> int:
    return db.execute(
        select(func.count(AttemptViolation.id)).where(
            AttemptViolation.quiz_id == quiz_id,
            AttemptViolation.student_id == student_id,
        )
    ).scalar_one()


def list_violations(db: Session, quiz_id: UUID, student_id: UUID) -> List[AttemptViolation]:
    return (
        db.query(AttemptViolation)
        .filter(
            AttemptViolation.quiz_id == quiz_id,
            AttemptViolation.student_id == student_id,
        )
        .order_by(AttemptViolation.received_at, AttemptViolation.id)
        .all()
    )
