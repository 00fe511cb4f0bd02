# exam_engine/services/session_guard.py
"""
Session Guard: 요청 단위 인가 + 응시 구간 검사

- can_start: 응시 시작(또는 재접속) 가능 여부
- can_access_content: 문항/섹션 조회 가능 여부

조회 외 부수효과 없음. attempt 생성은 attempt_service.start_attempt 에서만 한다.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from exam_engine.models.attempts import Attempt
from exam_engine.models.quiz import Quiz, QuizStudent, QuizBatch, BatchStudent, QuizLab
from exam_engine.services import attempt_store
from exam_engine.services.ip_utils import is_client_in_lab_subnets
from exam_engine.timeutils import as_utc

logger = logging.getLogger(__name__)


class DenyReason(str, enum.Enum):
    WINDOW_NOT_OPEN = "WINDOW_NOT_OPEN"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    NOT_STARTED = "NOT_STARTED"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    QUIZ_NOT_FOUND = "QUIZ_NOT_FOUND"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    NOT_ASSIGNED = "NOT_ASSIGNED"
    OUTSIDE_LAB = "OUTSIDE_LAB"
    WINDOW_EXPIRED_USE_AUTO = "WINDOW_EXPIRED_USE_AUTO"


_HTTP_STATUS = {
    DenyReason.WINDOW_NOT_OPEN: 403,
    DenyReason.ALREADY_TERMINAL: 409,
    DenyReason.NOT_STARTED: 404,
    DenyReason.DEADLINE_PASSED: 403,
    DenyReason.QUIZ_NOT_FOUND: 404,
    DenyReason.INVALID_PASSWORD: 403,
    DenyReason.NOT_ASSIGNED: 403,
    DenyReason.OUTSIDE_LAB: 403,
    DenyReason.WINDOW_EXPIRED_USE_AUTO: 409,
}

_MESSAGES = {
    DenyReason.WINDOW_NOT_OPEN: "Quiz is not open at this time",
    DenyReason.ALREADY_TERMINAL: "Quiz already submitted",
    DenyReason.NOT_STARTED: "You must start the quiz first",
    DenyReason.DEADLINE_PASSED: "Quiz time has ended",
    DenyReason.QUIZ_NOT_FOUND: "Quiz not found or not published",
    DenyReason.INVALID_PASSWORD: "Invalid quiz password",
    DenyReason.NOT_ASSIGNED: "You don't have access to this quiz",
    DenyReason.OUTSIDE_LAB: "You must be in an authorized lab to start this quiz",
    DenyReason.WINDOW_EXPIRED_USE_AUTO: "Submission window has closed; the attempt will be auto-submitted",
}


def policy_error(reason: DenyReason) -> HTTPException:
    """정책 거절 -> 클라이언트가 분기할 수 있는 reason 코드를 담은 HTTPException"""
    return HTTPException(
        status_code=_HTTP_STATUS[reason],
        detail={"message": reason.value, "detail": _MESSAGES[reason]},
    )


@dataclass
class GuardDecision:
    allow: bool
    reason: Optional[DenyReason] = None
    attempt: Optional[Attempt] = None   # allow 인데 None 이면 "새로 생성"
    quiz: Optional[Quiz] = None

    def raise_if_denied(self) -> "GuardDecision":
        if not self.allow:
            raise policy_error(self.reason)
        return self


def _deny(reason: DenyReason, **kw) -> GuardDecision:
    return GuardDecision(allow=False, reason=reason, **kw)


def _is_assigned(db: Session, quiz_id: UUID, student_id: UUID) -> bool:
    """직접 배정 또는 배치 배정. 배정 정보가 하나도 없는 퀴즈는 전체 공개"""
    direct = db.execute(
        select(QuizStudent.id).where(QuizStudent.quiz_id == quiz_id).limit(1)
    ).first()
    batches = db.execute(
        select(QuizBatch.id).where(QuizBatch.quiz_id == quiz_id).limit(1)
    ).first()
    if direct is None and batches is None:
        return True

    if db.execute(
        select(QuizStudent.id)
        .where(QuizStudent.quiz_id == quiz_id, QuizStudent.student_id == student_id)
        .limit(1)
    ).first():
        return True

    return db.execute(
        select(QuizBatch.id)
        .join(BatchStudent, BatchStudent.batch_id == QuizBatch.batch_id)
        .where(QuizBatch.quiz_id == quiz_id, BatchStudent.student_id == student_id)
        .limit(1)
    ).first() is not None


def _lab_subnets(db: Session, quiz_id: UUID) -> list[str]:
    rows = db.execute(select(QuizLab.ip_subnet).where(QuizLab.quiz_id == quiz_id)).scalars()
    return [s for s in rows if s]


def can_start(
    db: Session,
    student_id: UUID,
    quiz_id: UUID,
    now: datetime,
    password: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> GuardDecision:
    # 1) 기존 attempt 우선. 제출된 퀴즈는 항상 "이미 제출" 로 보여야 한다
    existing = attempt_store.get_attempt(db, quiz_id, student_id)
    if existing is not None:
        if existing.is_terminal:
            return _deny(DenyReason.ALREADY_TERMINAL, attempt=existing)
        # 새로고침/재접속: 타이머 유지
        return GuardDecision(allow=True, attempt=existing)

    # 2) 퀴즈 존재 + 공개 여부
    quiz = (
        db.query(Quiz)
        .filter(Quiz.id == quiz_id, Quiz.publish_quiz.is_(True))
        .first()
    )
    if quiz is None:
        return _deny(DenyReason.QUIZ_NOT_FOUND)

    # 3) 응시 구간
    if now < as_utc(quiz.window_start) or now > as_utc(quiz.window_end):
        return _deny(DenyReason.WINDOW_NOT_OPEN, quiz=quiz)

    # 4) 비밀번호
    if quiz.password and password != quiz.password:
        return _deny(DenyReason.INVALID_PASSWORD, quiz=quiz)

    # 5) 배정 여부
    if not _is_assigned(db, quiz_id, student_id):
        return _deny(DenyReason.NOT_ASSIGNED, quiz=quiz)

    # 6) 실습실 subnet
    subnets = _lab_subnets(db, quiz_id)
    if subnets and not is_client_in_lab_subnets(client_ip, subnets):
        logger.info("[GUARD] outside lab quiz=%s student=%s ip=%s", quiz_id, student_id, client_ip)
        return _deny(DenyReason.OUTSIDE_LAB, quiz=quiz)

    return GuardDecision(allow=True, quiz=quiz)


def can_access_content(
    db: Session,
    student_id: UUID,
    quiz_id: UUID,
    now: datetime,
) -> GuardDecision:
    """
    제출 이후에는 같은 경로로 문항을 다시 내주지 않는다 (정답 수집 방지).
    NOT_STARTED(404) 와 ALREADY_TERMINAL(409) 은 구분된다.
    """
    attempt = attempt_store.get_attempt(db, quiz_id, student_id)
    if attempt is None:
        return _deny(DenyReason.NOT_STARTED)
    if attempt.is_terminal:
        return _deny(DenyReason.ALREADY_TERMINAL, attempt=attempt)
    if now > as_utc(attempt.deadline):
        return _deny(DenyReason.DEADLINE_PASSED, attempt=attempt)
    return GuardDecision(allow=True, attempt=attempt)
