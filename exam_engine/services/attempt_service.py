# exam_engine/services/attempt_service.py
"""
응시 관련 비즈니스 로직
- 응시 시작 / 재접속
- 문항, 섹션 조회
- 답안 저장
- 학생별 퀴즈 상태
"""
import enum
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from exam_engine.models.attempts import Attempt
from exam_engine.models.quiz import Quiz
from exam_engine.services import attempt_store, question_store, session_guard
from exam_engine.services.session_guard import DenyReason, policy_error
from exam_engine.timeutils import as_utc

logger = logging.getLogger(__name__)


class StudentQuizStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    MISSED = "MISSED"
    ACTIVE = "ACTIVE"
    UPCOMING = "UPCOMING"


def start_attempt(
    db: Session,
    student_id: UUID,
    quiz_id: UUID,
    now: datetime,
    password: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> Attempt:
    """
    응시 시작 (재진입 가능)

    - IN_PROGRESS attempt 가 있으면 start_time / deadline 그대로 돌려준다
    - 없으면 guard 통과 후 insert. 동시 요청은 PK 충돌로 한 건만 생성된다

    Raises:
        HTTPException: WINDOW_NOT_OPEN, ALREADY_TERMINAL, QUIZ_NOT_FOUND ...
    """
    decision = session_guard.can_start(db, student_id, quiz_id, now, password, client_ip)
    if not decision.allow:
        logger.info("[START] denied quiz=%s student=%s reason=%s", quiz_id, student_id, decision.reason.value)
        raise policy_error(decision.reason)

    if decision.attempt is not None:
        logger.info("[START] resume quiz=%s student=%s", quiz_id, student_id)
        return attempt_store.append_ip(db, decision.attempt, client_ip)

    attempt, created = attempt_store.insert_attempt(db, decision.quiz, student_id, now, client_ip)
    if not created and attempt.is_terminal:
        # 경쟁에서 이긴 row 가 그 사이 제출까지 끝난 경우
        raise policy_error(DenyReason.ALREADY_TERMINAL)

    if created:
        logger.info(
            "[START] started quiz=%s student=%s deadline=%s ip=%s",
            quiz_id, student_id, attempt.deadline, client_ip,
        )
    return attempt


def get_attempt(db: Session, student_id: UUID, quiz_id: UUID) -> Optional[Attempt]:
    return attempt_store.get_attempt(db, quiz_id, student_id)


def get_questions(db: Session, student_id: UUID, quiz_id: UUID, now: datetime) -> List[Dict[str, Any]]:
    session_guard.can_access_content(db, student_id, quiz_id, now).raise_if_denied()
    return question_store.get_student_questions(db, quiz_id)


def get_sections(db: Session, student_id: UUID, quiz_id: UUID, now: datetime) -> List[Dict[str, Any]]:
    session_guard.can_access_content(db, student_id, quiz_id, now).raise_if_denied()
    return question_store.get_sections(db, quiz_id)


def save_answer(
    db: Session,
    student_id: UUID,
    quiz_id: UUID,
    patch: Dict[str, Any],
    now: datetime,
) -> Attempt:
    """
    답안 patch 병합 저장.
    guard 통과 후 제출이 끼어들면 UPDATE 조건에서 걸러지고 ALREADY_TERMINAL 로 응답한다.
    """
    decision = session_guard.can_access_content(db, student_id, quiz_id, now).raise_if_denied()

    if not attempt_store.merge_response(db, decision.attempt, patch, now):
        raise policy_error(DenyReason.ALREADY_TERMINAL)

    logger.debug("[ANSWER] saved quiz=%s student=%s keys=%s", quiz_id, student_id, list(patch))
    return attempt_store.get_attempt(db, quiz_id, student_id)


def student_quiz_status(
    db: Session, quiz: Quiz, student_id: UUID, now: datetime
) -> StudentQuizStatus:
    """
    - 제출(SUBMITTED/AUTO_SUBMITTED) -> COMPLETED
    - 시작 전 -> UPCOMING
    - 응시 구간 종료 후 미제출 -> MISSED
    - 그 외 -> ACTIVE
    """
    attempt = attempt_store.get_attempt(db, quiz.id, student_id)
    if attempt is not None and attempt.is_terminal:
        return StudentQuizStatus.COMPLETED
    if now < as_utc(quiz.window_start):
        return StudentQuizStatus.UPCOMING
    if now > as_utc(quiz.window_end):
        return StudentQuizStatus.MISSED
    return StudentQuizStatus.ACTIVE
