# exam_engine/services/submission.py
"""
Submission Coordinator: IN_PROGRESS -> SUBMITTED | AUTO_SUBMITTED 를 정확히 한 번 수행

상태 기계
    IN_PROGRESS --(USER)--> SUBMITTED
    IN_PROGRESS --(AUTO)--> AUTO_SUBMITTED
    종료 상태에서 나가는 간선 없음

동시성
    학생 제출 / sweeper / 다른 탭 / 재시도가 동시에 와도 조건부 UPDATE 한 문장이 승자를 정한다.
    영향 row 1 인 호출만 SUBMITTED_NOW 를 받고 채점을 한 번 실행한다.
    나머지는 ALREADY_SUBMITTED (에러 아님).
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from exam_engine.config import settings
from exam_engine.db.base import SessionLocal
from exam_engine.models.attempts import Attempt, AttemptStatus
from exam_engine.services import attempt_store, question_store
from exam_engine.services.scoring import ScoringRunner
from exam_engine.services.session_guard import DenyReason, policy_error
from exam_engine.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


class SubmitTrigger(str, enum.Enum):
    USER = "USER"
    AUTO = "AUTO"


class SubmitOutcome(str, enum.Enum):
    SUBMITTED_NOW = "SUBMITTED_NOW"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"


_TERMINAL_FOR = {
    SubmitTrigger.USER: AttemptStatus.SUBMITTED,
    SubmitTrigger.AUTO: AttemptStatus.AUTO_SUBMITTED,
}


@dataclass
class SubmitResult:
    outcome: SubmitOutcome
    attempt: Attempt


def _inline(fn: Callable[..., Any], *args: Any) -> None:
    fn(*args)


class SubmissionCoordinator:
    def __init__(
        self,
        scoring: Optional[ScoringRunner] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        dispatch: Callable[..., None] = _inline,
        grace_seconds: int = settings.submit_grace_seconds,
    ):
        """
        Args:
            scoring: 제출 승자가 실행할 채점 러너
            dispatch: 채점 실행 방식. 기본은 즉시 실행, 라우터에서는 BackgroundTasks.add_task
            grace_seconds: deadline 이후 USER 제출을 받아주는 유예 시간
        """
        self.scoring = scoring or ScoringRunner(session_factory=session_factory)
        self.session_factory = session_factory
        self.dispatch = dispatch
        self.grace = timedelta(seconds=grace_seconds)

    def submit(
        self,
        quiz_id: UUID,
        student_id: UUID,
        trigger: SubmitTrigger,
        now: Optional[datetime] = None,
        dispatch: Optional[Callable[..., None]] = None,
    ) -> SubmitResult:
        now = now or utcnow()
        terminal = _TERMINAL_FOR[trigger]

        with self.session_factory() as db:
            attempt = attempt_store.get_attempt(db, quiz_id, student_id)
            if attempt is None:
                raise policy_error(DenyReason.NOT_STARTED)

            # 이미 종료된 경우 어느 경로로 끝났든 같은 결과를 돌려준다
            if attempt.is_terminal:
                return SubmitResult(SubmitOutcome.ALREADY_SUBMITTED, attempt)

            if trigger is SubmitTrigger.USER and now > as_utc(attempt.deadline) + self.grace:
                quiz = question_store.get_quiz(db, quiz_id)
                # auto_submit 이 꺼진 퀴즈는 sweeper 가 줍지 않으므로 늦은 제출도 받는다
                if quiz is not None and quiz.auto_submit:
                    logger.info(
                        "[SUBMIT] late user submit rejected quiz=%s student=%s deadline=%s",
                        quiz_id, student_id, attempt.deadline,
                    )
                    raise policy_error(DenyReason.WINDOW_EXPIRED_USE_AUTO)

            won = attempt_store.transition_to_terminal(db, quiz_id, student_id, terminal, now)
            current = attempt_store.get_attempt(db, quiz_id, student_id)

        if not won:
            # 경쟁에서 짐 (다른 탭 / sweeper). 정상 경로
            logger.info(
                "[SUBMIT] already terminal quiz=%s student=%s trigger=%s status=%s",
                quiz_id, student_id, trigger.value, current.status,
            )
            return SubmitResult(SubmitOutcome.ALREADY_SUBMITTED, current)

        logger.info(
            "[SUBMIT] %s quiz=%s student=%s trigger=%s",
            terminal.value, quiz_id, student_id, trigger.value,
        )
        (dispatch or self.dispatch)(self.scoring.run, quiz_id, student_id)
        return SubmitResult(SubmitOutcome.SUBMITTED_NOW, current)

    def check_auto_submit(
        self,
        quiz_id: UUID,
        student_id: UUID,
        now: Optional[datetime] = None,
        dispatch: Optional[Callable[..., None]] = None,
    ) -> bool:
        """
        클라이언트 타이머가 0 이 됐을 때 호출하는 수동 확인.
        deadline 이 지났고 auto_submit 퀴즈면 AUTO 로 제출한다.

        Returns:
            이번 호출로 AUTO_SUBMITTED 가 되었는지
        """
        now = now or utcnow()
        with self.session_factory() as db:
            attempt = attempt_store.get_attempt(db, quiz_id, student_id)
            if attempt is None or attempt.is_terminal:
                return False
            quiz = question_store.get_quiz(db, quiz_id)
            if quiz is None or not quiz.auto_submit or as_utc(attempt.deadline) > now:
                return False

        result = self.submit(quiz_id, student_id, SubmitTrigger.AUTO, now, dispatch)
        return result.outcome is SubmitOutcome.SUBMITTED_NOW
