# exam_engine/services/sweeper.py
"""
Expiry Sweeper
deadline 이 지난 IN_PROGRESS attempt 를 찾아 Submission Coordinator 로 AUTO 제출한다.

- 조회와 전이를 분리하지 않는다: 조회 결과가 오래됐어도 coordinator 의 조건부 UPDATE 가 최종 판단
- 여러 프로세스가 동시에 돌아도 안전 (이미 종료된 건 ALREADY_SUBMITTED)
- 한 건 실패가 나머지를 막지 않는다
- 채점은 이번 tick 의 전이를 모두 끝낸 뒤에 넘긴다. 느린 채점기가 다음 attempt 의 종료를 늦추지 않는다
"""
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from exam_engine.db.base import SessionLocal
from exam_engine.services import attempt_store
from exam_engine.services.submission import SubmissionCoordinator, SubmitOutcome, SubmitTrigger
from exam_engine.timeutils import utcnow

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        coordinator: SubmissionCoordinator,
        session_factory: Callable[[], Session] = SessionLocal,
        dispatch: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            dispatch: 모아 둔 채점 작업 실행 방식. 기본은 coordinator 의 dispatch
        """
        self.coordinator = coordinator
        self.session_factory = session_factory
        self.dispatch = dispatch or coordinator.dispatch

    def tick(self, now: Optional[datetime] = None) -> int:
        """
        Returns:
            이번 tick 에서 실제로 AUTO_SUBMITTED 로 전이시킨 수
        """
        now = now or utcnow()
        with self.session_factory() as db:
            expired = attempt_store.list_expired_attempts(db, now)

        if not expired:
            return 0

        logger.info("[SWEEP] found %d expired attempts to auto-submit", len(expired))

        pending: List[Tuple[Callable[..., Any], tuple]] = []

        def _defer(fn: Callable[..., Any], *args: Any) -> None:
            pending.append((fn, args))

        submitted = 0
        for quiz_id, student_id in expired:
            try:
                result = self.coordinator.submit(
                    quiz_id, student_id, SubmitTrigger.AUTO, now, dispatch=_defer
                )
            except Exception:
                logger.exception(
                    "[SWEEP] failed to auto-submit quiz=%s student=%s", quiz_id, student_id
                )
                continue

            if result.outcome is SubmitOutcome.SUBMITTED_NOW:
                submitted += 1
                logger.info(
                    "[SWEEP] auto-submitted quiz=%s student=%s deadline=%s",
                    quiz_id, student_id, result.attempt.deadline,
                )

        for fn, args in pending:
            try:
                self.dispatch(fn, *args)
            except Exception:
                # 채점 실패는 NOT_EVALUATED 로 남고 reconciler 가 다시 줍는다
                logger.exception("[SWEEP] scoring dispatch failed args=%s", args)

        return submitted
