# exam_engine/services/scoring.py
"""
채점 훅

- ScoringHook: 외부 채점기 계약. score(attempt_key, answers, bundle) -> ScoreResult, 실패 시 예외
- KeyMatchScorer: 기본 구현 (정답 키 일치 비교)
- ScoringRunner: 조건부 UPDATE 로 채점을 선점한 쪽만 훅 호출. 실패해도 제출 상태는 그대로 두고 FAILED 기록
- ScoringReconciler: FAILED / 오래된 NOT_EVALUATED / 오래된 SCORING 선점을 주기적으로 재채점
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from exam_engine.config import settings
from exam_engine.db.base import SessionLocal
from exam_engine.services import attempt_store, question_store
from exam_engine.timeutils import utcnow

logger = logging.getLogger(__name__)

AttemptKey = Tuple[UUID, UUID]  # (quiz_id, student_id)


@dataclass(frozen=True)
class ScoreResult:
    score: Decimal
    total_score: Decimal


class ScoringHook(Protocol):
    def score(
        self,
        attempt_key: AttemptKey,
        answers: Dict[str, Any],
        bundle: List[Dict[str, Any]],
    ) -> ScoreResult: ...


def _normalize(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return frozenset(_normalize(v) for v in value)
    if value is None:
        return None
    return str(value).strip().lower()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


class KeyMatchScorer:
    """
    문항 타입별 단순 정답 비교
    - MCQ / MMCQ: 선택지 집합 일치
    - 그 외: 정답 키(또는 허용 답안 목록) 중 하나와 일치 (대소문자/앞뒤 공백 무시)
    - answer_key 가 없는 문항(서술형 등)은 0점, 배점은 총점에 포함
    - 오답(빈 답 제외) + negative_marks 면 감점. 총점은 0 미만으로 내려가지 않는다
    """

    SET_TYPES = {"MCQ", "MMCQ"}

    def _is_correct(self, qtype: str, key: Any, answer: Any) -> bool:
        if qtype in self.SET_TYPES:
            keys = key if isinstance(key, (list, tuple, set)) else [key]
            given = answer if isinstance(answer, (list, tuple, set)) else [answer]
            return _normalize(keys) == _normalize(given)
        accepted = key if isinstance(key, (list, tuple, set)) else [key]
        return _normalize(answer) in {_normalize(k) for k in accepted}

    def score(self, attempt_key, answers, bundle) -> ScoreResult:
        score = Decimal("0")
        total = Decimal("0")
        for q in bundle:
            marks = Decimal(str(q.get("marks") or 0))
            total += marks

            key = q.get("answer_key")
            answer = answers.get(q["id"])
            if key is None or _is_blank(answer):
                continue

            if self._is_correct(q.get("type", ""), key, answer):
                score += marks
            elif q.get("negative_marks"):
                score -= Decimal(str(q["negative_marks"]))

        return ScoreResult(score=max(score, Decimal("0")), total_score=total)


class ScoringRunner:
    def __init__(
        self,
        hook: Optional[ScoringHook] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        claim_timeout_seconds: int = settings.scoring_reconcile_after_seconds,
    ):
        self.hook = hook or KeyMatchScorer()
        self.session_factory = session_factory
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)

    def run(
        self, quiz_id: UUID, student_id: UUID, now: Optional[datetime] = None
    ) -> Optional[ScoreResult]:
        """
        예외를 밖으로 내보내지 않는다. 제출의 성공 여부는 채점과 무관하다.
        선점(claim_for_scoring)에 실패하면 다른 채점이 진행 중이므로 훅을 부르지 않는다.
        """
        now = now or utcnow()
        claimed = False
        try:
            with self.session_factory() as db:
                attempt = attempt_store.get_attempt(db, quiz_id, student_id)
                if attempt is None or not attempt.is_terminal:
                    logger.warning(
                        "[SCORING] skip non-terminal attempt quiz=%s student=%s", quiz_id, student_id
                    )
                    return None

                claimed = attempt_store.claim_for_scoring(
                    db, quiz_id, student_id, now, now - self.claim_timeout
                )
                if not claimed:
                    logger.info(
                        "[SCORING] already claimed or scored quiz=%s student=%s", quiz_id, student_id
                    )
                    return None

                answers = dict(attempt.response or {})
                bundle = question_store.get_answer_key_bundle(db, quiz_id)

            result = self.hook.score((quiz_id, student_id), answers, bundle)

            with self.session_factory() as db:
                attempt_store.record_score(db, quiz_id, student_id, result.score, result.total_score)

            logger.info(
                "[SCORING] scored quiz=%s student=%s score=%s/%s",
                quiz_id, student_id, result.score, result.total_score,
            )
            return result

        except Exception:
            logger.exception("[SCORING] failed quiz=%s student=%s", quiz_id, student_id)
            if not claimed:
                return None
            try:
                with self.session_factory() as db:
                    attempt_store.mark_evaluation_failed(db, quiz_id, student_id)
            except Exception:
                # 상태 기록도 실패하면 SCORING 으로 남고 선점이 오래되면 reconciler 가 다시 줍는다
                logger.exception(
                    "[SCORING] could not mark FAILED quiz=%s student=%s", quiz_id, student_id
                )
            return None


class ScoringReconciler:
    """제출은 끝났는데 점수가 없는 attempt 재채점 (out-of-band)"""

    def __init__(
        self,
        runner: ScoringRunner,
        session_factory: Callable[[], Session] = SessionLocal,
        stale_after_seconds: int = settings.scoring_reconcile_after_seconds,
        batch_size: int = settings.reconcile_batch_size,
    ):
        self.runner = runner
        self.session_factory = session_factory
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self.batch_size = batch_size

    def tick(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        with self.session_factory() as db:
            pending = attempt_store.list_unscored_attempts(db, now - self.stale_after, self.batch_size)

        if not pending:
            return 0

        logger.info("[RECONCILE] rescoring %d attempts", len(pending))
        scored = 0
        for quiz_id, student_id in pending:
            if self.runner.run(quiz_id, student_id, now) is not None:
                scored += 1
        return scored
