# exam_engine/services/violation_recorder.py
"""
부정행위(탭 전환, 전체화면 해제, 복사/붙여넣기) 기록

- 서버 수신 시각이 기준. 클라이언트 시각은 표시용으로만 같이 저장
- 중복 제거 안 함: 로그는 증거 자료이고 count = 로그 길이
- 종료된 attempt 에는 붙지 않고 현재 count 만 돌려준다 (에러 아님)
- 횟수 초과로 자동 종료하지 않는다. 그 정책은 외부 검토 흐름 소관
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from exam_engine.services import attempt_store
from exam_engine.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


def record_violation(
    db: Session,
    quiz_id: UUID,
    student_id: UUID,
    message: str,
    client_timestamp: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> int:
    now = now or utcnow()
    appended = attempt_store.append_violation(
        db, quiz_id, student_id, message, now, as_utc(client_timestamp)
    )
    count = attempt_store.count_violations(db, quiz_id, student_id)

    if appended:
        logger.info(
            "[VIOLATION] quiz=%s student=%s count=%d message=%r",
            quiz_id, student_id, count, message,
        )
    else:
        logger.info(
            "[VIOLATION] ignored (attempt not in progress) quiz=%s student=%s", quiz_id, student_id
        )
    return count
