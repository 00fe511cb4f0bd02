# exam_engine/routers/exams.py
# 학생 응시 API. 얇은 계층: 검증/전이는 services 에서 한다
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from exam_engine.deps import get_db, get_current_student, get_coordinator
from exam_engine.schemas.attempt import (
    StartAttemptRequest, SaveAnswerRequest, ViolationRequest,
    AttemptOut, AttemptDetailOut, ViolationOut, ViolationCountOut, SubmitOut,
    AutoSubmitCheckOut, QuizStatusOut,
)
from exam_engine.services import attempt_service, attempt_store, question_store
from exam_engine.services.ip_utils import get_client_ip
from exam_engine.services.session_guard import DenyReason, policy_error
from exam_engine.services.submission import SubmissionCoordinator, SubmitTrigger
from exam_engine.services.violation_recorder import record_violation
from exam_engine.timeutils import utcnow

router = APIRouter(prefix="/api/exams", tags=["exams"])


# 응시 시작 / 재접속
@router.post("/{quiz_id}/start", response_model=AttemptOut)
def start_attempt(
    quiz_id: UUID,
    request: Request,
    payload: Optional[StartAttemptRequest] = None,
    db: Session = Depends(get_db),
    user=Depends(get_current_student),
):
    client_ip = get_client_ip(
        request.headers, request.client.host if request.client else None
    )
    return attempt_service.start_attempt(
        db, user["id"], quiz_id, utcnow(),
        password=payload.password if payload else None,
        client_ip=client_ip,
    )


# 내 attempt 조회 (부정행위 로그 포함)
@router.get("/{quiz_id}/attempt", response_model=AttemptDetailOut)
def get_attempt(
    quiz_id: UUID,
    db: Session = Depends(get_db),
    user=Depends(get_current_student),
):
    attempt = attempt_service.get_attempt(db, user["id"], quiz_id)
    if attempt is None:
        raise policy_error(DenyReason.NOT_STARTED)

    violations = attempt_store.list_violations(db, quiz_id, user["id"])
    return AttemptDetailOut(
        **AttemptOut.model_validate(attempt).model_dump(),
        violations=[ViolationOut.model_validate(v) for v in violations],
    )


# 문항 조회 (정답 키 제외)
@router.get("/{quiz_id}/questions")
def get_questions(
    quiz_id: UUID,
    db: Session = Depends(get_db),
    user=Depends(get_current_student),
) -> Dict[str, List[Dict[str, Any]]]:
    return {"questions": attempt_service.get_questions(db, user["id"], quiz_id, utcnow())}


# 섹션 조회
@router.get("/{quiz_id}/sections")
def get_sections(
    quiz_id: UUID,
    db: Session = Depends(get_db),
    user=Depends(get_current_student),
) -> Dict[str, List[Dict[str, Any]]]:
    return {"sections": attempt_service.get_sections(db, user["id"], quiz_id, utcnow())}


# 답안 저장
@router.patch("/{quiz_id}/answers", response_model=AttemptOut)
def save_answer(
    quiz_id: UUID,
    payload: SaveAnswerRequest,
    db: Session = Depends(get_db),
    user=Depends(get_current_student),
):
    return attempt_service.save_answer(db, user["id"], quiz_id, payload.response_patch, utcnow())


# 부정행위 보고. 진행 중이 아니면 무시하고 현재 count 만 돌려준다
@router.post("/{quiz_id}/violations", response_model=ViolationCountOut)
def report_violation(
    quiz_id: UUID,
    payload: ViolationRequest,
    db: Session = Depends(get_db),
    user=Depends(get_current_student),
):
    count = record_violation(
        db, quiz_id, user["id"], payload.message, payload.client_timestamp, utcnow()
    )
    return {"violation_count": count}


# 제출 (USER). 재시도 안전
@router.post("/{quiz_id}/submit", response_model=SubmitOut)
def submit(
    quiz_id: UUID,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_student),
    coordinator: SubmissionCoordinator = Depends(get_coordinator),
):
    result = coordinator.submit(
        quiz_id, user["id"], SubmitTrigger.USER, utcnow(),
        dispatch=background_tasks.add_task,
    )
    return SubmitOut(outcome=result.outcome.value, attempt=AttemptOut.model_validate(result.attempt))


# 클라이언트 타이머 만료 시 수동 확인
@router.post("/{quiz_id}/auto-submit-check", response_model=AutoSubmitCheckOut)
def auto_submit_check(
    quiz_id: UUID,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_student),
    coordinator: SubmissionCoordinator = Depends(get_coordinator),
):
    submitted = coordinator.check_auto_submit(
        quiz_id, user["id"], utcnow(), dispatch=background_tasks.add_task
    )
    return {"auto_submitted": submitted}


# 학생별 퀴즈 상태 (COMPLETED|MISSED|ACTIVE|UPCOMING)
@router.get("/{quiz_id}/status", response_model=QuizStatusOut)
def quiz_status(
    quiz_id: UUID,
    db: Session = Depends(get_db),
    user=Depends(get_current_student),
):
    quiz = question_store.get_quiz(db, quiz_id, published_only=True)
    if quiz is None:
        raise policy_error(DenyReason.QUIZ_NOT_FOUND)
    status = attempt_service.student_quiz_status(db, quiz, user["id"], utcnow())
    return {"quiz_id": quiz_id, "status": status.value}
