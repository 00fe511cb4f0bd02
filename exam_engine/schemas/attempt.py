from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

# -- Request --

# 응시 시작
class StartAttemptRequest(BaseModel):
    password: Optional[str] = Field(None, max_length=255, description="퀴즈 비밀번호 (설정된 경우)")

# 답안 저장 (question_id -> answer 얕은 병합)
class SaveAnswerRequest(BaseModel):
    response_patch: Dict[str, Any] = Field(..., description="문항 id 별 답안")

# 부정행위 보고
class ViolationRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=500, description="예: tab_switch, fullscreen_exit, copy_paste")
    client_timestamp: Optional[datetime] = Field(None, description="클라이언트 시각 (표시용)")


# -- Response --

class ViolationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    message: str
    received_at: datetime
    client_timestamp: Optional[datetime] = None

class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    quiz_id: UUID
    student_id: UUID
    status: str
    start_time: datetime
    deadline: datetime
    submission_time: Optional[datetime] = None
    duration_sec: int
    response: Optional[Dict[str, Any]] = None
    score: Optional[Decimal] = None
    total_score: Optional[Decimal] = None
    evaluation_status: str

class AttemptDetailOut(AttemptOut):
    violations: List[ViolationOut] = []

class ViolationCountOut(BaseModel):
    violation_count: int

class SubmitOut(BaseModel):
    outcome: str
    attempt: AttemptOut

class AutoSubmitCheckOut(BaseModel):
    auto_submitted: bool

class QuizStatusOut(BaseModel):
    quiz_id: UUID
    status: str
