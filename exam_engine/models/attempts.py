# exam_engine/models/attempts.py
import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, Numeric, ForeignKey, Index, Uuid, func,
)
from exam_engine.db.base import Base


class AttemptStatus(str, enum.Enum):
    # NOT_STARTED 는 row 가 없는 상태로만 표현된다
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    AUTO_SUBMITTED = "AUTO_SUBMITTED"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptStatus.IN_PROGRESS


TERMINAL_STATUSES = (AttemptStatus.SUBMITTED.value, AttemptStatus.AUTO_SUBMITTED.value)


class EvaluationStatus(str, enum.Enum):
    NOT_EVALUATED = "NOT_EVALUATED"
    SCORING = "SCORING"       # 채점기가 선점한 상태. scoring_claimed_at 이 오래되면 다시 선점 가능
    EVALUATED = "EVALUATED"
    FAILED = "FAILED"


class Attempt(Base):
    __tablename__ = "quiz_attempts"

    # (quiz_id, student_id) 자연키 = PK. 동시 start 요청의 중복 insert 를 막는다
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), primary_key=True)
    student_id = Column(Uuid(as_uuid=True), primary_key=True)

    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value)
    start_time = Column(DateTime(timezone=True), nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)
    submission_time = Column(DateTime(timezone=True), nullable=True)
    duration_sec = Column(Integer, nullable=False)

    ip = Column(JSON, nullable=True)          # 시작/재접속 시 관측된 client ip 목록
    response = Column(JSON, nullable=True)    # {question_id: answer}

    score = Column(Numeric(10, 2), nullable=True)
    total_score = Column(Numeric(10, 2), nullable=True)
    evaluation_status = Column(String(20), nullable=False, default=EvaluationStatus.NOT_EVALUATED.value)
    scoring_claimed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __table_args__ = (
        Index("ix_quiz_attempts_status_deadline", "status", "deadline"),
        Index("ix_quiz_attempts_student_id", "student_id"),
        Index("ix_quiz_attempts_evaluation_status", "evaluation_status"),
    )

    @property
    def attempt_status(self) -> AttemptStatus:
        return AttemptStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.attempt_status.is_terminal
