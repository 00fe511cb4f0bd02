# exam_engine/models/violations.py
from sqlalchemy import Column, Text, DateTime, Uuid, ForeignKeyConstraint, Index
from exam_engine.db.base import Base
from exam_engine.models.quiz import BigIntPK


class AttemptViolation(Base):
    """
    부정행위 이벤트 로그 (append-only).
    received_at 이 기준 시각이고 client_timestamp 는 표시용으로만 보관한다.
    """
    __tablename__ = "attempt_violations"

    id = Column(BigIntPK, primary_key=True)
    quiz_id = Column(Uuid(as_uuid=True), nullable=False)
    student_id = Column(Uuid(as_uuid=True), nullable=False)
    message = Column(Text, nullable=False)
    received_at = Column(DateTime(timezone=True), nullable=False)
    client_timestamp = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        ForeignKeyConstraint(
            ["quiz_id", "student_id"],
            ["quiz_attempts.quiz_id", "quiz_attempts.student_id"],
            ondelete="CASCADE",
        ),
        Index("ix_attempt_violations_attempt", "quiz_id", "student_id", "received_at"),
    )
