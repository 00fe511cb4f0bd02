# exam_engine/models/quiz.py
# 퀴즈 설정 read model. CRUD는 외부 관리 화면 소관이며 엔진은 읽기만 한다.
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, DateTime, Boolean, JSON, Float,
    ForeignKey, Index, Uuid, func,
)
from exam_engine.db.base import Base

# SQLite 는 INTEGER PRIMARY KEY 만 자동 증가
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    name = Column(String(255), nullable=False)

    # 응시 가능 구간 + 학생별 제한 시간
    window_start = Column(DateTime(timezone=True), nullable=False)
    window_end = Column(DateTime(timezone=True), nullable=False)
    duration_sec = Column(Integer, nullable=False)

    password = Column(String(255), nullable=True)
    publish_quiz = Column(Boolean, nullable=False, default=False)
    auto_submit = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __table_args__ = (
        Index("ix_quizzes_window_start", "window_start"),
        Index("ix_quizzes_window_end", "window_end"),
    )


class QuizSection(Base):
    __tablename__ = "quiz_sections"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    order_index = Column(Integer, nullable=False)


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(Uuid(as_uuid=True), ForeignKey("quiz_sections.id", ondelete="SET NULL"), nullable=True)
    order_index = Column(Integer, nullable=False)

    type = Column(String(30), nullable=False)       # MCQ|MMCQ|TRUE_FALSE|FILL_IN_BLANKS|DESCRIPTIVE ...
    question = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)           # 학생에게 보여줄 보기
    answer_key = Column(JSON, nullable=True)        # 정답. 학생 경로로는 절대 내보내지 않는다
    marks = Column(Float, nullable=False, default=1)
    negative_marks = Column(Float, nullable=True)


class QuizStudent(Base):
    """직접 배정"""
    __tablename__ = "quiz_students"

    id = Column(BigIntPK, primary_key=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)


class QuizBatch(Base):
    __tablename__ = "quiz_batches"

    id = Column(BigIntPK, primary_key=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(BigInteger, nullable=False, index=True)


class BatchStudent(Base):
    __tablename__ = "batch_students"

    id = Column(BigIntPK, primary_key=True)
    batch_id = Column(BigInteger, nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)


class QuizLab(Base):
    """실습실 제한. ip_subnet 은 CIDR 표기 (예: 10.12.16.0/24)"""
    __tablename__ = "quiz_labs"

    id = Column(BigIntPK, primary_key=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    ip_subnet = Column(String(50), nullable=True)
