import os
import uuid
from datetime import timedelta

import pytest

# 설정 모듈 import 전에 테스트용 env 지정
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("SWEEPER_ENABLED", "false")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from exam_engine.db.init_db import create_all
from exam_engine.models.quiz import Quiz, QuizQuestion, QuizSection
from exam_engine.services.scoring import ScoringRunner
from exam_engine.services.submission import SubmissionCoordinator

from helpers import T10, CountingHook, at


@pytest.fixture
def engine(tmp_path):
    # 스레드 동시성 테스트를 위해 파일 DB 사용
    eng = create_engine(
        f"sqlite:///{tmp_path / 'exam.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_quiz(db):
    def _make(
        window_start=T10,
        window_end=at(11, 0),
        duration=timedelta(minutes=30),
        auto_submit=True,
        publish=True,
        password=None,
        questions=(),
    ):
        quiz = Quiz(
            id=uuid.uuid4(),
            name="Midterm",
            window_start=window_start,
            window_end=window_end,
            duration_sec=int(duration.total_seconds()),
            password=password,
            publish_quiz=publish,
            auto_submit=auto_submit,
        )
        db.add(quiz)
        db.flush()

        section = QuizSection(id=uuid.uuid4(), quiz_id=quiz.id, name="Part A", order_index=0)
        db.add(section)
        for i, q in enumerate(questions):
            db.add(QuizQuestion(
                id=q.get("id") or uuid.uuid4(),
                quiz_id=quiz.id,
                section_id=section.id,
                order_index=i,
                type=q.get("type", "MCQ"),
                question=q.get("question", f"Q{i + 1}"),
                options=q.get("options"),
                answer_key=q.get("answer_key"),
                marks=q.get("marks", 1),
                negative_marks=q.get("negative_marks"),
            ))
        db.commit()
        return quiz

    return _make


@pytest.fixture
def student_id():
    return uuid.uuid4()


@pytest.fixture
def hook():
    return CountingHook()


@pytest.fixture
def coordinator(session_factory, hook):
    runner = ScoringRunner(hook=hook, session_factory=session_factory)
    return SubmissionCoordinator(scoring=runner, session_factory=session_factory, grace_seconds=30)
