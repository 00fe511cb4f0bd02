# exam_engine/services/question_store.py
"""
문항 저장소 (읽기 전용)
- 학생용 문항/섹션 조회: 정답 키는 빼고 내보낸다
- 채점용 번들: 정답 키 포함
"""
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.orm import Session

from exam_engine.models.quiz import Quiz, QuizQuestion, QuizSection


def get_quiz(db: Session, quiz_id: UUID, published_only: bool = False) -> Quiz | None:
    q = db.query(Quiz).filter(Quiz.id == quiz_id)
    if published_only:
        q = q.filter(Quiz.publish_quiz.is_(True))
    return q.populate_existing().first()


def _questions(db: Session, quiz_id: UUID) -> List[QuizQuestion]:
    return (
        db.query(QuizQuestion)
        .filter(QuizQuestion.quiz_id == quiz_id)
        .order_by(QuizQuestion.order_index)
        .all()
    )


def get_sections(db: Session, quiz_id: UUID) -> List[Dict[str, Any]]:
    sections = (
        db.query(QuizSection)
        .filter(QuizSection.quiz_id == quiz_id)
        .order_by(QuizSection.order_index)
        .all()
    )
    return [
        {"id": str(s.id), "name": s.name, "order_index": s.order_index}
        for s in sections
    ]


def get_student_questions(db: Session, quiz_id: UUID) -> List[Dict[str, Any]]:
    return [
        {
            "id": str(q.id),
            "section_id": str(q.section_id) if q.section_id else None,
            "order_index": q.order_index,
            "type": q.type,
            "question": q.question,
            "options": q.options,
            "marks": q.marks,
            "negative_marks": q.negative_marks,
        }
        for q in _questions(db, quiz_id)
    ]


def get_answer_key_bundle(db: Session, quiz_id: UUID) -> List[Dict[str, Any]]:
    """채점 훅 입력용. 학생 경로에서 호출 금지"""
    return [
        {
            "id": str(q.id),
            "type": q.type,
            "marks": q.marks,
            "negative_marks": q.negative_marks,
            "answer_key": q.answer_key,
        }
        for q in _questions(db, quiz_id)
    ]
