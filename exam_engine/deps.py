# exam_engine/deps.py
import logging
from functools import lru_cache

from fastapi import Header, HTTPException, Depends
from exam_engine.db.base import SessionLocal
from exam_engine.services.auth import verify_bearer
from exam_engine.services.submission import SubmissionCoordinator

logger = logging.getLogger(__name__)

# ----------------------------
# DB 세션
# ----------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()  # commit 포함
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

# ----------------------------
# 현재 사용자 가져오기
# ----------------------------
def get_current_user(
    authorization: str | None = Header(None),
):
    try:
        claims = verify_bearer(authorization)
    except ValueError as e:
        logger.info("verify_bearer failed >>> %r", e)
        raise HTTPException(status_code=401, detail="unauthorized")

    return {
        "id": claims["user_id"],
        "email": claims.get("email"),
        "role": claims["role"],
    }


def get_current_student(user=Depends(get_current_user)):
    if user["role"] != "student":
        raise HTTPException(
            status_code=403,
            detail={"message": "forbidden", "detail": "Only students can take quizzes"},
        )
    return user

# ----------------------------
# 제출 coordinator (프로세스당 1개)
# ----------------------------
@lru_cache
def get_coordinator() -> SubmissionCoordinator:
    return SubmissionCoordinator()
