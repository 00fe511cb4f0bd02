"""
공용 DB 베이스/세션 팩토리.
SessionLocal, engine, Base 정의는 exam_engine.db.session 한 곳에서 관리한다.
"""
from exam_engine.db.session import engine, SessionLocal, Base

__all__ = ["engine", "SessionLocal", "Base"]
