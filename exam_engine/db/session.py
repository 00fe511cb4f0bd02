# exam_engine/db/session.py
# SQLAlchemy 기본 세팅. DB URL은 .env의 DATABASE_URL을 사용.

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from exam_engine.config import settings  # Settings() 인스턴스

# Postgres 연결용 URL (예: postgresql+psycopg2://...)
DATABASE_URL = settings.database_url

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL 환경변수가 설정되어 있지 않습니다.")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # 테스트/로컬용. 스레드(sweeper)에서도 같은 DB를 쓰므로 check_same_thread 해제
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,                    # 끊어진 커넥션 자동 감지
        "pool_size": settings.db_pool_size,
        "max_overflow": 0,                        # 풀 크기 초과 연결 금지
        "pool_timeout": settings.db_pool_timeout, # 풀 고갈 시 대기 시간(초) 후 Timeout
        "connect_args": {
            "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
        },
    }


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
