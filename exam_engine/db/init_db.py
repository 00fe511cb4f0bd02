# exam_engine/db/init_db.py
# 로컬/테스트용 스키마 생성. 운영 DB 스키마는 마이그레이션으로 관리한다.
from sqlalchemy.engine import Engine

from exam_engine.db.base import Base, engine as default_engine
from exam_engine.models import quiz, attempts, violations  # noqa: F401  (테이블 등록)


def create_all(engine: Engine | None = None) -> None:
    Base.metadata.create_all(bind=engine or default_engine)


if __name__ == "__main__":
    create_all()
    print("tables:", ", ".join(sorted(Base.metadata.tables)))
