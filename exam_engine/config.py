# exam_engine/config.py

import logging
from dotenv import load_dotenv
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()  # .env 파일 먼저 읽기

BASE_DIR = Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    # 환경 구분
    app_env: str = "local"
    log_level: str = "INFO"

    # DB 필수 설정
    database_url: str                        # DATABASE_URL
    db_pool_size: int = 30
    db_pool_timeout: int = 30                # 풀 고갈 시 대기 시간(초)
    db_statement_timeout_ms: int = 15000     # Postgres statement_timeout

    # 인증 (외부 IdP가 발급한 HS256 토큰)
    jwt_secret: str                          # JWT_SECRET
    jwt_algorithm: str = "HS256"

    # 시험 세션 정책
    submit_grace_seconds: int = 30           # deadline 이후 USER 제출 허용 유예
    sweeper_enabled: bool = True
    sweep_interval_seconds: int = 60
    scoring_reconcile_after_seconds: int = 300
    reconcile_batch_size: int = 100

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),  # 루트 .env 절대경로
        env_file_encoding="utf-8",
        extra="ignore",                   # 필요 없는 env 무시
    )

settings = Settings()


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


if __name__ == "__main__":
    print("BASE_DIR:", BASE_DIR)
    print("DATABASE_URL:", settings.database_url)
    print("SWEEP_INTERVAL_SECONDS:", settings.sweep_interval_seconds)
