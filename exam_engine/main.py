# exam_engine/main.py

# ------------------------
# 환경 변수 로드
# ------------------------
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
import logging

# ------------------------
# FastAPI, CORS 미들웨어 import
# ------------------------
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exam_engine.config import settings, configure_logging
from exam_engine.deps import get_coordinator
from exam_engine.routers import exams as exams_router
from exam_engine.services.scheduler import PeriodicJob
from exam_engine.services.scoring import ScoringReconciler
from exam_engine.services.sweeper import ExpirySweeper

configure_logging()
logger = logging.getLogger(__name__)


# ------------------------
# 1) 백그라운드 작업
#    - 만료 attempt 자동 제출 (sweep_interval_seconds 마다)
#    - 채점 실패/누락 재채점
#    여러 프로세스에서 동시에 돌아도 조건부 UPDATE 덕분에 중복 전이가 없다
# ------------------------
def build_jobs() -> list[PeriodicJob]:
    coordinator = get_coordinator()
    sweeper = ExpirySweeper(coordinator)
    reconciler = ScoringReconciler(coordinator.scoring)
    return [
        PeriodicJob("expiry-sweeper", sweeper.tick, settings.sweep_interval_seconds),
        PeriodicJob("scoring-reconciler", reconciler.tick, settings.scoring_reconcile_after_seconds),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    jobs = build_jobs() if settings.sweeper_enabled else []
    for job in jobs:
        job.start()
    try:
        yield
    finally:
        for job in jobs:
            job.stop()


# ------------------------
# 2) FastAPI 앱 생성
# ------------------------
app = FastAPI(title="Exam Session API", lifespan=lifespan)

# ------------------------
# 3) CORS 미들웨어 추가
#    - 개발용 전체 허용
#    - 실제 운영 시 도메인 제한 필요
# ------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],      # 개발용 전체 허용
    allow_credentials=False,  # 쿠키 안 쓰면 False
    allow_methods=["*"],
    allow_headers=["*"],
)

# ------------------------
# 4) 라우터 등록
# ------------------------
app.include_router(exams_router.router)

# ------------------------
# 5) Root 엔드포인트 (health check)
# ------------------------
@app.get("/")
def root():
    return {"ok": True}
