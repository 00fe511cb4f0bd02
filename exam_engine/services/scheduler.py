# exam_engine/services/scheduler.py
"""
주기 작업 실행기
앱 시작 시(lifespan) 데몬 스레드로 sweeper / 채점 reconciler 를 돌린다.
"""
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicJob:
    def __init__(self, name: str, fn: Callable[[], int], interval_seconds: float):
        self.name = name
        self.fn = fn
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Optional[int]:
        try:
            logger.debug("[SCHED] running %s", self.name)
            count = self.fn()
            if count:
                logger.info("[SCHED] %s completed count=%s", self.name, count)
            return count
        except Exception:
            # 다음 주기에 다시 시도
            logger.exception("[SCHED] %s failed", self.name)
            return None

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self.interval_seconds)

    def start(self) -> None:
        if self.is_running:
            logger.warning("[SCHED] %s is already running", self.name)
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("[SCHED] %s started (every %ss)", self.name, self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("[SCHED] %s stopped", self.name)
