from datetime import datetime, timezone
from decimal import Decimal

from exam_engine.services.scoring import ScoreResult

# Scenario 기준 시각: 창 [10:00, 11:00], 제한 30분
T10 = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def at(hour, minute, second=0):
    return T10.replace(hour=hour, minute=minute, second=second)


class CountingHook:
    """채점 호출 횟수 기록용"""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def score(self, attempt_key, answers, bundle):
        self.calls.append(attempt_key)
        if self.fail:
            raise RuntimeError("scoring backend down")
        return ScoreResult(score=Decimal(len(answers)), total_score=Decimal(len(bundle)))
