"""
services/leaderboard_service.py

채점 완료된 응시로부터 시리즈별 순위표를 매번 새로 계산한다.
진행 중/만료(미제출) 응시는 제외. 동점이면 먼저 제출한 쪽이 앞선다.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from exam_engine.models.attempt_model import Attempt, AttemptStatus


class LeaderboardEntry(BaseModel):
    rank: int
    student_id: str
    attempt_id: str
    score: float
    max_score: float
    percentage: float
    submitted_at: datetime


def _sort_key(attempt: Attempt):
    return (-(attempt.score or 0.0), attempt.submitted_at)


def build_leaderboard(
    attempts: Iterable[Attempt],
    limit: Optional[int] = None,
    best_per_student: bool = True,
) -> List[LeaderboardEntry]:
    """
    Args:
        attempts:         후보 응시 목록 (상태는 여기서 다시 거른다).
        limit:            상위 N명만 반환. None이면 전체.
        best_per_student: True면 학생별 최고 기록 1건만 순위에 포함.

    Returns:
        점수 내림차순, 동점 시 submitted_at 오름차순. rank는 1부터.

    Raises:
        ValueError: limit이 1보다 작은 경우.
    """
    if limit is not None and limit < 1:
        raise ValueError(f"limit은 1 이상이어야 합니다: {limit}")

    completed = [
        a for a in attempts
        if a.status == AttemptStatus.COMPLETED and a.submitted_at is not None
    ]

    if best_per_student:
        best: Dict[str, Attempt] = {}
        for a in completed:
            current = best.get(a.student_id)
            if current is None or _sort_key(a) < _sort_key(current):
                best[a.student_id] = a
        completed = list(best.values())

    ranked = sorted(completed, key=_sort_key)
    if limit is not None:
        ranked = ranked[:limit]

    return [
        LeaderboardEntry(
            rank=i + 1,
            student_id=a.student_id,
            attempt_id=a.id,
            score=a.score or 0.0,
            max_score=a.max_score or 0.0,
            percentage=a.percentage or 0.0,
            submitted_at=a.submitted_at,
        )
        for i, a in enumerate(ranked)
    ]
