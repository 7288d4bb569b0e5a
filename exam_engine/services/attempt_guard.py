"""
services/attempt_guard.py

응시 시작 가능 여부 판정 (응시 기간, 최대 횟수, 재응시 쿨다운).
카운터 레코드만 보고 판단하며 응시 이력을 스캔하지 않는다.
"""

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from exam_engine.errors import AttemptLimitExceeded, CooldownActive, SeriesNotAvailable
from exam_engine.models.attempt_model import AttemptCounter
from exam_engine.models.series_model import SeriesMode, TestSeries


class DenialReason(str, Enum):
    NOT_AVAILABLE = "not_available"
    LIMIT = "limit"
    COOLDOWN = "cooldown"


class GuardDecision(BaseModel):
    allowed: bool
    remaining_attempts: int
    reason: Optional[DenialReason] = None
    message: str = ""
    retry_after_seconds: Optional[int] = None


def cooldown_for(series: TestSeries, live_default_minutes: int = 0) -> timedelta:
    """시리즈가 지정한 쿨다운, 없으면 live 모드만 기본값 적용 (practice는 0)."""
    if series.cooldown_minutes is not None:
        return timedelta(minutes=series.cooldown_minutes)
    if series.mode == SeriesMode.LIVE:
        return timedelta(minutes=live_default_minutes)
    return timedelta(0)


def evaluate(
    series: TestSeries,
    counter: AttemptCounter,
    now: datetime,
    live_default_minutes: int = 0,
) -> GuardDecision:
    """
    응시 시작 가능 여부를 판정한다 (부수 효과 없음).

    판정 순서: 응시 기간 → 최대 횟수 → 쿨다운.
    """
    remaining = max(0, series.max_attempts - counter.attempt_count)

    if series.start_at and now < series.start_at:
        return GuardDecision(
            allowed=False, remaining_attempts=remaining, reason=DenialReason.NOT_AVAILABLE,
            message="아직 시작되지 않은 시험입니다.",
        )
    if series.end_at and now > series.end_at:
        return GuardDecision(
            allowed=False, remaining_attempts=remaining, reason=DenialReason.NOT_AVAILABLE,
            message="응시 기간이 종료된 시험입니다.",
        )

    if counter.attempt_count >= series.max_attempts:
        return GuardDecision(
            allowed=False, remaining_attempts=0, reason=DenialReason.LIMIT,
            message=f"최대 응시 횟수({series.max_attempts}회)를 모두 사용했습니다.",
        )

    cooldown = cooldown_for(series, live_default_minutes)
    if cooldown and counter.last_attempt_at is not None and counter.attempt_count > 0:
        ready_at = counter.last_attempt_at + cooldown
        if now < ready_at:
            retry_after = math.ceil((ready_at - now).total_seconds())
            return GuardDecision(
                allowed=False, remaining_attempts=remaining, reason=DenialReason.COOLDOWN,
                message=f"재응시 대기 시간이 남아 있습니다 ({retry_after}초).",
                retry_after_seconds=retry_after,
            )

    return GuardDecision(allowed=True, remaining_attempts=remaining)


def enforce(decision: GuardDecision, series: TestSeries) -> None:
    """거부 판정을 해당 도메인 예외로 변환한다."""
    if decision.allowed:
        return
    if decision.reason == DenialReason.NOT_AVAILABLE:
        raise SeriesNotAvailable(decision.message)
    if decision.reason == DenialReason.LIMIT:
        raise AttemptLimitExceeded(series.max_attempts)
    raise CooldownActive(decision.retry_after_seconds or 0)
