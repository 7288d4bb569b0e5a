"""
exam_engine/errors.py

응시 엔진 도메인 예외.

- 설정 오류 (ConfigurationError): 시험 시작 시점에 즉시 실패. 조용히 축소하지 않는다.
- 응시 가능 여부 오류: 횟수 초과 / 쿨다운 / 응시 기간 외.
- 상태 오류: 호출자에게 타입이 있는 실패로 돌려주고, 새로 시작할지는 호출자가 결정.
"""

from typing import Optional


class ExamEngineError(Exception):
    """모든 도메인 예외의 기반 클래스."""


# ── 설정 오류 ────────────────────────────────────────────────────────────────

class ConfigurationError(ExamEngineError):
    """시험 정의 자체가 잘못된 경우 (풀 부족, 없는 변형 코드, 문제 은행 누락 등)."""


# ── 응시 가능 여부 ───────────────────────────────────────────────────────────

class SeriesNotFound(ExamEngineError):
    def __init__(self, series_id: str):
        super().__init__(f"시험 시리즈를 찾을 수 없습니다: {series_id}")
        self.series_id = series_id


class SeriesNotAvailable(ExamEngineError):
    """응시 기간(startAt ~ endAt) 밖에서 시작을 시도한 경우."""


class AttemptLimitExceeded(ExamEngineError):
    def __init__(self, max_attempts: int):
        super().__init__(f"최대 응시 횟수({max_attempts}회)를 모두 사용했습니다.")
        self.max_attempts = max_attempts


class CooldownActive(ExamEngineError):
    def __init__(self, retry_after_seconds: int):
        super().__init__(f"재응시 대기 시간이 남아 있습니다 ({retry_after_seconds}초 후 가능).")
        self.retry_after_seconds = retry_after_seconds


# ── 상태 오류 ────────────────────────────────────────────────────────────────

class AttemptNotFound(ExamEngineError):
    def __init__(self, attempt_id: Optional[str] = None):
        super().__init__(f"응시 기록을 찾을 수 없습니다: {attempt_id}" if attempt_id else "응시 기록이 없습니다.")
        self.attempt_id = attempt_id


class AttemptAlreadyCompleted(ExamEngineError):
    def __init__(self, attempt_id: str):
        super().__init__(f"이미 제출된 시험입니다: {attempt_id}")
        self.attempt_id = attempt_id


class AttemptInProgress(ExamEngineError):
    """같은 (학생, 시리즈)에 진행 중인 응시가 이미 있는 경우."""

    def __init__(self, attempt_id: str):
        super().__init__(f"진행 중인 응시가 이미 있습니다: {attempt_id}")
        self.attempt_id = attempt_id


class AttemptNotCompleted(ExamEngineError):
    """제출되지 않은 응시에 대해 결과 조회를 시도한 경우."""

    def __init__(self, attempt_id: str):
        super().__init__(f"시험이 아직 제출되지 않았습니다: {attempt_id}")
        self.attempt_id = attempt_id


class AttemptForbidden(ExamEngineError):
    """다른 학생의 응시에 접근하려는 경우."""

    def __init__(self, attempt_id: str):
        super().__init__(f"본인의 응시 기록만 접근할 수 있습니다: {attempt_id}")
        self.attempt_id = attempt_id
