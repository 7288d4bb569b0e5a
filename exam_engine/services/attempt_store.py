"""
services/attempt_store.py — 응시 기록 + 응시 횟수 카운터 인메모리 저장소

모든 읽기/쓰기는 하나의 재진입 락으로 직렬화된다.
  - 저장되는 Attempt는 항상 복사본이다. 호출자가 들고 있는 객체를 바꿔도 저장소는 변하지 않는다.
  - update()는 읽기-수정-쓰기를 락 안에서 수행한다 (제출 vs 자동 저장 경쟁 처리).
  - transaction()은 블록 안에서 예외가 나면 응시 기록과 카운터를 함께 되돌린다.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from exam_engine.errors import AttemptInProgress, AttemptNotFound
from exam_engine.models.attempt_model import Attempt, AttemptCounter, AttemptStatus

logger = logging.getLogger(__name__)

_CounterKey = Tuple[str, str]


class AttemptStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._attempts: Dict[str, Attempt] = {}
        self._counters: Dict[_CounterKey, AttemptCounter] = {}

    # ── 트랜잭션 ──────────────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["AttemptStore"]:
        """블록 전체를 원자적으로 적용. 실패 시 응시 기록/카운터 모두 이전 상태로 복원."""
        with self._lock:
            attempts_backup = dict(self._attempts)
            counters_backup = dict(self._counters)
            try:
                yield self
            except BaseException:
                self._attempts = attempts_backup
                self._counters = counters_backup
                logger.warning("트랜잭션 롤백: 응시 기록/카운터 복원")
                raise

    # ── 응시 기록 ─────────────────────────────────────────────────────────────

    def insert(self, attempt: Attempt) -> None:
        """
        새 응시 저장. (학생, 시리즈)당 진행 중 응시는 하나만 허용.

        Raises:
            AttemptInProgress: 같은 (학생, 시리즈)에 진행 중 응시가 이미 있는 경우.
        """
        with self._lock:
            existing = self._find_in_progress(attempt.student_id, attempt.series_id)
            if existing is not None and attempt.status == AttemptStatus.IN_PROGRESS:
                raise AttemptInProgress(existing.id)
            self._attempts[attempt.id] = attempt.model_copy(deep=True)

    def get(self, attempt_id: str) -> Optional[Attempt]:
        with self._lock:
            attempt = self._attempts.get(attempt_id)
            return attempt.model_copy(deep=True) if attempt is not None else None

    def update(self, attempt_id: str, mutate: Callable[[Attempt], None]) -> Attempt:
        """
        락 안에서 복사본을 mutate()에 넘기고, 정상 종료하면 통째로 교체한다.
        mutate()가 예외를 던지면 저장소는 바뀌지 않는다.

        Raises:
            AttemptNotFound: 해당 ID가 없는 경우.
        """
        with self._lock:
            current = self._attempts.get(attempt_id)
            if current is None:
                raise AttemptNotFound(attempt_id)
            working = current.model_copy(deep=True)
            mutate(working)
            self._attempts[attempt_id] = working
            return working.model_copy(deep=True)

    def _find_in_progress(self, student_id: str, series_id: str) -> Optional[Attempt]:
        for a in self._attempts.values():
            if a.student_id == student_id and a.series_id == series_id and a.status == AttemptStatus.IN_PROGRESS:
                return a
        return None

    def find_in_progress(self, student_id: str, series_id: str) -> Optional[Attempt]:
        with self._lock:
            attempt = self._find_in_progress(student_id, series_id)
            return attempt.model_copy(deep=True) if attempt is not None else None

    def list_attempts(
        self,
        series_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[AttemptStatus] = None,
    ) -> List[Attempt]:
        with self._lock:
            return [
                a.model_copy(deep=True)
                for a in self._attempts.values()
                if (series_id is None or a.series_id == series_id)
                and (student_id is None or a.student_id == student_id)
                and (status is None or a.status == status)
            ]

    # ── 응시 횟수 카운터 ──────────────────────────────────────────────────────

    def get_counter(self, student_id: str, series_id: str) -> AttemptCounter:
        with self._lock:
            counter = self._counters.get((student_id, series_id))
            if counter is None:
                return AttemptCounter(student_id=student_id, series_id=series_id)
            return counter.model_copy()

    def increment_counter(self, student_id: str, series_id: str, now: datetime) -> int:
        with self._lock:
            current = self.get_counter(student_id, series_id)
            updated = current.model_copy(update={
                "attempt_count": current.attempt_count + 1,
                "last_attempt_at": now,
            })
            self._counters[(student_id, series_id)] = updated
            return updated.attempt_count

    def reset_counter(self, student_id: str, series_id: str) -> None:
        """응시 횟수를 0으로 되돌린다. 쿨다운 기준 시각도 함께 지운다."""
        with self._lock:
            self._counters[(student_id, series_id)] = AttemptCounter(student_id=student_id, series_id=series_id)
