"""
services/attempt_service.py

응시 세션 관리자: 응시 생성부터 종료 상태까지의 상태 기계와 시간 계산.

    in-progress ──submit──▶ completed
         │
         └──(만료 감지)──▶ expired ──submit──▶ completed   (마지막 저장분으로 늦은 제출)

만료는 백그라운드 작업 없이, 조회/저장/제출 시점마다 expires_at과 현재 시각을 비교해 판정한다.
"""

import logging
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional

import config
from exam_engine.errors import (
    AttemptAlreadyCompleted, AttemptForbidden, AttemptInProgress, AttemptNotCompleted, AttemptNotFound,
)
from exam_engine.models.attempt_model import Attempt, AttemptStatus, Response, ResponseStatus
from exam_engine.models.series_model import MultiSelectPolicy, TestSeries
from exam_engine.services import attempt_guard, leaderboard_service, progress_service, variant_selector
from exam_engine.services.attempt_guard import GuardDecision
from exam_engine.services.attempt_store import AttemptStore
from exam_engine.services.catalog import QuestionBank, SeriesCatalog
from exam_engine.services.leaderboard_service import LeaderboardEntry
from exam_engine.services.scoring_service import (
    QuestionResult, ScoreResult, calculate_percentage, calculate_section_scores, score_attempt,
)
from exam_engine.services.snapshot_service import build_snapshot

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(attempt: Attempt, now: datetime) -> bool:
    """만료 시각을 지났는지. 경계 시각(now == expires_at)은 아직 유효."""
    return now > attempt.expires_at


def remaining_seconds(attempt: Attempt, now: datetime) -> int:
    return max(0, int((attempt.expires_at - now).total_seconds()))


class AttemptService:
    """
    응시 엔진 진입점. 외부(HTTP 계층, 리포트 생성기)에 노출되는 연산을 모두 제공한다.

    Args:
        catalog:  시험 시리즈 저장소.
        bank:     문제 은행 (스냅샷 생성 시에만 조회).
        store:    응시 기록/카운터 저장소.
        clock:    현재 시각(UTC aware datetime)을 돌려주는 함수.
        rng:      변형 선택/문제 추출/순서 섞기에 쓰는 난수 생성기.
    """

    def __init__(
        self,
        catalog: SeriesCatalog,
        bank: QuestionBank,
        store: Optional[AttemptStore] = None,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
        live_cooldown_minutes: int = config.LIVE_COOLDOWN_MINUTES,
        multi_select_policy: str = config.MULTI_SELECT_POLICY,
        leaderboard_limit: int = config.LEADERBOARD_LIMIT,
    ):
        self.catalog = catalog
        self.bank = bank
        self.store = store or AttemptStore()
        self.clock = clock
        self.rng = rng or random.Random()
        self.live_cooldown_minutes = live_cooldown_minutes
        self.default_policy = MultiSelectPolicy(multi_select_policy)
        self.leaderboard_limit = leaderboard_limit

    # ── 헬퍼 ─────────────────────────────────────────────────────────────────

    def _policy_for(self, series: TestSeries) -> MultiSelectPolicy:
        return series.multi_select_policy or self.default_policy

    def _expire_if_needed(self, attempt: Attempt, now: datetime) -> Attempt:
        if attempt.status != AttemptStatus.IN_PROGRESS or not is_expired(attempt, now):
            return attempt

        def _mark(a: Attempt) -> None:
            if a.status == AttemptStatus.IN_PROGRESS:
                a.status = AttemptStatus.EXPIRED

        logger.info(f"응시 만료 처리: attempt={attempt.id}, expires_at={attempt.expires_at.isoformat()}")
        return self.store.update(attempt.id, _mark)

    def _load_owned(self, attempt_id: str, student_id: Optional[str]) -> Attempt:
        attempt = self.store.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        if student_id is not None and attempt.student_id != student_id:
            raise AttemptForbidden(attempt_id)
        return attempt

    # ── 응시 시작 ─────────────────────────────────────────────────────────────

    def can_start(self, student_id: str, series_id: str) -> GuardDecision:
        series = self.catalog.get(series_id)
        counter = self.store.get_counter(student_id, series_id)
        return attempt_guard.evaluate(series, counter, self.clock(), self.live_cooldown_minutes)

    def start_attempt(self, student_id: str, series_id: str, variant_code: Optional[str] = None) -> Attempt:
        """
        새 응시를 만들고 스냅샷을 고정한다.

        Raises:
            SeriesNotFound / SeriesNotAvailable / AttemptLimitExceeded / CooldownActive
            AttemptInProgress:  만료되지 않은 진행 중 응시가 이미 있는 경우.
            ConfigurationError: 변형/문제 풀/문제 은행 설정 오류. 응시와 카운터 모두 기록되지 않는다.
        """
        series = self.catalog.get(series_id)
        now = self.clock()

        existing = self.store.find_in_progress(student_id, series_id)
        if existing is not None:
            existing = self._expire_if_needed(existing, now)
            if existing.status == AttemptStatus.IN_PROGRESS:
                raise AttemptInProgress(existing.id)

        decision = attempt_guard.evaluate(
            series, self.store.get_counter(student_id, series_id), now, self.live_cooldown_minutes,
        )
        if not decision.allowed:
            logger.info(f"응시 시작 거부: student={student_id}, series={series_id}, reason={decision.reason.value}")
        attempt_guard.enforce(decision, series)

        selection = variant_selector.select(series, variant_code, self.rng)
        sections = build_snapshot(selection, self.bank)

        # 응시 생성 + 카운터 증가는 함께 적용되거나 함께 취소된다
        with self.store.transaction() as tx:
            counter = tx.get_counter(student_id, series_id)
            attempt_guard.enforce(
                attempt_guard.evaluate(series, counter, now, self.live_cooldown_minutes), series,
            )
            attempt = Attempt(
                id=uuid.uuid4().hex,
                series_id=series.id,
                series_title=series.title,
                student_id=student_id,
                variant_code=selection.variant_code,
                attempt_no=counter.attempt_count + 1,
                sections=sections,
                multi_select_policy=self._policy_for(series),
                started_at=now,
                expires_at=now + timedelta(seconds=series.duration_seconds),
                remaining_duration_seconds=series.duration_seconds,
            )
            attempt.responses = progress_service.blank_responses(attempt)
            tx.insert(attempt)
            tx.increment_counter(student_id, series_id, now)

        logger.info(
            f"응시 시작: attempt={attempt.id}, student={student_id}, series={series_id}, "
            f"variant={attempt.variant_code}, no={attempt.attempt_no}"
        )
        return attempt

    # ── 이어 풀기 / 상태 조회 ─────────────────────────────────────────────────

    def get_progress(self, student_id: str, series_id: str) -> Optional[Attempt]:
        """
        진행 중 응시를 돌려준다. 만료되었으면 expired로 바꾸고 None을 반환한다.
        """
        self.catalog.get(series_id)
        attempt = self.store.find_in_progress(student_id, series_id)
        if attempt is None:
            return None
        attempt = self._expire_if_needed(attempt, self.clock())
        if attempt.status != AttemptStatus.IN_PROGRESS:
            return None
        return attempt

    def get_attempt(self, attempt_id: str, student_id: Optional[str] = None) -> Attempt:
        """상태 조회. 만료 판정이 지연 적용된다."""
        attempt = self._load_owned(attempt_id, student_id)
        return self._expire_if_needed(attempt, self.clock())

    def remaining_seconds(self, attempt: Attempt) -> int:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            return 0
        return remaining_seconds(attempt, self.clock())

    # ── 저장 / 제출 ───────────────────────────────────────────────────────────

    def save_progress(
        self,
        attempt_id: str,
        responses: Iterable[Response],
        remaining_duration_seconds: Optional[int] = None,
        student_id: Optional[str] = None,
    ) -> Attempt:
        return progress_service.save(
            self.store, attempt_id, responses, remaining_duration_seconds, self.clock(), student_id,
        )

    def submit_attempt(
        self,
        attempt_id: str,
        responses: Iterable[Response] = (),
        student_id: Optional[str] = None,
    ) -> ScoreResult:
        """
        응답을 병합하고 채점한 뒤 completed로 확정한다.
        진행 중이거나, 만료되었지만 아직 제출되지 않은 응시에만 허용된다.

        Raises:
            AttemptNotFound / AttemptForbidden
            AttemptAlreadyCompleted: 이미 제출된 응시. 저장된 점수는 바뀌지 않는다.
        """
        incoming = list(responses)
        now = self.clock()
        outcome: Dict[str, ScoreResult] = {}

        def _finalize(attempt: Attempt) -> None:
            if student_id is not None and attempt.student_id != student_id:
                raise AttemptForbidden(attempt.id)
            if attempt.status == AttemptStatus.COMPLETED:
                raise AttemptAlreadyCompleted(attempt.id)
            if is_expired(attempt, now):
                logger.info(f"만료 후 제출: attempt={attempt.id}, status={attempt.status.value}")

            merged = progress_service.merge_responses(attempt, incoming, now)
            result = score_attempt(attempt.sections, merged, attempt.multi_select_policy)
            by_question = {r.question_id: r for r in result.per_question}
            for r in merged:
                scored = by_question[r.question_id]
                r.earned = scored.earned
                r.status = scored.status

            attempt.responses = merged
            attempt.submitted_at = now
            attempt.score = result.score
            attempt.max_score = result.max_score
            attempt.percentage = result.percentage
            attempt.status = AttemptStatus.COMPLETED
            outcome["result"] = result

        attempt = self.store.update(attempt_id, _finalize)
        logger.info(
            f"응시 제출: attempt={attempt.id}, score={attempt.score}/{attempt.max_score} ({attempt.percentage}%)"
        )
        return outcome["result"]

    # ── 결과 / 이력 / 통계 ────────────────────────────────────────────────────

    def review_attempt(self, attempt_id: str, student_id: Optional[str] = None) -> dict:
        """
        제출된 응시의 문항별 결과 (스냅샷 기준, 문제 은행 재조회 없음).

        Raises:
            AttemptNotCompleted: 아직 제출되지 않은 응시.
        """
        attempt = self.get_attempt(attempt_id, student_id)
        if attempt.status != AttemptStatus.COMPLETED:
            raise AttemptNotCompleted(attempt_id)

        responses = attempt.responses_by_question()
        results: List[QuestionResult] = []
        questions = []
        for q in attempt.iter_questions():
            r = responses.get(q.question_id) or Response(question_id=q.question_id)
            results.append(QuestionResult(
                question_id=q.question_id, type=q.type, selected=r.selected,
                status=r.status or ResponseStatus.UNANSWERED, earned=r.earned or 0.0, marks=q.marks,
            ))
            questions.append({
                "question_id": q.question_id,
                "type": q.type.value,
                "translations": [t.model_dump() for t in q.translations],
                "correct_options": list(q.correct_options),
                "numerical_answer": q.numerical_answer.model_dump() if q.numerical_answer else None,
                "matrix_answer": {k: list(v) for k, v in q.matrix_answer.items()} if q.matrix_answer else None,
                "marks": q.marks,
                "negative_marks": q.negative_marks,
                "selected": r.selected,
                "earned": r.earned,
                "status": r.status.value if r.status else None,
                "time_spent": r.time_spent,
                "flagged": r.flagged,
                "confidence": r.confidence,
            })

        return {
            "attempt_id": attempt.id,
            "series_id": attempt.series_id,
            "series_title": attempt.series_title,
            "variant_code": attempt.variant_code,
            "attempt_no": attempt.attempt_no,
            "submitted_at": attempt.submitted_at,
            "score": attempt.score,
            "max_score": attempt.max_score,
            "percentage": attempt.percentage,
            "sections": calculate_section_scores(attempt.sections, results),
            "questions": questions,
        }

    def list_attempts(self, student_id: str) -> List[Attempt]:
        """학생의 응시 이력 (최신순). 만료 판정을 먼저 적용한다."""
        now = self.clock()
        attempts = [self._expire_if_needed(a, now) for a in self.store.list_attempts(student_id=student_id)]
        return sorted(attempts, key=lambda a: a.started_at, reverse=True)

    def student_stats(self, student_id: str) -> dict:
        completed = self.store.list_attempts(student_id=student_id, status=AttemptStatus.COMPLETED)
        if not completed:
            return {"total": 0, "average_percentage": 0.0, "best_percentage": 0.0}
        total_score = sum(a.score or 0.0 for a in completed)
        total_max = sum(a.max_score or 0.0 for a in completed)
        return {
            "total": len(completed),
            "average_percentage": calculate_percentage(total_score, total_max),
            "best_percentage": max(a.percentage or 0.0 for a in completed),
        }

    def reset_attempt_count(self, student_id: str, series_id: str) -> None:
        self.catalog.get(series_id)
        self.store.reset_counter(student_id, series_id)
        logger.info(f"응시 횟수 초기화: student={student_id}, series={series_id}")

    def get_leaderboard(self, series_id: str, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        """
        Raises:
            ValueError: limit이 1보다 작은 경우.
        """
        self.catalog.get(series_id)
        attempts = self.store.list_attempts(series_id=series_id, status=AttemptStatus.COMPLETED)
        return leaderboard_service.build_leaderboard(
            attempts, self.leaderboard_limit if limit is None else limit,
        )
