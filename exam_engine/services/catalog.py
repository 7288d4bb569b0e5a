"""
services/catalog.py

외부 협력자(문제 은행, 시리즈 저장소)의 인메모리 구현.
응시 엔진은 스냅샷 생성 시점에만 문제 은행을 조회하며, 채점 중에는 절대 조회하지 않는다.
"""

import logging
import threading
from typing import Dict, Iterable, List

import config
from exam_engine.errors import ConfigurationError, SeriesNotFound
from exam_engine.models.question_model import Question
from exam_engine.models.series_model import TestSeries

logger = logging.getLogger(__name__)


class QuestionBank:
    def __init__(self, questions: Iterable[Question] = ()):
        self._lock = threading.Lock()
        self._questions: Dict[str, Question] = {}
        for q in questions:
            self.add(q)

    def add(self, question: Question) -> None:
        with self._lock:
            self._questions[question.id] = question

    def remove(self, question_id: str) -> None:
        with self._lock:
            self._questions.pop(question_id, None)

    def get_questions_by_ids(self, ids: Iterable[str]) -> List[Question]:
        """요청한 ID 중 존재하는 문제만 반환 (순서 유지). 누락 판단은 호출자 몫."""
        with self._lock:
            return [self._questions[i] for i in ids if i in self._questions]


class SeriesCatalog:
    def __init__(self, min_questions: int = config.MIN_QUESTIONS_PER_SERIES):
        self._lock = threading.Lock()
        self._series: Dict[str, TestSeries] = {}
        self.min_questions = min_questions

    def add(self, series: TestSeries) -> None:
        """시리즈 등록. 모든 배치가 최소 문항 수를 만족해야 한다."""
        codes = series.variant_codes or [None]
        for code in codes:
            count = series.question_count_for(code)
            if count < self.min_questions:
                label = f"변형 '{code}'" if code else "기본 배치"
                raise ConfigurationError(
                    f"시리즈({series.id}) {label}의 문항 수({count})가 최소 {self.min_questions}개보다 적습니다."
                )
        with self._lock:
            self._series[series.id] = series
        logger.info(f"시리즈 등록: {series.id} ({series.title}), 총점 {series.total_marks}")

    def get(self, series_id: str) -> TestSeries:
        with self._lock:
            series = self._series.get(series_id)
        if series is None:
            raise SeriesNotFound(series_id)
        return series

    def all(self) -> List[TestSeries]:
        with self._lock:
            return list(self._series.values())
