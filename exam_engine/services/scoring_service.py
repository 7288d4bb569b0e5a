"""
services/scoring_service.py

응답 채점 및 결과 집계 비즈니스 로직.
순수 Python 함수로 구성. (스냅샷, 응답)만으로 결과가 결정되며 문제 은행을 다시 조회하지 않는다.
채점은 예외를 던지지 않는다. 평가할 수 없는 응답은 0점 처리한다.
"""

import logging
import math
from collections import defaultdict
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel

from exam_engine.models.attempt_model import QuestionSnapshot, Response, ResponseStatus, SectionSnapshot
from exam_engine.models.question_model import NUMERIC_TYPES, NumericalAnswer, QuestionType
from exam_engine.models.series_model import MultiSelectPolicy

logger = logging.getLogger(__name__)

_FLOAT_EPS = 1e-9


class QuestionResult(BaseModel):
    question_id: str
    type: QuestionType
    selected: Any = None
    status: ResponseStatus
    earned: float
    marks: float


class ScoreResult(BaseModel):
    score: float
    max_score: float
    percentage: float
    per_question: List[QuestionResult]


# ── 응답 정규화 ──────────────────────────────────────────────────────────────

def is_unanswered(selected: Any) -> bool:
    """None, 빈 문자열, 빈 리스트, 빈 매트릭스는 미응답."""
    if selected is None:
        return True
    if isinstance(selected, str):
        return not selected.strip()
    if isinstance(selected, (list, tuple, set)):
        return len(selected) == 0
    if isinstance(selected, dict):
        return all(is_unanswered(v) for v in selected.values())
    return False


def _to_index(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("보기 인덱스에 bool은 허용되지 않습니다.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError(f"보기 인덱스로 해석할 수 없습니다: {value!r}")


def parse_option_indices(selected: Any) -> Set[int]:
    """int, [int, ...], "0,2" 형태를 보기 인덱스 집합으로 변환."""
    if isinstance(selected, str):
        parts = [p for p in selected.split(",") if p.strip()]
        return {_to_index(p) for p in parts}
    if isinstance(selected, (list, tuple, set)):
        return {_to_index(v) for v in selected}
    return {_to_index(selected)}


def parse_number(selected: Any) -> float:
    if isinstance(selected, (list, tuple)):
        if len(selected) != 1:
            raise ValueError(f"수치형 답은 값 1개여야 합니다: {selected!r}")
        selected = selected[0]
    if isinstance(selected, bool):
        raise TypeError("수치형 답에 bool은 허용되지 않습니다.")
    if isinstance(selected, (int, float)):
        value = float(selected)
    elif isinstance(selected, str):
        value = float(selected.strip())
    else:
        raise TypeError(f"수치형 답으로 해석할 수 없습니다: {selected!r}")
    if not math.isfinite(value):
        raise ValueError(f"유한한 숫자가 아닙니다: {selected!r}")
    return value


def parse_matrix(selected: Any) -> Dict[str, FrozenSet[str]]:
    """{행: [열, ...]} 또는 {행: "열"} 을 정규화. 빈 행은 제외."""
    if not isinstance(selected, dict):
        raise TypeError(f"매트릭스 답은 dict여야 합니다: {selected!r}")
    result: Dict[str, FrozenSet[str]] = {}
    for row, cols in selected.items():
        if isinstance(cols, str):
            cols = [cols] if cols.strip() else []
        elif not isinstance(cols, (list, tuple, set)):
            raise TypeError(f"매트릭스 행 '{row}'의 값이 올바르지 않습니다: {cols!r}")
        if cols:
            result[str(row)] = frozenset(str(c) for c in cols)
    return result


# ── 유형별 판정 ──────────────────────────────────────────────────────────────

def numeric_matches(spec: NumericalAnswer, value: float) -> bool:
    """exact_value 일치, [min_value, max_value] 포함, exact_value ± tolerance% 중 하나면 정답."""
    if spec.exact_value is not None:
        exact = spec.exact_value
        if spec.tolerance:
            if abs(value - exact) <= abs(exact) * spec.tolerance / 100 + _FLOAT_EPS:
                return True
        elif math.isclose(value, exact, rel_tol=_FLOAT_EPS, abs_tol=_FLOAT_EPS):
            return True
    if spec.min_value is not None and spec.max_value is not None:
        if spec.min_value - _FLOAT_EPS <= value <= spec.max_value + _FLOAT_EPS:
            return True
    return False


def _wrong(question: QuestionSnapshot) -> Tuple[ResponseStatus, float]:
    return ResponseStatus.INCORRECT, -question.negative_marks if question.negative_marks else 0.0


def _evaluate(
    question: QuestionSnapshot,
    selected: Any,
    policy: MultiSelectPolicy,
) -> Tuple[ResponseStatus, float]:
    if question.type == QuestionType.SINGLE:
        chosen = parse_option_indices(selected)
        if chosen == set(question.correct_options):
            return ResponseStatus.CORRECT, question.marks
        return _wrong(question)

    if question.type == QuestionType.MULTIPLE:
        chosen = parse_option_indices(selected)
        correct = set(question.correct_options)
        if chosen == correct:
            return ResponseStatus.CORRECT, question.marks
        if policy == MultiSelectPolicy.PARTIAL and chosen and chosen < correct:
            earned = round(question.marks * len(chosen) / len(correct), 4)
            return ResponseStatus.PARTIAL, earned
        return _wrong(question)

    if question.type in NUMERIC_TYPES:
        value = parse_number(selected)
        if question.numerical_answer is not None and numeric_matches(question.numerical_answer, value):
            return ResponseStatus.CORRECT, question.marks
        return _wrong(question)

    if question.type == QuestionType.MATRIX:
        given = parse_matrix(selected)
        expected = parse_matrix(dict(question.matrix_answer or {}))
        if given == expected:
            return ResponseStatus.CORRECT, question.marks
        return _wrong(question)

    raise ValueError(f"알 수 없는 문제 유형: {question.type}")


def evaluate_response(
    question: QuestionSnapshot,
    response: Optional[Response],
    policy: MultiSelectPolicy = MultiSelectPolicy.ALL_OR_NOTHING,
) -> QuestionResult:
    """
    문제 1개를 채점한다.

    - 미응답: 0점, 감점 없음.
    - 해석할 수 없는 응답: 오답 처리하되 0점 (감점 없음). 나머지 문제 채점은 계속된다.
    """
    selected = response.selected if response is not None else None

    if is_unanswered(selected):
        status, earned = ResponseStatus.UNANSWERED, 0.0
    else:
        try:
            status, earned = _evaluate(question, selected, policy)
        except Exception as e:
            logger.warning(f"응답 해석 실패 (question={question.question_id}): {e}")
            status, earned = ResponseStatus.INCORRECT, 0.0

    return QuestionResult(
        question_id=question.question_id,
        type=question.type,
        selected=selected,
        status=status,
        earned=earned,
        marks=question.marks,
    )


def calculate_percentage(score: float, max_score: float) -> float:
    if max_score <= 0:
        return 0.0
    return round(score / max_score * 100, 2)


def score_attempt(
    sections: Iterable[SectionSnapshot],
    responses: Iterable[Response],
    policy: MultiSelectPolicy = MultiSelectPolicy.ALL_OR_NOTHING,
) -> ScoreResult:
    """
    스냅샷 전체를 채점하여 문항별 결과와 총점을 반환한다.

    Args:
        sections:  응시 스냅샷의 섹션 목록.
        responses: 최종 응답. 스냅샷에 없는 문제의 응답은 무시된다.
        policy:    복수 선택 채점 정책.

    Returns:
        ScoreResult. max_score는 응답 여부와 무관하게 스냅샷 전체 배점의 합.
        max_score가 0이면 percentage는 0.0.
    """
    by_question = {r.question_id: r for r in responses}
    results: List[QuestionResult] = []
    max_score = 0.0

    for section in sections:
        for question in section.questions:
            max_score += question.marks
            results.append(evaluate_response(question, by_question.get(question.question_id), policy))

    score = round(sum(r.earned for r in results), 4)
    max_score = round(max_score, 4)
    return ScoreResult(
        score=score,
        max_score=max_score,
        percentage=calculate_percentage(score, max_score),
        per_question=results,
    )


def calculate_section_scores(
    sections: Iterable[SectionSnapshot],
    results: Iterable[QuestionResult],
) -> List[Dict[str, object]]:
    """
    섹션별 점수를 계산하여 반환한다.

    Returns:
        [{"section": str, "total": int, "correct": int, "partial": int, "incorrect": int,
          "unanswered": int, "score": float, "max_score": float}, ...]
        스냅샷 섹션 순서 유지.
    """
    by_question = {r.question_id: r for r in results}
    buckets: Dict[str, Dict[str, float]] = defaultdict(
        lambda: {"total": 0, "correct": 0, "partial": 0, "incorrect": 0, "unanswered": 0,
                 "score": 0.0, "max_score": 0.0}
    )

    order: List[str] = []
    for section in sections:
        if section.title not in buckets:
            order.append(section.title)
        b = buckets[section.title]
        for question in section.questions:
            b["total"] += 1
            b["max_score"] += question.marks
            result = by_question.get(question.question_id)
            if result is None:
                b["unanswered"] += 1
                continue
            b[result.status.value] += 1
            b["score"] += result.earned

    return [
        {"section": title, **buckets[title],
         "score": round(buckets[title]["score"], 4), "max_score": round(buckets[title]["max_score"], 4)}
        for title in order
    ]
