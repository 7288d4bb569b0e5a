"""
services/variant_selector.py

응시에 사용할 변형(variant)을 고르고 섹션별 문제 목록을 확정한다.

  1. 변형이 정의된 시리즈면 지정 코드(없으면 무작위)로 하나를 고른다.
  2. 섹션마다 고정 문제 + 문제 풀에서 비복원 무작위 추출.
  3. 섹션 내 문제 순서 / 섹션 순서 섞기 옵션 적용.

풀의 문제 수가 요청 수보다 적으면 ConfigurationError. 섹션을 덜 채운 채로 진행하지 않는다.
"""

import logging
import random
from typing import List, Optional, Set

from pydantic import BaseModel

from exam_engine.errors import ConfigurationError
from exam_engine.models.series_model import QuestionRef, Section, TestSeries

logger = logging.getLogger(__name__)


class PlannedQuestion(BaseModel):
    question_id: str
    marks: float
    negative_marks: float


class PlannedSection(BaseModel):
    title: str
    order: int
    questions: List[PlannedQuestion]


class Selection(BaseModel):
    variant_code: Optional[str] = None
    sections: List[PlannedSection]

    @property
    def question_ids(self) -> List[str]:
        return [q.question_id for s in self.sections for q in s.questions]


def choose_variant_code(
    series: TestSeries,
    forced_code: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """
    사용할 변형 코드를 결정한다.

    Returns:
        변형이 없는 시리즈면 None.
        forced_code가 있으면 그대로 (없는 코드면 ConfigurationError).
        그 외에는 균등 무작위 선택.
    """
    if not series.variants:
        if forced_code is not None:
            raise ConfigurationError(f"시리즈({series.id})에는 변형이 없습니다 (요청: '{forced_code}').")
        return None
    if forced_code is not None:
        series.get_variant(forced_code)
        return forced_code
    rng = rng or random.Random()
    return rng.choice(series.variant_codes)


def _resolve_negative(explicit: Optional[float], marks: float, fraction: float) -> float:
    if explicit is not None:
        return explicit
    return round(marks * fraction, 4)


def _draw_from_pool(
    section: Section,
    exclude: Set[str],
    fraction: float,
    rng: random.Random,
) -> List[PlannedQuestion]:
    candidates = []
    for qid in section.question_pool:
        if qid not in exclude and qid not in candidates:
            candidates.append(qid)

    wanted = section.questions_to_select_from_pool
    if len(candidates) < wanted:
        raise ConfigurationError(
            f"섹션 '{section.title}'의 문제 풀({len(candidates)}개)이 "
            f"요청 수({wanted}개)보다 적습니다."
        )

    drawn = rng.sample(candidates, wanted)
    negative = _resolve_negative(section.pool_negative_marks, section.pool_marks, fraction)
    return [
        PlannedQuestion(question_id=qid, marks=section.pool_marks, negative_marks=negative)
        for qid in drawn
    ]


def _plan_fixed(refs: List[QuestionRef], fraction: float) -> List[PlannedQuestion]:
    return [
        PlannedQuestion(
            question_id=ref.question_id,
            marks=ref.marks,
            negative_marks=_resolve_negative(ref.negative_marks, ref.marks, fraction),
        )
        for ref in refs
    ]


def select(
    series: TestSeries,
    forced_code: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Selection:
    """
    시리즈 정의로부터 이번 응시의 구체적인 섹션/문제 배치를 만든다.

    Args:
        series:      시험 시리즈 정의.
        forced_code: 강제로 사용할 변형 코드 (선택).
        rng:         난수 생성기. 테스트에서는 시드를 고정해 주입한다.

    Returns:
        Selection (선택된 변형 코드 + 순서가 확정된 섹션 목록).

    Raises:
        ConfigurationError: 없는 변형, 풀 부족, 배치 내 중복 문제, 빈 배치.
    """
    rng = rng or random.Random()
    code = choose_variant_code(series, forced_code, rng)
    sections = sorted(series.arrangement(code), key=lambda s: s.order)
    fraction = series.negative_marking_for(code)

    # 고정 문제는 배치 전체에서 유일해야 한다 (응답은 문제 ID로 매칭)
    used: Set[str] = set()
    for section in sections:
        for ref in section.questions:
            if ref.question_id in used:
                raise ConfigurationError(f"문제 {ref.question_id}가 배치에 중복되어 있습니다.")
            used.add(ref.question_id)

    planned: List[PlannedSection] = []
    for section in sections:
        questions = _plan_fixed(section.questions, fraction)
        if section.uses_pool:
            drawn = _draw_from_pool(section, used, fraction, rng)
            used.update(q.question_id for q in drawn)
            questions.extend(drawn)
        if section.randomize_question_order_in_section:
            rng.shuffle(questions)
        planned.append(PlannedSection(title=section.title, order=section.order, questions=questions))

    if series.randomize_section_order:
        rng.shuffle(planned)
        # 섞인 순서를 order에도 반영
        planned = [s.model_copy(update={"order": i + 1}) for i, s in enumerate(planned)]

    if not any(s.questions for s in planned):
        raise ConfigurationError(f"시리즈({series.id})의 배치에 문제가 없습니다.")

    logger.debug(f"변형 선택: series={series.id}, variant={code}, questions={len(used)}")
    return Selection(variant_code=code, sections=planned)
