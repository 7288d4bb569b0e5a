"""
models/series_model.py

시험 시리즈(Test Series) 정의 모델.
관리자가 작성한 시험 정의 — 섹션, 변형(A/B 등), 응시 횟수, 응시 기간.
응시 엔진은 이 정의를 읽기만 하며, 응시 시작 시점에 스냅샷으로 복사한다.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from exam_engine.errors import ConfigurationError


class SeriesMode(str, Enum):
    PRACTICE = "practice"
    LIVE = "live"


class MultiSelectPolicy(str, Enum):
    ALL_OR_NOTHING = "all_or_nothing"
    PARTIAL = "partial"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """naive datetime은 UTC로 간주한다."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class QuestionRef(BaseModel):
    """섹션 안의 문제 참조 + 배점."""

    question_id: str = Field(..., min_length=1)
    marks: float = Field(default=1.0, ge=0)
    negative_marks: Optional[float] = Field(
        default=None,
        ge=0,
        description="오답 감점 (절대값). None이면 시리즈/변형의 negative_marking 비율을 적용",
    )


class Section(BaseModel):
    title: str = Field(..., min_length=1)
    order: int = 0
    questions: List[QuestionRef] = Field(default_factory=list, description="고정 문제 목록")
    question_pool: List[str] = Field(default_factory=list, description="무작위 추출 대상 문제 ID")
    questions_to_select_from_pool: int = Field(default=0, ge=0)
    pool_marks: float = Field(default=1.0, ge=0)
    pool_negative_marks: Optional[float] = Field(default=None, ge=0)
    randomize_question_order_in_section: bool = False

    @property
    def uses_pool(self) -> bool:
        # 풀이 비어 있어도 추출 요청이 있으면 풀 섹션으로 본다 (추출 단계에서 부족 오류)
        return self.questions_to_select_from_pool > 0

    @property
    def question_count(self) -> int:
        drawn = self.questions_to_select_from_pool if self.uses_pool else 0
        return len(self.questions) + drawn

    @property
    def total_marks(self) -> float:
        drawn = self.questions_to_select_from_pool * self.pool_marks if self.uses_pool else 0.0
        return sum(q.marks for q in self.questions) + drawn


class Variant(BaseModel):
    code: str = Field(..., min_length=1, description="변형 코드 (예: 'A', 'B')")
    sections: List[Section] = Field(..., min_length=1)
    negative_marking: Optional[float] = Field(default=None, ge=0)


class TestSeries(BaseModel):
    """
    시험 시리즈 정의.

    Attributes:
        duration_minutes:        시험 제한 시간 (분).
        sections:                변형이 없을 때 사용하는 기본 섹션 배치.
        variants:                대체 배치 목록. 있으면 sections 대신 사용.
        negative_marking:        오답 감점 비율 (배점 대비, 예: 0.25).
        cooldown_minutes:        재응시 최소 간격. None이면 모드별 기본값.
        multi_select_policy:     복수 선택 채점 정책. None이면 전역 설정.
    """

    __test__ = False  # pytest 수집 대상 아님

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    duration_minutes: int = Field(..., gt=0)
    sections: List[Section] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    max_attempts: int = Field(default=1, ge=1)
    mode: SeriesMode = SeriesMode.PRACTICE
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    randomize_section_order: bool = False
    negative_marking: float = Field(default=0.0, ge=0)
    cooldown_minutes: Optional[int] = Field(default=None, ge=0)
    multi_select_policy: Optional[MultiSelectPolicy] = None

    @field_validator('start_at', 'end_at')
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_arrangements(self) -> 'TestSeries':
        if not self.sections and not self.variants:
            raise ValueError(f"시리즈({self.id})에 섹션 또는 변형이 최소 1개 필요합니다.")
        codes = [v.code for v in self.variants]
        if len(set(codes)) != len(codes):
            raise ValueError(f"변형 코드가 중복되었습니다: {codes}")
        if self.start_at and self.end_at and self.start_at >= self.end_at:
            raise ValueError("start_at은 end_at보다 앞서야 합니다.")
        return self

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def variant_codes(self) -> List[str]:
        return [v.code for v in self.variants]

    def get_variant(self, code: str) -> Variant:
        for v in self.variants:
            if v.code == code:
                return v
        raise ConfigurationError(f"시리즈({self.id})에 변형 '{code}'가 없습니다. 가능한 값: {self.variant_codes}")

    def arrangement(self, variant_code: Optional[str] = None) -> List[Section]:
        """변형 코드에 해당하는 섹션 배치. 코드가 없으면 기본 배치(또는 첫 번째 변형)."""
        if variant_code is not None:
            return self.get_variant(variant_code).sections
        if self.variants:
            return self.variants[0].sections
        return self.sections

    def negative_marking_for(self, variant_code: Optional[str] = None) -> float:
        if variant_code is not None:
            variant = self.get_variant(variant_code)
            if variant.negative_marking is not None:
                return variant.negative_marking
        return self.negative_marking

    def total_marks_for(self, variant_code: Optional[str] = None) -> float:
        return sum(s.total_marks for s in self.arrangement(variant_code))

    @property
    def total_marks(self) -> float:
        """활성 배치 기준 총점. 섹션이 바뀌면 다시 계산된다."""
        return self.total_marks_for()

    def question_count_for(self, variant_code: Optional[str] = None) -> int:
        return sum(s.question_count for s in self.arrangement(variant_code))
