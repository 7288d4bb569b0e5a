from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class QuestionType(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    INTEGER = "integer"
    NUMERICAL = "numerical"
    MATRIX = "matrix"


CHOICE_TYPES = (QuestionType.SINGLE, QuestionType.MULTIPLE)
NUMERIC_TYPES = (QuestionType.INTEGER, QuestionType.NUMERICAL)


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    NOT_MENTIONED = "not-mentioned"


class Option(BaseModel):
    text: str = Field(..., min_length=1)
    img: str = ""


class Translation(BaseModel):
    """언어별 문제 본문과 보기."""

    lang: str = Field(default="en", min_length=1)
    question_text: str = Field(..., min_length=1, description="발문/문제 내용")
    options: List[Option] = Field(default_factory=list, description="객관식 보기 (선택형이 아니면 빈 리스트)")


class NumericalAnswer(BaseModel):
    """
    정수형/주관식 수치 답안 명세.

    exact_value 단독, min_value~max_value 범위, 또는 exact_value ± tolerance(%) 중 하나.
    """

    exact_value: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    tolerance: Optional[float] = Field(default=None, ge=0, description="exact_value 기준 허용 오차 (퍼센트)")
    unit: Optional[str] = None

    @model_validator(mode='after')
    def validate_spec(self) -> 'NumericalAnswer':
        has_range = self.min_value is not None or self.max_value is not None
        if self.exact_value is None and not has_range:
            raise ValueError("exact_value 또는 min_value/max_value 중 하나는 필요합니다.")
        if has_range and (self.min_value is None or self.max_value is None):
            raise ValueError("범위 답안은 min_value와 max_value를 모두 지정해야 합니다.")
        if has_range and self.min_value > self.max_value:
            raise ValueError(f"min_value({self.min_value})가 max_value({self.max_value})보다 큽니다.")
        if self.tolerance is not None and self.exact_value is None:
            raise ValueError("tolerance는 exact_value와 함께만 사용할 수 있습니다.")
        return self


class Question(BaseModel):
    """
    문제 은행의 문제 (외부 엔티티, 응시 엔진은 참조만 한다).

    정답 명세는 유형별로 하나만 사용한다:
      - single / multiple : correct_options (보기 인덱스, 0-based)
      - integer / numerical : numerical_answer
      - matrix : matrix_answer ({행 라벨: [열 라벨, ...]})
    """

    id: str = Field(..., min_length=1)
    type: QuestionType = QuestionType.SINGLE
    translations: List[Translation] = Field(..., min_length=1)
    correct_options: List[int] = Field(default_factory=list)
    numerical_answer: Optional[NumericalAnswer] = None
    matrix_answer: Optional[Dict[str, List[str]]] = None
    difficulty: Difficulty = Difficulty.MEDIUM

    @field_validator('correct_options')
    @classmethod
    def validate_unique_options(cls, v: List[int]) -> List[int]:
        if len(set(v)) != len(v):
            raise ValueError("correct_options에 중복된 인덱스가 있습니다.")
        return sorted(v)

    @model_validator(mode='after')
    def validate_answer_spec(self) -> 'Question':
        if self.type in CHOICE_TYPES:
            for tr in self.translations:
                if len(tr.options) < 2:
                    raise ValueError(f"선택형 문제({self.id})는 보기가 최소 2개 필요합니다.")
                if any(i < 0 or i >= len(tr.options) for i in self.correct_options):
                    raise ValueError(f"정답 인덱스 {self.correct_options}가 보기 범위를 벗어났습니다.")
            if not self.correct_options:
                raise ValueError(f"선택형 문제({self.id})에 정답이 없습니다.")
            if self.type == QuestionType.SINGLE and len(self.correct_options) != 1:
                raise ValueError(f"단일 선택 문제({self.id})는 정답이 정확히 1개여야 합니다.")
        elif self.type in NUMERIC_TYPES:
            if self.numerical_answer is None:
                raise ValueError(f"수치형 문제({self.id})에 numerical_answer가 없습니다.")
        elif self.type == QuestionType.MATRIX:
            if not self.matrix_answer:
                raise ValueError(f"매트릭스 문제({self.id})에 matrix_answer가 없습니다.")
        return self
