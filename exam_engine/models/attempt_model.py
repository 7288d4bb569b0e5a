"""
models/attempt_model.py

응시(Attempt) 모델 — 한 학생의 시험 1회 진행 상태 전체.

스냅샷(sections)은 생성 시 한 번만 기록되고 이후 변경되지 않는다.
이후 변경 가능한 것은 responses, status, 시간 필드, 채점 결과 필드뿐이다.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from exam_engine.models.question_model import Difficulty, NumericalAnswer, QuestionType, Translation
from exam_engine.models.series_model import MultiSelectPolicy


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


class ResponseStatus(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"
    PARTIAL = "partial"  # 복수 선택 부분 점수 정책에서만 사용


class QuestionSnapshot(BaseModel):
    """응시 시작 시점에 복사된 문제 내용 + 정답 명세 + 배점."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    type: QuestionType
    marks: float
    negative_marks: float = 0.0
    translations: Tuple[Translation, ...]
    correct_options: Tuple[int, ...] = ()
    numerical_answer: Optional[NumericalAnswer] = None
    matrix_answer: Optional[Dict[str, Tuple[str, ...]]] = None
    difficulty: Difficulty = Difficulty.MEDIUM


class SectionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    order: int
    questions: Tuple[QuestionSnapshot, ...]


class Response(BaseModel):
    """
    문제 하나에 대한 학생 응답 + 클라이언트가 추적한 메타데이터.

    Attributes:
        selected:          선택한 답. 선택형은 보기 인덱스 리스트, 수치형은 숫자(또는 문자열),
                           매트릭스는 {행: [열, ...]}. None/빈 값이면 미응답.
        time_spent:        누적 풀이 시간 (초).
        attempts:          답을 바꾼 횟수.
        visits:            문제 방문 횟수.
        flagged:           검토 표시 여부.
        confidence:        자신감 (1~5).
        earned / status:   채점 후에만 채워진다.
    """

    question_id: str
    selected: Any = None
    time_spent: float = Field(default=0.0, ge=0)
    attempts: int = Field(default=0, ge=0)
    visits: int = Field(default=0, ge=0)
    flagged: bool = False
    confidence: Optional[int] = Field(default=None, ge=1, le=5)
    visited_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    earned: Optional[float] = None
    status: Optional[ResponseStatus] = None


_WRITE_ONCE_FIELDS = frozenset({
    "id", "series_id", "student_id", "variant_code", "sections",
    "started_at", "expires_at", "attempt_no", "multi_select_policy",
})


class Attempt(BaseModel):
    """한 학생의 시험 시리즈 응시 1회."""

    id: str
    series_id: str
    series_title: str = ""
    student_id: str
    variant_code: Optional[str] = None
    attempt_no: int = Field(default=1, ge=1)
    sections: Tuple[SectionSnapshot, ...]
    multi_select_policy: MultiSelectPolicy = MultiSelectPolicy.ALL_OR_NOTHING
    responses: List[Response] = Field(default_factory=list)

    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime
    expires_at: datetime
    last_saved_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    remaining_duration_seconds: Optional[int] = Field(
        default=None,
        description="마지막 저장 시 클라이언트가 보고한 남은 시간 (참고용, 만료 판정에 사용하지 않음)",
    )

    score: Optional[float] = None
    max_score: Optional[float] = None
    percentage: Optional[float] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _WRITE_ONCE_FIELDS:
            raise AttributeError(f"Attempt.{name} 필드는 생성 후 변경할 수 없습니다.")
        super().__setattr__(name, value)

    def iter_questions(self) -> Iterator[QuestionSnapshot]:
        for section in self.sections:
            yield from section.questions

    @property
    def question_ids(self) -> List[str]:
        return [q.question_id for q in self.iter_questions()]

    @property
    def max_possible_score(self) -> float:
        return sum(q.marks for q in self.iter_questions())

    def responses_by_question(self) -> Dict[str, Response]:
        return {r.question_id: r for r in self.responses}


class AttemptCounter(BaseModel):
    """(학생, 시리즈)별 응시 횟수. 개별 Attempt 보존 여부와 무관하게 단조 증가한다."""

    student_id: str
    series_id: str
    attempt_count: int = Field(default=0, ge=0)
    last_attempt_at: Optional[datetime] = None
