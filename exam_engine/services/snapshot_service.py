"""
services/snapshot_service.py

선택된 배치를 문제 은행에서 한 번만 조회해 불변 스냅샷으로 복사한다.
이후 문제 은행이 수정/삭제되어도 응시 기록과 점수는 바뀌지 않는다.
"""

from typing import Tuple

from exam_engine.errors import ConfigurationError
from exam_engine.models.attempt_model import QuestionSnapshot, SectionSnapshot
from exam_engine.models.question_model import Question
from exam_engine.services.catalog import QuestionBank
from exam_engine.services.variant_selector import PlannedQuestion, Selection


def snapshot_question(question: Question, planned: PlannedQuestion) -> QuestionSnapshot:
    """문제 1개를 깊은 복사로 스냅샷화."""
    matrix = None
    if question.matrix_answer is not None:
        matrix = {row: tuple(cols) for row, cols in question.matrix_answer.items()}
    return QuestionSnapshot(
        question_id=question.id,
        type=question.type,
        marks=planned.marks,
        negative_marks=planned.negative_marks,
        translations=tuple(t.model_copy(deep=True) for t in question.translations),
        correct_options=tuple(question.correct_options),
        numerical_answer=question.numerical_answer.model_copy() if question.numerical_answer else None,
        matrix_answer=matrix,
        difficulty=question.difficulty,
    )


def build_snapshot(selection: Selection, bank: QuestionBank) -> Tuple[SectionSnapshot, ...]:
    """
    Raises:
        ConfigurationError: 배치에 있는 문제가 문제 은행에 없는 경우.
    """
    ids = selection.question_ids
    found = {q.id: q for q in bank.get_questions_by_ids(ids)}
    missing = [i for i in ids if i not in found]
    if missing:
        raise ConfigurationError(f"문제 은행에 없는 문제가 배치에 포함되어 있습니다: {missing}")

    return tuple(
        SectionSnapshot(
            title=section.title,
            order=section.order,
            questions=tuple(snapshot_question(found[p.question_id], p) for p in section.questions),
        )
        for section in selection.sections
    )
