import random
from datetime import datetime, timedelta, timezone

import pytest

from exam_engine.models.attempt_model import QuestionSnapshot, SectionSnapshot
from exam_engine.models.question_model import NumericalAnswer, Option, Question, QuestionType, Translation
from exam_engine.models.series_model import QuestionRef, Section, TestSeries
from exam_engine.services.attempt_service import AttemptService
from exam_engine.services.catalog import QuestionBank, SeriesCatalog


T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


def choice_question(qid, correct, qtype=QuestionType.SINGLE, n_options=4):
    return Question(
        id=qid,
        type=qtype,
        translations=[Translation(
            question_text=f"Question {qid}",
            options=[Option(text=f"opt {i}") for i in range(n_options)],
        )],
        correct_options=correct,
    )


def numeric_question(qid, qtype=QuestionType.NUMERICAL, **spec):
    return Question(
        id=qid,
        type=qtype,
        translations=[Translation(question_text=f"Question {qid}")],
        numerical_answer=NumericalAnswer(**spec),
    )


def matrix_question(qid, answer):
    return Question(
        id=qid,
        type=QuestionType.MATRIX,
        translations=[Translation(question_text=f"Question {qid}")],
        matrix_answer=answer,
    )


def snap(question, marks=4.0, negative_marks=0.0):
    """문제 은행 없이 채점 테스트용 스냅샷을 만든다."""
    return QuestionSnapshot(
        question_id=question.id,
        type=question.type,
        marks=marks,
        negative_marks=negative_marks,
        translations=tuple(question.translations),
        correct_options=tuple(question.correct_options),
        numerical_answer=question.numerical_answer,
        matrix_answer={k: tuple(v) for k, v in question.matrix_answer.items()} if question.matrix_answer else None,
    )


def section(title, *snapshots, order=1):
    return SectionSnapshot(title=title, order=order, questions=tuple(snapshots))


def simple_series(series_id="s1", question_ids=("q1", "q2"), marks=4, negative_marks=1, **kwargs):
    kwargs.setdefault("duration_minutes", 30)
    kwargs.setdefault("max_attempts", 2)
    return TestSeries(
        id=series_id,
        title=f"Series {series_id}",
        sections=[Section(
            title="Main",
            order=1,
            questions=[QuestionRef(question_id=q, marks=marks, negative_marks=negative_marks) for q in question_ids],
        )],
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bank():
    return QuestionBank([
        choice_question("q1", [0]),
        choice_question("q2", [1]),
        choice_question("q3", [2]),
        choice_question("q4", [3]),
        choice_question("q5", [0]),
        choice_question("m1", [0, 2], QuestionType.MULTIPLE),
        numeric_question("n1", exact_value=10, tolerance=10),
        numeric_question("i1", QuestionType.INTEGER, exact_value=42),
        matrix_question("x1", {"A": ["1"], "B": ["2", "3"]}),
    ])


@pytest.fixture
def catalog():
    catalog = SeriesCatalog(min_questions=1)
    catalog.add(simple_series())
    return catalog


@pytest.fixture
def service(catalog, bank, clock):
    return AttemptService(catalog, bank, clock=clock, rng=random.Random(7), live_cooldown_minutes=0)
