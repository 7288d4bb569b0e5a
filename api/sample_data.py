"""
api/sample_data.py — 데모용 문제 은행 + 시험 시리즈

문제 유형(단일/복수/정수/수치/매트릭스), 문제 풀 섹션, 변형 A/B를 모두 포함한다.
"""

from typing import List

from exam_engine.models.question_model import NumericalAnswer, Option, Question, QuestionType, Translation
from exam_engine.models.series_model import QuestionRef, Section, SeriesMode, TestSeries, Variant
from exam_engine.services.catalog import QuestionBank, SeriesCatalog


def _choice(qid: str, text: str, options: List[str], correct: List[int], qtype=QuestionType.SINGLE) -> Question:
    return Question(
        id=qid,
        type=qtype,
        translations=[Translation(lang="en", question_text=text, options=[Option(text=o) for o in options])],
        correct_options=correct,
    )


SAMPLE_QUESTIONS: List[Question] = [
    _choice("phy-001", "SI unit of force?", ["Joule", "Newton", "Watt", "Pascal"], [1]),
    _choice("phy-002", "Which are vector quantities?", ["Speed", "Velocity", "Mass", "Force"], [1, 3],
            QuestionType.MULTIPLE),
    _choice("phy-003", "Speed of light in vacuum is approximately?",
            ["3 x 10^8 m/s", "3 x 10^6 m/s", "1.5 x 10^8 m/s", "3 x 10^5 m/s"], [0]),
    Question(
        id="phy-004",
        type=QuestionType.NUMERICAL,
        translations=[Translation(question_text="Acceleration due to gravity at sea level (m/s^2)?")],
        numerical_answer=NumericalAnswer(exact_value=9.8, tolerance=2, unit="m/s^2"),
    ),
    Question(
        id="mat-001",
        type=QuestionType.INTEGER,
        translations=[Translation(question_text="How many primes are less than 20?")],
        numerical_answer=NumericalAnswer(exact_value=8),
    ),
    Question(
        id="mat-002",
        type=QuestionType.NUMERICAL,
        translations=[Translation(question_text="Give any value of x satisfying 2 <= x^2 <= 3 with x > 0.")],
        numerical_answer=NumericalAnswer(min_value=1.414, max_value=1.732),
    ),
    Question(
        id="mat-003",
        type=QuestionType.MATRIX,
        translations=[Translation(
            question_text="Match each function (P: sin x, Q: e^x, R: ln x) with its derivative (1: cos x, 2: e^x, 3: 1/x).",
        )],
        matrix_answer={"P": ["1"], "Q": ["2"], "R": ["3"]},
    ),
    _choice("mat-004", "Derivative of x^2?", ["x", "2x", "x^2", "2"], [1]),
    _choice("mat-005", "Value of log10(1000)?", ["2", "3", "10", "100"], [1]),
    _choice("mat-006", "Sum of interior angles of a triangle?", ["90", "180", "270", "360"], [1]),
]


SAMPLE_SERIES: List[TestSeries] = [
    TestSeries(
        id="demo-practice",
        title="Physics & Maths Practice Test",
        duration_minutes=30,
        max_attempts=3,
        mode=SeriesMode.PRACTICE,
        negative_marking=0.25,
        sections=[
            Section(
                title="Physics",
                order=1,
                questions=[
                    QuestionRef(question_id="phy-001", marks=4, negative_marks=1),
                    QuestionRef(question_id="phy-002", marks=4, negative_marks=2),
                    QuestionRef(question_id="phy-004", marks=4),
                ],
            ),
            Section(
                title="Mathematics",
                order=2,
                questions=[
                    QuestionRef(question_id="mat-001", marks=4),
                    QuestionRef(question_id="mat-003", marks=4),
                ],
                question_pool=["mat-004", "mat-005", "mat-006"],
                questions_to_select_from_pool=2,
                pool_marks=4,
                randomize_question_order_in_section=True,
            ),
        ],
    ),
    TestSeries(
        id="demo-live",
        title="Weekly Live Mock (Forms A/B)",
        duration_minutes=20,
        max_attempts=2,
        mode=SeriesMode.LIVE,
        cooldown_minutes=60,
        randomize_section_order=True,
        variants=[
            Variant(
                code="A",
                negative_marking=0.25,
                sections=[Section(title="Mixed", order=1, questions=[
                    QuestionRef(question_id="phy-001", marks=4),
                    QuestionRef(question_id="phy-003", marks=4),
                    QuestionRef(question_id="mat-002", marks=4),
                ])],
            ),
            Variant(
                code="B",
                sections=[Section(title="Mixed", order=1, questions=[
                    QuestionRef(question_id="mat-004", marks=4),
                    QuestionRef(question_id="mat-005", marks=4),
                    QuestionRef(question_id="phy-004", marks=4),
                ])],
            ),
        ],
    ),
]


def load_sample_data(catalog: SeriesCatalog, bank: QuestionBank) -> None:
    for q in SAMPLE_QUESTIONS:
        bank.add(q)
    for s in SAMPLE_SERIES:
        catalog.add(s)
