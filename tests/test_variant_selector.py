import random

import pytest

from exam_engine.errors import ConfigurationError
from exam_engine.models.series_model import QuestionRef, Section, TestSeries, Variant
from exam_engine.services import variant_selector
from exam_engine.services.snapshot_service import build_snapshot


def _refs(*ids, marks=1):
    return [QuestionRef(question_id=i, marks=marks) for i in ids]


def _series(**kwargs):
    kwargs.setdefault("duration_minutes", 60)
    return TestSeries(id="s", title="S", **kwargs)


def test_fixed_sections_keep_authored_order():
    series = _series(sections=[
        Section(title="Second", order=2, questions=_refs("q3")),
        Section(title="First", order=1, questions=_refs("q1", "q2")),
    ])
    selection = variant_selector.select(series, rng=random.Random(1))
    assert selection.variant_code is None
    assert [s.title for s in selection.sections] == ["First", "Second"]
    assert selection.question_ids == ["q1", "q2", "q3"]


def test_pool_draws_requested_count_without_replacement():
    series = _series(sections=[Section(
        title="Pool", question_pool=["p1", "p2", "p3", "p4", "p5"], questions_to_select_from_pool=3, pool_marks=2,
    )])
    for seed in range(20):
        selection = variant_selector.select(series, rng=random.Random(seed))
        ids = selection.question_ids
        assert len(ids) == 3
        assert len(set(ids)) == 3
        assert set(ids) <= {"p1", "p2", "p3", "p4", "p5"}
        assert all(q.marks == 2 for q in selection.sections[0].questions)


def test_pool_smaller_than_request_fails_fast():
    series = _series(sections=[Section(
        title="Pool", question_pool=["p1", "p2", "p3"], questions_to_select_from_pool=5,
    )])
    with pytest.raises(ConfigurationError):
        variant_selector.select(series, rng=random.Random(0))


def test_empty_pool_with_requested_draws_fails_fast():
    series = _series(sections=[
        Section(title="Fixed", questions=_refs("q1")),
        Section(title="Pool", question_pool=[], questions_to_select_from_pool=3),
    ])
    assert series.question_count_for() == 4
    with pytest.raises(ConfigurationError):
        variant_selector.select(series, rng=random.Random(0))


def test_pool_never_repeats_fixed_questions():
    series = _series(sections=[
        Section(title="Fixed", order=1, questions=_refs("p1")),
        Section(title="Pool", order=2, question_pool=["p1", "p2"], questions_to_select_from_pool=2),
    ])
    # p1은 이미 고정 문제이므로 풀에는 p2 하나만 남는다
    with pytest.raises(ConfigurationError):
        variant_selector.select(series, rng=random.Random(0))


def test_duplicate_fixed_question_is_rejected():
    series = _series(sections=[
        Section(title="A", order=1, questions=_refs("q1")),
        Section(title="B", order=2, questions=_refs("q1")),
    ])
    with pytest.raises(ConfigurationError):
        variant_selector.select(series)


def test_forced_and_random_variant():
    series = _series(variants=[
        Variant(code="A", sections=[Section(title="A", questions=_refs("a1", "a2"))]),
        Variant(code="B", sections=[Section(title="B", questions=_refs("b1", "b2"))]),
    ])
    assert variant_selector.select(series, "B").question_ids == ["b1", "b2"]
    codes = {variant_selector.select(series, rng=random.Random(seed)).variant_code for seed in range(30)}
    assert codes == {"A", "B"}
    with pytest.raises(ConfigurationError):
        variant_selector.select(series, "C")


def test_forced_code_on_series_without_variants():
    series = _series(sections=[Section(title="Main", questions=_refs("q1"))])
    with pytest.raises(ConfigurationError):
        variant_selector.select(series, "A")


def test_same_seed_gives_same_selection():
    series = _series(
        randomize_section_order=True,
        sections=[
            Section(title=f"S{i}", order=i, question_pool=[f"p{i}{j}" for j in range(6)],
                    questions_to_select_from_pool=3, randomize_question_order_in_section=True)
            for i in range(4)
        ],
    )
    a = variant_selector.select(series, rng=random.Random(42))
    b = variant_selector.select(series, rng=random.Random(42))
    assert a == b


def test_shuffle_keeps_question_set():
    ids = [f"q{i}" for i in range(10)]
    series = _series(sections=[Section(title="Main", questions=_refs(*ids), randomize_question_order_in_section=True)])
    selection = variant_selector.select(series, rng=random.Random(3))
    assert sorted(selection.question_ids) == sorted(ids)


def test_negative_marks_resolution():
    series = _series(
        negative_marking=0.25,
        sections=[Section(title="Main", questions=[
            QuestionRef(question_id="q1", marks=4),
            QuestionRef(question_id="q2", marks=4, negative_marks=2),
        ])],
        variants=[Variant(code="A", negative_marking=0.5, sections=[Section(title="A", questions=[
            QuestionRef(question_id="q1", marks=4),
        ])])],
    )
    variant = variant_selector.select(series, "A")
    assert variant.sections[0].questions[0].negative_marks == 2

    plain = _series(negative_marking=0.25, sections=series.sections)
    q1, q2 = variant_selector.select(plain).sections[0].questions
    assert q1.negative_marks == 1
    assert q2.negative_marks == 2


def test_total_marks_includes_pool_draws():
    series = _series(sections=[
        Section(title="Fixed", questions=_refs("q1", "q2", marks=4)),
        Section(title="Pool", question_pool=["p1", "p2", "p3"], questions_to_select_from_pool=2, pool_marks=3),
    ])
    assert series.total_marks == 14
    assert series.question_count_for() == 4


def test_build_snapshot_requires_every_question_in_bank(bank):
    series = _series(sections=[Section(title="Main", questions=_refs("q1", "ghost"))])
    with pytest.raises(ConfigurationError):
        build_snapshot(variant_selector.select(series), bank)


def test_build_snapshot_copies_content(bank):
    series = _series(sections=[Section(title="Main", questions=_refs("q1", "x1", marks=3))])
    sections = build_snapshot(variant_selector.select(series), bank)
    q1, x1 = sections[0].questions
    assert q1.correct_options == (0,)
    assert q1.marks == 3
    assert x1.matrix_answer == {"A": ("1",), "B": ("2", "3")}


def test_shuffled_sections_get_positional_order():
    series = _series(
        randomize_section_order=True,
        sections=[Section(title=f"S{i}", order=i * 10, questions=_refs(f"q{i}")) for i in range(6)],
    )
    for seed in range(10):
        selection = variant_selector.select(series, rng=random.Random(seed))
        assert [s.order for s in selection.sections] == [1, 2, 3, 4, 5, 6]
        assert sorted(s.title for s in selection.sections) == [f"S{i}" for i in range(6)]
    titles = {
        tuple(s.title for s in variant_selector.select(series, rng=random.Random(seed)).sections)
        for seed in range(10)
    }
    assert len(titles) > 1
