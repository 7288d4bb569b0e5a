import threading

from exam_engine.errors import AttemptAlreadyCompleted, AttemptInProgress
from exam_engine.models.attempt_model import AttemptStatus, Response


def _run_together(*targets):
    """모든 대상 함수를 동시에 출발시키고 (결과, 예외) 목록을 돌려준다."""
    barrier = threading.Barrier(len(targets))
    outcomes = [None] * len(targets)

    def _wrap(i, fn):
        barrier.wait()
        try:
            outcomes[i] = (fn(), None)
        except Exception as e:
            outcomes[i] = (None, e)

    threads = [threading.Thread(target=_wrap, args=(i, fn)) for i, fn in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return outcomes


def test_parallel_starts_create_exactly_one_attempt(service):
    outcomes = _run_together(*[lambda: service.start_attempt("alice", "s1") for _ in range(8)])

    started = [result for result, error in outcomes if error is None]
    errors = [error for _, error in outcomes if error is not None]
    assert len(started) == 1
    assert len(errors) == 7
    assert all(isinstance(e, AttemptInProgress) for e in errors)

    in_progress = service.store.list_attempts(student_id="alice", status=AttemptStatus.IN_PROGRESS)
    assert [a.id for a in in_progress] == [started[0].id]
    assert service.store.get_counter("alice", "s1").attempt_count == 1


def test_save_racing_submit_never_reopens_attempt(service):
    for round_no in range(20):
        student = f"student-{round_no}"
        attempt = service.start_attempt(student, "s1")

        (saved, save_error), (result, submit_error) = _run_together(
            lambda: service.save_progress(attempt.id, [
                Response(question_id="q1", selected=[3]),
                Response(question_id="q2", selected=[1]),
            ]),
            lambda: service.submit_attempt(attempt.id, [Response(question_id="q1", selected=[0])]),
        )

        assert submit_error is None
        stored = service.store.get(attempt.id)
        assert stored.status == AttemptStatus.COMPLETED
        if save_error is None:
            # 저장이 먼저 적용됨: 제출이 q1만 덮어쓰고 q2는 저장분 유지
            assert result.score == 8
        else:
            assert isinstance(save_error, AttemptAlreadyCompleted)
            assert result.score == 4
        assert stored.score == result.score
