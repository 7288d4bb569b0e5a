"""
services/progress_service.py

진행 상황 저장 (자동 저장 / 수동 저장 / 문제 이동 시 저장).

- save: 클라이언트가 보낸 전체 폼 상태로 응답 집합을 통째로 덮어쓴다 (마지막 쓰기 우선).
- merge: 제출 시 들어온 응답을 문제 ID 기준으로 병합한다. 클라이언트가 보내지 않은
  메타데이터(풀이 시간, 검토 표시, 자신감 등)는 저장된 값을 유지한다.

만료 시각은 시작 시각에서만 계산되며, 클라이언트가 보낸 남은 시간은 참고값으로만 저장한다.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from exam_engine.errors import AttemptAlreadyCompleted, AttemptForbidden
from exam_engine.models.attempt_model import Attempt, AttemptStatus, Response
from exam_engine.services.attempt_store import AttemptStore

logger = logging.getLogger(__name__)

# 클라이언트가 설정할 수 없는 필드 (채점 결과)
_SERVER_FIELDS = {"question_id", "earned", "status"}


def blank_responses(attempt: Attempt) -> List[Response]:
    return [Response(question_id=qid) for qid in attempt.question_ids]


def _client_fields(response: Response) -> dict:
    return {k: v for k, v in response.model_dump(exclude_unset=True).items() if k not in _SERVER_FIELDS}


def overwrite_responses(attempt: Attempt, incoming: Iterable[Response], now: datetime) -> List[Response]:
    """
    스냅샷 문제 순서대로 응답 집합을 새로 만든다.
    들어오지 않은 문제는 빈 응답, 스냅샷에 없는 문제의 응답은 버린다.
    """
    by_question = {}
    for r in incoming:
        by_question[r.question_id] = r
    unknown = set(by_question) - set(attempt.question_ids)
    if unknown:
        logger.warning(f"스냅샷에 없는 문제의 응답 무시 (attempt={attempt.id}): {sorted(unknown)}")

    previous = attempt.responses_by_question()
    result: List[Response] = []
    for qid in attempt.question_ids:
        r = by_question.get(qid)
        if r is None:
            result.append(Response(question_id=qid))
            continue
        fields = _client_fields(r)
        updated = Response(question_id=qid, **fields)
        old = previous.get(qid)
        if "last_modified_at" not in fields:
            if old is not None and old.selected == updated.selected:
                updated.last_modified_at = old.last_modified_at
            else:
                updated.last_modified_at = now
        result.append(updated)
    return result


def merge_responses(attempt: Attempt, incoming: Iterable[Response], now: datetime) -> List[Response]:
    """저장된 응답에 들어온 응답을 문제 ID 기준으로 병합한다."""
    stored = {r.question_id: r for r in attempt.responses}
    for qid in attempt.question_ids:
        stored.setdefault(qid, Response(question_id=qid))

    for r in incoming:
        if r.question_id not in stored:
            logger.warning(f"스냅샷에 없는 문제의 응답 무시 (attempt={attempt.id}): {r.question_id}")
            continue
        fields = _client_fields(r)
        current = stored[r.question_id]
        merged = current.model_copy(update=fields)
        if "selected" in fields and fields["selected"] != current.selected and "last_modified_at" not in fields:
            merged.last_modified_at = now
        stored[r.question_id] = merged

    return [stored[qid] for qid in attempt.question_ids]


def save(
    store: AttemptStore,
    attempt_id: str,
    responses: Iterable[Response],
    remaining_duration_seconds: Optional[int],
    now: datetime,
    student_id: Optional[str] = None,
) -> Attempt:
    """
    진행 상황 저장. 같은 내용으로 여러 번 호출해도 결과가 같다.

    만료 시각이 지났더라도 아직 제출되지 않았다면 저장은 성공한다
    (만료 처리는 다음 조회 시점에 지연 적용된다).

    Raises:
        AttemptNotFound:         응시 ID가 없는 경우.
        AttemptForbidden:        다른 학생의 응시인 경우.
        AttemptAlreadyCompleted: 이미 제출된 응시인 경우 (늦게 도착한 저장 포함).
    """
    incoming = list(responses)

    def _apply(attempt: Attempt) -> None:
        if student_id is not None and attempt.student_id != student_id:
            raise AttemptForbidden(attempt.id)
        if attempt.status == AttemptStatus.COMPLETED:
            logger.info(f"제출 후 도착한 저장 거부: attempt={attempt.id}")
            raise AttemptAlreadyCompleted(attempt.id)
        if now > attempt.expires_at:
            logger.info(f"만료 시각 이후 저장: attempt={attempt.id}, 지연={(now - attempt.expires_at).total_seconds():.0f}초")
        attempt.responses = overwrite_responses(attempt, incoming, now)
        attempt.remaining_duration_seconds = remaining_duration_seconds
        attempt.last_saved_at = now

    return store.update(attempt_id, _apply)
