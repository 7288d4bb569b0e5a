"""
api/routes.py — FastAPI 엔드포인트
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from exam_engine.errors import (
    AttemptAlreadyCompleted, AttemptForbidden, AttemptInProgress, AttemptLimitExceeded, AttemptNotCompleted,
    AttemptNotFound, ConfigurationError, CooldownActive, ExamEngineError, SeriesNotAvailable, SeriesNotFound,
)
from exam_engine.models.attempt_model import Attempt, Response, SectionSnapshot
from exam_engine.services.attempt_service import AttemptService

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class ResponseIn(BaseModel):
    question_id: str
    selected: Any = None
    time_spent: Optional[float] = Field(default=None, ge=0)
    attempts: Optional[int] = Field(default=None, ge=0)
    visits: Optional[int] = Field(default=None, ge=0)
    flagged: Optional[bool] = None
    confidence: Optional[int] = Field(default=None, ge=1, le=5)
    visited_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None

    def to_response(self) -> Response:
        # 클라이언트가 실제로 보낸 필드만 전달 (병합 시 나머지 메타데이터 유지)
        fields = {k: v for k, v in self.model_dump(exclude_unset=True).items() if v is not None or k == "selected"}
        return Response(**fields)


class StartBody(BaseModel):
    variant_code: Optional[str] = None


class SaveProgressBody(BaseModel):
    responses: List[ResponseIn] = []
    remaining_seconds: Optional[int] = Field(default=None, ge=0)


class SubmitBody(BaseModel):
    responses: List[ResponseIn] = []


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _service(request: Request) -> AttemptService:
    return request.app.state.service


def _student(request: Request) -> str:
    sid = getattr(request.state, "student_id", None)
    if not sid:
        raise HTTPException(status_code=401, detail="학생 식별 정보(X-Student-Id)가 없습니다.")
    return sid


def _to_http(e: ExamEngineError) -> HTTPException:
    """도메인 예외 → HTTP 오류. 시작 거부 사유는 code로 구분해 돌려준다."""
    detail = {"code": type(e).__name__, "message": str(e)}
    if isinstance(e, (SeriesNotFound, AttemptNotFound)):
        return HTTPException(status_code=404, detail=detail)
    if isinstance(e, (AttemptForbidden, SeriesNotAvailable)):
        return HTTPException(status_code=403, detail=detail)
    if isinstance(e, AttemptLimitExceeded):
        return HTTPException(status_code=429, detail=detail)
    if isinstance(e, CooldownActive):
        detail["retry_after_seconds"] = e.retry_after_seconds
        return HTTPException(
            status_code=429, detail=detail, headers={"Retry-After": str(e.retry_after_seconds)},
        )
    if isinstance(e, (AttemptAlreadyCompleted, AttemptInProgress, AttemptNotCompleted)):
        return HTTPException(status_code=409, detail=detail)
    if isinstance(e, ConfigurationError):
        logger.error(f"시험 설정 오류: {e}")
        return HTTPException(status_code=422, detail=detail)
    return HTTPException(status_code=400, detail=detail)


def _section_to_dict(section: SectionSnapshot) -> dict:
    """학생에게 보낼 섹션. 정답 명세는 포함하지 않는다."""
    return {
        "title": section.title,
        "order": section.order,
        "questions": [
            {
                "question_id": q.question_id,
                "type": q.type.value,
                "marks": q.marks,
                "negative_marks": q.negative_marks,
                "translations": [t.model_dump() for t in q.translations],
                "unit": q.numerical_answer.unit if q.numerical_answer else None,
                "matrix_rows": sorted(q.matrix_answer) if q.matrix_answer else None,
            }
            for q in section.questions
        ],
    }


def _attempt_to_dict(attempt: Attempt, remaining: int, include_content: bool = True) -> dict:
    d = {
        "attempt_id": attempt.id,
        "series_id": attempt.series_id,
        "series_title": attempt.series_title,
        "variant_code": attempt.variant_code,
        "attempt_no": attempt.attempt_no,
        "status": attempt.status.value,
        "started_at": attempt.started_at,
        "expires_at": attempt.expires_at,
        "last_saved_at": attempt.last_saved_at,
        "submitted_at": attempt.submitted_at,
        "remaining_seconds": remaining,
        "score": attempt.score,
        "max_score": attempt.max_score,
        "percentage": attempt.percentage,
    }
    if include_content:
        d["sections"] = [_section_to_dict(s) for s in attempt.sections]
        d["responses"] = [
            r.model_dump(exclude={"earned", "status"}) for r in attempt.responses
        ]
    return d


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.get("/api/series/{series_id}/eligibility")
async def eligibility(series_id: str, request: Request):
    service = _service(request)
    try:
        decision = service.can_start(_student(request), series_id)
    except ExamEngineError as e:
        raise _to_http(e)
    return decision.model_dump()


@router.post("/api/series/{series_id}/start", status_code=201)
async def start_attempt(series_id: str, request: Request, body: Optional[StartBody] = None):
    service = _service(request)
    student_id = _student(request)
    try:
        attempt = service.start_attempt(student_id, series_id, body.variant_code if body else None)
    except ExamEngineError as e:
        raise _to_http(e)
    return {
        "attempt_id": attempt.id,
        "remaining_seconds": service.remaining_seconds(attempt),
        "variant_code": attempt.variant_code,
        "attempt_no": attempt.attempt_no,
        "sections": [_section_to_dict(s) for s in attempt.sections],
    }


@router.get("/api/series/{series_id}/progress")
async def get_progress(series_id: str, request: Request):
    service = _service(request)
    try:
        attempt = service.get_progress(_student(request), series_id)
    except ExamEngineError as e:
        raise _to_http(e)
    if attempt is None:
        return None
    return _attempt_to_dict(attempt, service.remaining_seconds(attempt))


@router.put("/api/attempts/{attempt_id}/progress")
async def save_progress(attempt_id: str, body: SaveProgressBody, request: Request):
    service = _service(request)
    try:
        attempt = service.save_progress(
            attempt_id,
            [r.to_response() for r in body.responses],
            body.remaining_seconds,
            student_id=_student(request),
        )
    except ExamEngineError as e:
        raise _to_http(e)
    return {"ok": True, "last_saved_at": attempt.last_saved_at}


@router.post("/api/attempts/{attempt_id}/submit")
async def submit_attempt(attempt_id: str, body: SubmitBody, request: Request):
    service = _service(request)
    try:
        result = service.submit_attempt(
            attempt_id, [r.to_response() for r in body.responses], student_id=_student(request),
        )
    except ExamEngineError as e:
        raise _to_http(e)
    return result.model_dump()


@router.get("/api/attempts/{attempt_id}")
async def get_attempt(attempt_id: str, request: Request):
    service = _service(request)
    try:
        attempt = service.get_attempt(attempt_id, _student(request))
    except ExamEngineError as e:
        raise _to_http(e)
    return _attempt_to_dict(attempt, service.remaining_seconds(attempt), include_content=False)


@router.get("/api/attempts/{attempt_id}/review")
async def review_attempt(attempt_id: str, request: Request):
    service = _service(request)
    try:
        return service.review_attempt(attempt_id, _student(request))
    except ExamEngineError as e:
        raise _to_http(e)


@router.get("/api/me/attempts")
async def my_attempts(request: Request):
    service = _service(request)
    attempts = service.list_attempts(_student(request))
    return [_attempt_to_dict(a, service.remaining_seconds(a), include_content=False) for a in attempts]


@router.get("/api/me/stats")
async def my_stats(request: Request):
    return _service(request).student_stats(_student(request))


@router.get("/api/series/{series_id}/leaderboard")
async def leaderboard(series_id: str, request: Request, limit: Optional[int] = Query(default=None, ge=1)):
    service = _service(request)
    try:
        entries = service.get_leaderboard(series_id, limit)
    except ExamEngineError as e:
        raise _to_http(e)
    return {"leaderboard": [entry.model_dump() for entry in entries]}


@router.post("/api/admin/series/{series_id}/students/{student_id}/reset-attempts")
async def reset_attempts(series_id: str, student_id: str, request: Request):
    # 관리자 권한 확인은 외부 인증 계층의 몫
    try:
        _service(request).reset_attempt_count(student_id, series_id)
    except ExamEngineError as e:
        raise _to_http(e)
    return {"ok": True}
