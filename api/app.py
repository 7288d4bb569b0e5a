"""
api/app.py — FastAPI 앱 인스턴스 + 학생 식별 미들웨어 + 응시 엔진 연결
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

import config
from api.routes import router
from api.sample_data import load_sample_data
from exam_engine.services.attempt_service import AttemptService
from exam_engine.services.catalog import QuestionBank, SeriesCatalog

STUDENT_HEADER = "X-Student-Id"

logger = logging.getLogger(__name__)


def create_service(seed: bool = config.SEED_SAMPLE_DATA) -> AttemptService:
    catalog = SeriesCatalog()
    bank = QuestionBank()
    if seed:
        load_sample_data(catalog, bank)
    return AttemptService(catalog, bank)


def create_app(service: Optional[AttemptService] = None) -> FastAPI:
    app = FastAPI(title="Exam Attempt Engine")
    app.state.service = service or create_service()

    # CORS (시험 화면이 별도 출처에서 서빙되는 경우)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 학생 식별 미들웨어: 인증 계층이 넣어준 학생 ID 헤더를 그대로 신뢰한다
    @app.middleware("http")
    async def student_middleware(request: Request, call_next):
        sid = (request.headers.get(STUDENT_HEADER) or "").strip()
        request.state.student_id = sid or None
        response: Response = await call_next(request)
        return response

    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"ok": True, "series": len(app.state.service.catalog.all())}

    logger.info("응시 엔진 API 초기화 완료")
    return app
