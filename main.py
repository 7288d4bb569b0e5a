"""
main.py — 응시 엔진 API 서버 진입점
"""

import logging
import sys
import traceback

from config import DEFAULT_HOST, DEFAULT_PORT, LOG_FILE, LOG_LEVEL

# ── 로깅 설정 ────────────────────────────────────────────────────────────────

try:
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )
except (PermissionError, FileNotFoundError):
    # 로그 파일을 열 수 없으면 콘솔 출력만 사용
    logging.basicConfig(level=LOG_LEVEL)

logger = logging.getLogger(__name__)


def run() -> None:
    try:
        import uvicorn
        from api.app import create_app
        logger.info(f"Uvicorn 서버 시작 - {DEFAULT_HOST}:{DEFAULT_PORT}")
        app = create_app()
        uvicorn.run(app, host=DEFAULT_HOST, port=DEFAULT_PORT, log_level="info")
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")
        sys.exit(1)


# ── 메인 실행 ────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("=== Exam Attempt Engine Started ===")
    run()
